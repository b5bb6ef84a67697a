"""Sequential transfer loop.

IDLE -> PRECHECK -> RUNNING(1..n) -> DONE, or PRECHECK -> ABORTED when the
sender cannot be resolved or cannot afford the worst case of the whole run.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from bulksend.constants import Outcome, SchedulerState
from bulksend.errors import InsufficientBalanceError, LedgerError
from bulksend.ledger import LedgerClient
from bulksend.models import AttemptParams, RunConfig, RunReport, TransferAttempt
from bulksend.params import derive_attempt
from bulksend.randoms import RandomSource, new_source

log = logging.getLogger("bulksend.scheduler")

Sleeper = Callable[[float], Awaitable[None]]
AttemptCallback = Callable[[TransferAttempt], None]


class TransactionScheduler:
    def __init__(
        self,
        config: RunConfig,
        ledger: LedgerClient,
        *,
        rng: RandomSource | None = None,
        sleep: Sleeper = asyncio.sleep,
        stop: asyncio.Event | None = None,
        on_attempt: AttemptCallback | None = None,
    ):
        self.config = config
        self.ledger = ledger
        self.rng = rng or new_source()
        self.sleep = sleep
        self.stop = stop or asyncio.Event()
        self.on_attempt = on_attempt
        self.state = SchedulerState.IDLE
        self.report: RunReport | None = None

    async def _pause(self, ms: int) -> None:
        await self.sleep(ms / 1000)

    async def precheck(self) -> RunReport:
        """Resolve the sender and make sure it can pay for every attempt at max amount plus fee."""
        self.state = SchedulerState.PRECHECK
        cfg = self.config
        try:
            sender = await self.ledger.resolve_own_address()
            log.info("Sender address: %s", sender)
            balance = await self.ledger.get_balance(sender, cfg.denom)
        except LedgerError:
            self.state = SchedulerState.ABORTED
            raise
        log.info("Current balance: %s %s", balance, cfg.denom)

        if balance < cfg.estimated_cost:
            self.state = SchedulerState.ABORTED
            raise InsufficientBalanceError(balance, cfg.estimated_cost, cfg.denom)
        self.report = RunReport(sender=sender, tx_count=cfg.tx_count, initial_balance=balance)
        return self.report

    async def submit(self, params: AttemptParams, sender: str) -> TransferAttempt:
        """Submit one transfer and fold the return value or the raised error into an outcome."""
        cfg = self.config
        common = dict(
            index=params.index,
            amount=params.amount,
            delay_ms=params.delay_ms,
            destination=params.destination,
            destination_fallback=params.destination_fallback,
        )
        try:
            result = await self.ledger.submit_transfer(
                sender, params.destination, params.amount, cfg.denom, cfg.fee, cfg.memo_for(params.index)
            )
        except Exception as e:
            log.error("TX %s failed with error: %s", params.index, e)
            return TransferAttempt(
                outcome=Outcome.SUBMIT_ERROR,
                error=str(e) or e.__class__.__name__,
                error_payload=getattr(e, "payload", None),
                **common,
            )

        if result.code == 0:
            log.info("TX %s successful! Tx Hash: %s", params.index, result.tx_hash)
            return TransferAttempt(outcome=Outcome.SUCCESS, tx_hash=result.tx_hash, code=0, raw_log=result.raw_log, **common)

        log.error("TX %s failed with code %s: %s", params.index, result.code, result.raw_log)
        return TransferAttempt(
            outcome=Outcome.CHAIN_REJECTED,
            tx_hash=result.tx_hash,
            code=result.code,
            raw_log=result.raw_log,
            **common,
        )

    async def run(self) -> RunReport:
        report = await self.precheck()
        cfg = self.config
        sender = report.sender

        self.state = SchedulerState.RUNNING
        for i in range(1, cfg.tx_count + 1):
            if self.stop.is_set():
                log.warning("Stop requested, ending run after %s/%s attempts", len(report.attempts), cfg.tx_count)
                report.cancelled = True
                break

            params = await derive_attempt(i, cfg, sender, self.ledger, self.rng)
            log.info("TX %s/%s: Sending %s %s to %s", i, cfg.tx_count, params.amount, cfg.denom, params.destination)
            log.info("Waiting %.1f seconds before sending...", params.delay_ms / 1000)
            await self._pause(params.delay_ms)

            attempt = await self.submit(params, sender)
            report.record(attempt)
            if self.on_attempt is not None:
                self.on_attempt(attempt)

            if i < cfg.tx_count:
                await self._pause(cfg.cooldown_ms)

        self.state = SchedulerState.DONE
        log.info("Run finished: %s/%s successful, %s %s sent", report.success_count, cfg.tx_count, report.total_sent, cfg.denom)

        if report.success_count > 0:
            try:
                report.final_balance = await self.ledger.get_balance(sender, cfg.denom)
            except Exception as e:
                log.warning("Could not fetch final balance: %s", e)
        return report


async def run_transfers(config: RunConfig, ledger: LedgerClient, **kwargs) -> RunReport:
    return await TransactionScheduler(config, ledger, **kwargs).run()
