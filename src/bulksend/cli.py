import argparse
import asyncio
import contextlib
import logging
import signal
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Any

from rich.console import Console
from rich.prompt import Confirm, FloatPrompt, IntPrompt, Prompt

from bulksend import config
from bulksend.config import LedgerSettings, RunSettings
from bulksend.constants import DestinationMode
from bulksend.errors import ConfigError, InsufficientBalanceError, LedgerError
from bulksend.ledger import XrplLedgerClient
from bulksend.logging_config import setup_logging
from bulksend.randoms import new_source
from bulksend.report import format_amount, render_attempt, render_plan, render_summary
from bulksend.scheduler import TransactionScheduler

log = logging.getLogger("bulksend.cli")

console = Console()

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130

# argparse dest -> settings field, only these are passed on as overrides
SETTING_ARGS = (
    "tx_count",
    "min_amount",
    "max_amount",
    "min_delay",
    "max_delay",
    "destination_mode",
    "fee_amount",
    "memo_prefix",
    "rpc_url",
    "wait_for_validation",
)


def _xrp(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a valid XRP amount: {value!r}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bulksend", description="Send a series of randomized XRP payments from one account.")
    parser.add_argument("-n", "--count", dest="tx_count", type=int, help="Number of transactions to send.")
    parser.add_argument("--min-amount", type=_xrp, help="Minimum amount per transaction, in XRP.")
    parser.add_argument("--max-amount", type=_xrp, help="Maximum amount per transaction, in XRP.")
    parser.add_argument("--min-delay", type=float, help="Minimum delay before each transaction, in seconds.")
    parser.add_argument("--max-delay", type=float, help="Maximum delay before each transaction, in seconds.")
    parser.add_argument("-m", "--mode", dest="destination_mode", choices=[m.value for m in DestinationMode],
                        help="Send back to the sender (self) or to fresh throwaway addresses (random).")
    parser.add_argument("--fee", dest="fee_amount", help="Fee per transaction in drops, or 'auto'.")
    parser.add_argument("--memo", dest="memo_prefix", help="Memo prefix, the transaction number is appended.")
    parser.add_argument("--rpc-url", help="rippled JSON-RPC endpoint.")
    parser.add_argument("--no-wait", dest="wait_for_validation", action="store_false", default=None,
                        help="Classify on the preliminary submit result instead of waiting for validation.")
    parser.add_argument("--seed", dest="rng_seed", help="Seed for the amount/delay generator (reproducible runs).")
    parser.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation.")
    parser.add_argument("-i", "--interactive", action="store_true", help="Prompt for each run setting.")
    parser.add_argument("--log-level", help="Overrides LOG_LEVEL.")
    return parser.parse_args(argv)


def overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {k: getattr(args, k) for k in SETTING_ARGS if getattr(args, k, None) is not None}


def prompt_overrides(settings: RunSettings) -> dict[str, Any]:
    mode = Prompt.ask(
        "Choose destination mode",
        choices=[m.value for m in DestinationMode],
        default=settings.destination_mode.value,
        console=console,
    )
    return {
        "destination_mode": mode,
        "tx_count": IntPrompt.ask("Enter number of transactions", default=settings.tx_count, console=console),
        "min_amount": Prompt.ask("Enter minimum amount (in XRP)", default=str(settings.min_amount), console=console),
        "max_amount": Prompt.ask("Enter maximum amount (in XRP)", default=str(settings.max_amount), console=console),
        "min_delay": FloatPrompt.ask("Enter minimum delay between TXs (seconds)", default=settings.min_delay, console=console),
        "max_delay": FloatPrompt.ask("Enter maximum delay between TXs (seconds)", default=settings.max_delay, console=console),
    }


@contextlib.contextmanager
def stop_on_interrupt(stop: asyncio.Event):
    """First Ctrl-C lets the current attempt finish and ends the run, the second one aborts."""
    loop = asyncio.get_running_loop()
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        if stop.is_set():
            raise KeyboardInterrupt
        console.print("\n[yellow]Stopping after the current transaction (Ctrl-C again to abort)[/]")
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def build_ledger(settings: LedgerSettings) -> XrplLedgerClient:
    return XrplLedgerClient(
        settings.rpc_url,
        settings.wallet_seed,
        algorithm=settings.algorithm,
        wait_for_validation=settings.wait_for_validation,
        validation_timeout=settings.validation_timeout,
    )


async def run(
    run_settings: RunSettings,
    ledger_settings: LedgerSettings,
    *,
    yes: bool = False,
    rng_seed: str | None = None,
    ledger: XrplLedgerClient | None = None,
) -> int:
    ledger = ledger or build_ledger(ledger_settings)

    console.print("Connecting to network...")
    try:
        await ledger.connect()
        fee = None
        if run_settings.fee_amount == "auto":
            fee_info = await ledger.get_fee_info()
            fee = fee_info.suggested_fee()
            log.info("Using fee of %s drops (base=%s, open ledger=%s)", fee, fee_info.base_fee, fee_info.open_ledger_fee)
        cfg = run_settings.to_run_config(fee)
        config.check_reserve(cfg, ledger.reserve_base)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        return EXIT_CONFIG
    except LedgerError as e:
        console.print(f"[red]Error:[/] {e}")
        return EXIT_FATAL

    if cfg.destination_mode is DestinationMode.SELF:
        log.warning("XRP payments from an account to itself are refused, every attempt will fail")
    render_plan(console, cfg, rpc_url=ledger_settings.rpc_url)
    if not yes and not Confirm.ask("Proceed with these settings?", default=True, console=console):
        console.print("Operation cancelled.")
        return EXIT_OK

    stop = asyncio.Event()
    scheduler = TransactionScheduler(
        cfg,
        ledger,
        rng=new_source(rng_seed),
        stop=stop,
        on_attempt=partial(render_attempt, console, cfg),
    )
    console.print("Starting transactions...")
    with stop_on_interrupt(stop):
        try:
            report = await scheduler.run()
        except InsufficientBalanceError as e:
            console.print(
                f"[red]Insufficient balance.[/] Need at least {format_amount(e.required)} {e.denom} "
                f"for {cfg.tx_count} transactions, have {format_amount(e.balance)} {e.denom}"
            )
            return EXIT_FATAL
        except LedgerError as e:
            console.print(f"[red]Error:[/] {e}")
            if e.payload:
                console.print(f"Response data: {e.payload}")
            return EXIT_FATAL

    render_summary(console, report, cfg)
    return EXIT_INTERRUPTED if report.cancelled else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        run_settings, ledger_settings = config.collect(overrides(args))
        setup_logging(args.log_level)
        if args.interactive:
            answers = prompt_overrides(run_settings)
            run_settings, ledger_settings = config.collect({**overrides(args), **answers}, dotenv=False)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        return EXIT_CONFIG
    except (KeyboardInterrupt, EOFError):
        console.print("\nOperation cancelled.")
        return EXIT_INTERRUPTED

    try:
        return asyncio.run(run(run_settings, ledger_settings, yes=args.yes, rng_seed=args.rng_seed))
    except KeyboardInterrupt:
        console.print("\n[red]Aborted.[/]")
        return EXIT_INTERRUPTED
