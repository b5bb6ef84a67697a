"""Run data structures.

Amounts are integers in the smallest unit of the denom (drops for XRP).
"""

from dataclasses import dataclass, field

from bulksend.constants import DEFAULT_COOLDOWN_MS, DestinationMode, Outcome


@dataclass(frozen=True, slots=True)
class Fee:
    denom: str
    amount: int
    gas_limit: int  # not used by the XRPL client, fees there are flat


@dataclass(frozen=True, slots=True)
class RunConfig:
    tx_count: int
    min_amount: int
    max_amount: int
    min_delay_ms: int
    max_delay_ms: int
    destination_mode: DestinationMode
    denom: str
    fee: Fee
    memo_prefix: str
    cooldown_ms: int = DEFAULT_COOLDOWN_MS

    @property
    def estimated_cost(self) -> int:
        """Worst case spend: every attempt at max_amount plus the fee."""
        return self.tx_count * (self.max_amount + self.fee.amount)

    def memo_for(self, index: int) -> str:
        return f"{self.memo_prefix}-{index}"


@dataclass(frozen=True, slots=True)
class TransferResult:
    code: int
    tx_hash: str | None
    raw_log: str = ""


@dataclass(frozen=True, slots=True)
class AttemptParams:
    index: int
    amount: int
    delay_ms: int
    destination: str
    destination_fallback: bool = False


@dataclass(frozen=True, slots=True)
class TransferAttempt:
    index: int
    amount: int
    delay_ms: int
    destination: str
    outcome: Outcome
    tx_hash: str | None = None
    code: int | None = None
    raw_log: str | None = None
    error: str | None = None
    error_payload: object = None
    destination_fallback: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    def __str__(self):
        return f"TX {self.index} -- {self.amount} -> {self.destination} -- {self.outcome}"


@dataclass(slots=True)
class RunReport:
    sender: str
    tx_count: int
    initial_balance: int | None = None
    attempts: list[TransferAttempt] = field(default_factory=list)
    success_count: int = 0
    total_sent: int = 0
    final_balance: int | None = None
    cancelled: bool = False

    def record(self, attempt: TransferAttempt) -> None:
        """Append an attempt and update the running totals in the same step."""
        if self.attempts and attempt.index <= self.attempts[-1].index:
            raise ValueError(f"attempt {attempt.index} recorded out of order")
        self.attempts.append(attempt)
        if attempt.succeeded:
            self.success_count += 1
            self.total_sent += attempt.amount

    @property
    def failure_count(self) -> int:
        return len(self.attempts) - self.success_count

    @property
    def fallback_count(self) -> int:
        return sum(1 for a in self.attempts if a.destination_fallback)

    @property
    def success_rate(self) -> float:
        if not self.tx_count:
            return 0.0
        return self.success_count / self.tx_count * 100

    def by_outcome(self, outcome: Outcome) -> list[TransferAttempt]:
        return [a for a in self.attempts if a.outcome is outcome]
