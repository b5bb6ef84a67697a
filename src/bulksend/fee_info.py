"""Fee escalation snapshot used to pick a fee when the operator asks for ``auto``."""

from dataclasses import dataclass

from bulksend.constants import MAX_FEE_DROPS
from bulksend.errors import ConfigError


@dataclass(frozen=True)
class FeeInfo:
    """Drops figures from the rippled ``fee`` command, valid for the current open ledger only."""

    base_fee: int
    minimum_fee: int  # lowest fee the queue accepts right now
    open_ledger_fee: int  # fee that skips the queue

    @classmethod
    def from_fee_result(cls, result: dict) -> "FeeInfo":
        drops = result["drops"]
        return cls(
            base_fee=int(drops["base_fee"]),
            minimum_fee=int(drops["minimum_fee"]),
            open_ledger_fee=int(drops["open_ledger_fee"]),
        )

    @property
    def escalated(self) -> bool:
        return self.minimum_fee > self.base_fee

    def suggested_fee(self, cap: int = MAX_FEE_DROPS) -> int:
        """Fee that gets a transaction into the queue, capped to avoid draining the account.

        ``minimum_fee`` equals ``base_fee`` while the queue has room and rises once it fills up.
        """
        fee = max(self.minimum_fee, self.base_fee)
        if fee > cap:
            raise ConfigError(
                f"Fee too high ({fee} drops > {cap} max) - queue is full. "
                f"Wait for the queue to clear or pass an explicit --fee."
            )
        return fee
