"""Exceptions raised by the collector, the ledger client and the scheduler.

Fatal errors (``ConfigError``, ``IdentityError``, ``NetworkError`` at startup,
``InsufficientBalanceError``) stop the run before any transfer is attempted.
``TransportError`` and ``ValidationError`` raised while submitting are caught by
the scheduler and recorded on the attempt instead.
"""

from typing import Any


class BulkSendError(Exception):
    pass


class ConfigError(BulkSendError):
    pass


class LedgerError(BulkSendError):
    def __init__(self, message: str, *, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload


class IdentityError(LedgerError):
    """The sender credential could not be turned into an address."""


class DerivationError(LedgerError):
    """A throwaway destination address could not be generated."""


class NetworkError(LedgerError):
    """The node could not be reached or answered with an error."""


class TransportError(LedgerError):
    """A transfer could not be delivered to the node."""


class ValidationError(LedgerError):
    """A transfer was refused locally before submission."""


class InsufficientBalanceError(BulkSendError):
    def __init__(self, balance: int, required: int, denom: str) -> None:
        self.balance = balance
        self.required = required
        self.denom = denom
        super().__init__(f"Insufficient balance: have {balance}, need at least {required} (smallest {denom} unit)")
