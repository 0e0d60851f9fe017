"""Domain errors raised by the ledger core."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger raises on purpose."""


class ValidationError(LedgerError, ValueError):
    """Rejected input; nothing was persisted."""


class InsufficientLotsError(LedgerError):
    """A sale asked for more shares than the open lots hold."""

    def __init__(self, ticker: str, requested: int, available: int) -> None:
        self.ticker = ticker
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient shares of {ticker} to sell: requested {requested}, available {available}"
        )


class NoOpenLotsError(InsufficientLotsError):
    """A corporate action was recorded for a key with no open lots."""

    def __init__(self, ticker: str, account_id: str) -> None:
        self.account_id = account_id
        LedgerError.__init__(self, f"No open lots found for {ticker} in account {account_id}")
        self.ticker = ticker
        self.requested = 0
        self.available = 0


class AdjustmentNotFoundError(LedgerError):
    def __init__(self, adjustment_id: int) -> None:
        self.adjustment_id = adjustment_id
        super().__init__(f"Adjustment {adjustment_id} not found")


class ConcurrencyConflictError(LedgerError):
    """Lock or serialization failure; the whole operation may be retried."""


class PersistenceError(LedgerError):
    """Storage failed; the unit of work was rolled back."""


__all__ = [
    "LedgerError",
    "ValidationError",
    "InsufficientLotsError",
    "NoOpenLotsError",
    "AdjustmentNotFoundError",
    "ConcurrencyConflictError",
    "PersistenceError",
]
