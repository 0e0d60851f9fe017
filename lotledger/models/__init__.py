"""Model exports for the lot ledger."""

from .adjustment import AdjustmentKind, CorporateActionAdjustment
from .fee import AccountFee, FeeKind
from .lot import PurchaseLot
from .trade import LedgerTrade, TradeSide

__all__ = [
    "AccountFee",
    "AdjustmentKind",
    "CorporateActionAdjustment",
    "FeeKind",
    "LedgerTrade",
    "PurchaseLot",
    "TradeSide",
]
