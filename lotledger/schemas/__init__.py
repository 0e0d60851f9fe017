"""Schema exports for the ledger API."""

from .ledger import (
    AdjustedLotSchema,
    AdjustedPositionSchema,
    AdjustmentSchema,
    AdjustmentUpdateRequest,
    BuyRequest,
    CashDividendRequest,
    CashDividendSchema,
    CostBasisComparisonSchema,
    LotConsumptionSchema,
    PositionSchema,
    PurchaseLotSchema,
    SellOutcomeSchema,
    SellRequest,
    StockDividendRequest,
    StockDividendSchema,
    StockSplitRequest,
    StockSplitSchema,
)

__all__ = [
    "AdjustedLotSchema",
    "AdjustedPositionSchema",
    "AdjustmentSchema",
    "AdjustmentUpdateRequest",
    "BuyRequest",
    "CashDividendRequest",
    "CashDividendSchema",
    "CostBasisComparisonSchema",
    "LotConsumptionSchema",
    "PositionSchema",
    "PurchaseLotSchema",
    "SellOutcomeSchema",
    "SellRequest",
    "StockDividendRequest",
    "StockDividendSchema",
    "StockSplitRequest",
    "StockSplitSchema",
]
