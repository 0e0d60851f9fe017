"""Pydantic schemas for the ledger API."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ..models import AdjustmentKind


class TradeRequestBase(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=64)
    ticker: str = Field(..., min_length=1, max_length=20, examples=["VNM"])
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    trade_date: date


class BuyRequest(TradeRequestBase):
    pass


class SellRequest(TradeRequestBase):
    tax_rate_percent: Decimal | None = Field(
        default=None,
        ge=0,
        le=100,
        description="Selling tax in percent; the configured rate when omitted.",
    )


class PurchaseLotSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: str
    ticker: str
    purchase_date: date
    quantity: int
    price_per_share: Decimal
    buy_fee: Decimal
    total_cost: Decimal
    remaining_quantity: int


class LotConsumptionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lot_id: int
    purchase_date: date
    quantity: int
    unit_cost: Decimal
    cost: Decimal
    remaining_after: int


class SellOutcomeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trade_id: int | None = None
    ticker: str
    account_id: str
    quantity: int
    price: Decimal
    fee: Decimal
    tax_rate_percent: Decimal
    gross_sell_value: Decimal
    selling_tax: Decimal
    net_proceeds: Decimal
    total_cogs: Decimal
    profit_or_loss: Decimal
    lots_used: list[LotConsumptionSchema]


class PositionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticker: str
    account_id: str
    quantity: int
    total_cost: Decimal
    average_cost: Decimal


class AdjustedLotSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lot_id: int
    purchase_date: date
    quantity: int
    remaining_quantity: int
    total_cost: Decimal
    cost_per_share: Decimal
    applied_adjustments: int
    discarded_fraction: Decimal


class AdjustedPositionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticker: str
    total_quantity: int
    total_cost: Decimal
    average_cost: Decimal
    applied_adjustments: int
    lots: list[AdjustedLotSchema]


class CostBasisComparisonSchema(BaseModel):
    ticker: str
    account_id: str
    original_quantity: int
    original_total_cost: Decimal
    original_average_cost: Decimal
    adjusted: AdjustedPositionSchema
    quantity_diff: int
    cost_diff: Decimal
    average_cost_diff: Decimal


class CorporateActionRequestBase(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=64)
    ticker: str = Field(..., min_length=1, max_length=20)
    event_date: date
    description: str | None = Field(default=None, max_length=255)
    external_ref: str | None = Field(default=None, max_length=128)


class CashDividendRequest(CorporateActionRequestBase):
    dividend_per_share: Decimal
    tax_rate: Decimal | None = Field(
        default=None,
        description="Withholding rate as a fraction; the configured rate when omitted.",
    )


class StockDividendRequest(CorporateActionRequestBase):
    dividend_ratio: Decimal = Field(..., description="Bonus shares per share held, e.g. 0.1 for 10%.")


class StockSplitRequest(CorporateActionRequestBase):
    split_ratio: Decimal = Field(..., description="New shares per old share, e.g. 2 for a 2-for-1 split.")


class AdjustmentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: str
    ticker: str
    kind: AdjustmentKind
    event_date: date
    dividend_per_share: Decimal | None = None
    tax_rate: Decimal | None = None
    ratio: Decimal | None = None
    is_active: bool
    description: str | None = None
    external_ref: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AdjustmentUpdateRequest(BaseModel):
    is_active: bool


class CashDividendSchema(BaseModel):
    adjustment: AdjustmentSchema
    fee_id: int
    total_shares: int
    gross_dividend: Decimal
    tax_withheld: Decimal
    net_dividend: Decimal


class StockDividendSchema(BaseModel):
    adjustment: AdjustmentSchema
    total_shares: int
    bonus_shares: int


class StockSplitSchema(BaseModel):
    adjustment: AdjustmentSchema
    shares_before: int
    shares_after: int


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
