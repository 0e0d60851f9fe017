"""Corporate-action events that adjust the cost basis of held lots."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.base import Base, utcnow


class AdjustmentKind(str, enum.Enum):
    CASH_DIVIDEND = "CASH_DIVIDEND"
    STOCK_DIVIDEND = "STOCK_DIVIDEND"
    STOCK_SPLIT = "STOCK_SPLIT"


class CorporateActionAdjustment(Base):
    __tablename__ = "corporate_action_adjustment"
    __table_args__ = (
        Index("ix_adjustment_key_event", "owner_id", "account_id", "ticker", "event_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    account_id: Mapped[str] = mapped_column(String(64))
    ticker: Mapped[str] = mapped_column(String(20))
    kind: Mapped[AdjustmentKind] = mapped_column(Enum(AdjustmentKind, name="adjustment_kind"))
    event_date: Mapped[date] = mapped_column(Date)
    dividend_per_share: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    tax_rate: Mapped[Decimal | None] = mapped_column(Numeric(8, 6), nullable=True)
    ratio: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


__all__ = ["AdjustmentKind", "CorporateActionAdjustment"]
