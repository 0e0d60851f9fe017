"""Trade journal rows; a SELL row carries its realized outcome."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Date, DateTime, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.base import Base, utcnow


class TradeSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class LedgerTrade(Base):
    __tablename__ = "ledger_trade"
    __table_args__ = (
        Index("ix_ledger_trade_owner_date", "owner_id", "trade_date", "id"),
        Index("ix_ledger_trade_key", "owner_id", "account_id", "ticker"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64))
    account_id: Mapped[str] = mapped_column(String(64))
    ticker: Mapped[str] = mapped_column(String(20))
    side: Mapped[TradeSide] = mapped_column(Enum(TradeSide, name="trade_side"))
    trade_date: Mapped[date] = mapped_column(Date)
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(Numeric(24, 6))
    fee: Mapped[Decimal] = mapped_column(Numeric(24, 6), default=Decimal("0"))

    # BUY
    lot_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)

    # SELL
    tax_rate_percent: Mapped[Decimal | None] = mapped_column(Numeric(8, 4), nullable=True)
    gross_sell_value: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    selling_tax: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    net_proceeds: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    total_cogs: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    realized_pl: Mapped[Decimal | None] = mapped_column(Numeric(24, 6), nullable=True)
    lots_used: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


__all__ = ["LedgerTrade", "TradeSide"]
