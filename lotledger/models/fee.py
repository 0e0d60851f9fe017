"""Account-level fee records, written by dividend intake."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.base import Base, utcnow


class FeeKind(str, enum.Enum):
    DIVIDEND_TAX = "DIVIDEND_TAX"


class AccountFee(Base):
    __tablename__ = "account_fee"
    __table_args__ = (Index("ix_account_fee_owner_account", "owner_id", "account_id", "fee_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64))
    account_id: Mapped[str] = mapped_column(String(64))
    kind: Mapped[FeeKind] = mapped_column(Enum(FeeKind, name="fee_kind"))
    amount: Mapped[Decimal] = mapped_column(Numeric(24, 6))
    fee_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


__all__ = ["AccountFee", "FeeKind"]
