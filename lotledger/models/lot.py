"""Purchase lots: one row per BUY with a shrinking remaining quantity."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.base import Base, utcnow


class PurchaseLot(Base):
    __tablename__ = "purchase_lot"
    __table_args__ = (
        Index("ix_purchase_lot_key_open", "owner_id", "account_id", "ticker", "purchase_date", "id"),
        CheckConstraint("quantity > 0", name="ck_purchase_lot_quantity_positive"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_purchase_lot_remaining_bounds",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    account_id: Mapped[str] = mapped_column(String(64))
    ticker: Mapped[str] = mapped_column(String(20))
    purchase_date: Mapped[date] = mapped_column(Date)
    quantity: Mapped[int] = mapped_column(Integer)
    price_per_share: Mapped[Decimal] = mapped_column(Numeric(24, 6))
    buy_fee: Mapped[Decimal] = mapped_column(Numeric(24, 6), default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(24, 6))
    remaining_quantity: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return (
            f"PurchaseLot(id={self.id!r}, ticker={self.ticker!r}, purchase_date={self.purchase_date!r}, "
            f"quantity={self.quantity!r}, remaining_quantity={self.remaining_quantity!r})"
        )


__all__ = ["PurchaseLot"]
