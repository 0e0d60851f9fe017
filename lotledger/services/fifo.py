"""FIFO ledger: BUY appends a purchase lot, SELL consumes lots oldest-first.

The cost a sale consumes from a lot is always the lot's original unit cost
(price plus the amortized buy fee). Corporate-action adjustments never feed
into realized P&L; they live in :mod:`lotledger.services.adjustments` as a
read-only view. Sell fees and selling tax only reduce proceeds.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from opentelemetry import trace

from ..core.config import get_settings
from ..errors import InsufficientLotsError, ValidationError
from ..models import LedgerTrade, PurchaseLot, TradeSide
from ..money import ZERO, quantize_money, to_decimal
from .store import LedgerStore, LotKey

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class LotLike(Protocol):
    id: int
    purchase_date: date
    quantity: int
    total_cost: Decimal
    remaining_quantity: int


@dataclass(frozen=True)
class LotConsumption:
    """Shares a single sale drew from a single lot."""

    lot_id: int
    purchase_date: date
    quantity: int
    unit_cost: Decimal
    cost: Decimal
    remaining_after: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "lot_id": self.lot_id,
            "purchase_date": self.purchase_date.isoformat(),
            "quantity": self.quantity,
            "unit_cost": str(self.unit_cost),
            "cost": str(self.cost),
            "remaining_after": self.remaining_after,
        }


@dataclass
class SellOutcome:
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
    lots_used: list[LotConsumption] = field(default_factory=list)
    trade_id: int | None = None


@dataclass(frozen=True)
class OpenCostBasis:
    """Unadjusted cost basis of the shares still held for one key."""

    ticker: str
    account_id: str
    quantity: int
    total_cost: Decimal
    average_cost: Decimal


def to_quantity(value: object, field_name: str = "quantity") -> int:
    """Share counts are whole numbers greater than zero."""

    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number")
    if isinstance(value, int):
        quantity = value
    else:
        amount = to_decimal(value, field_name)
        if amount != amount.to_integral_value():
            raise ValidationError(f"{field_name} must be a whole number")
        quantity = int(amount)
    if quantity <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return quantity


def to_trade_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    raise ValidationError("A trade date is required")


def _positive(value: object, field_name: str) -> Decimal:
    amount = to_decimal(value, field_name)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return amount


def _non_negative(value: object, field_name: str) -> Decimal:
    amount = to_decimal(value, field_name)
    if amount < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return amount


def lot_unit_cost(lot: LotLike, quantum: Decimal | None = None) -> Decimal:
    return quantize_money(Decimal(lot.total_cost) / Decimal(lot.quantity), quantum)


def plan_fifo_consumption(
    lots: Sequence[LotLike],
    quantity: int,
    *,
    ticker: str = "",
    quantum: Decimal | None = None,
) -> list[LotConsumption]:
    """Decide which lots a sale of ``quantity`` shares draws from.

    Lots are walked by purchase date, ties broken by lot id. Raises
    :class:`InsufficientLotsError` when the open lots hold fewer shares than
    requested. The lots themselves are not modified.
    """

    open_lots = sorted(
        (lot for lot in lots if lot.remaining_quantity > 0),
        key=lambda lot: (lot.purchase_date, lot.id),
    )
    available = sum(lot.remaining_quantity for lot in open_lots)
    if not open_lots or available < quantity:
        raise InsufficientLotsError(ticker, quantity, available)

    remaining_to_sell = quantity
    consumptions: list[LotConsumption] = []
    for lot in open_lots:
        if remaining_to_sell <= 0:
            break
        take = min(remaining_to_sell, lot.remaining_quantity)
        unit_cost = lot_unit_cost(lot, quantum)
        consumptions.append(
            LotConsumption(
                lot_id=lot.id,
                purchase_date=lot.purchase_date,
                quantity=take,
                unit_cost=unit_cost,
                cost=unit_cost * take,
                remaining_after=lot.remaining_quantity - take,
            )
        )
        remaining_to_sell -= take
    return consumptions


def build_sell_outcome(
    consumptions: Sequence[LotConsumption],
    *,
    ticker: str,
    account_id: str,
    quantity: int,
    price: Decimal,
    fee: Decimal,
    tax_rate_percent: Decimal,
    quantum: Decimal | None = None,
) -> SellOutcome:
    gross = price * quantity
    selling_tax = quantize_money(gross * tax_rate_percent / Decimal("100"), quantum)
    net_proceeds = gross - fee - selling_tax
    total_cogs = sum((c.cost for c in consumptions), ZERO)
    return SellOutcome(
        ticker=ticker,
        account_id=account_id,
        quantity=quantity,
        price=price,
        fee=fee,
        tax_rate_percent=tax_rate_percent,
        gross_sell_value=gross,
        selling_tax=selling_tax,
        net_proceeds=net_proceeds,
        total_cogs=total_cogs,
        profit_or_loss=net_proceeds - total_cogs,
        lots_used=list(consumptions),
    )


async def record_buy(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    quantity: object,
    price: object,
    fee: object,
    trade_date: object,
) -> PurchaseLot:
    """Append a purchase lot; total cost capitalizes the buy fee."""

    key = LotKey.build(owner_id, account_id, ticker)
    qty = to_quantity(quantity)
    unit_price = _positive(price, "price")
    buy_fee = _non_negative(fee, "fee")
    purchase_date = to_trade_date(trade_date)
    total_cost = unit_price * qty + buy_fee

    with tracer.start_as_current_span("ledger.record_buy") as span:
        span.set_attribute("ledger.ticker", key.ticker)
        span.set_attribute("ledger.quantity", qty)
        async with store.unit_of_work():
            lot = PurchaseLot(
                owner_id=key.owner_id,
                account_id=key.account_id,
                ticker=key.ticker,
                purchase_date=purchase_date,
                quantity=qty,
                price_per_share=unit_price,
                buy_fee=buy_fee,
                total_cost=total_cost,
                remaining_quantity=qty,
            )
            await store.add(lot)
            await store.add(
                LedgerTrade(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    ticker=key.ticker,
                    side=TradeSide.BUY,
                    trade_date=purchase_date,
                    quantity=qty,
                    price=unit_price,
                    fee=buy_fee,
                    lot_id=lot.id,
                    total_cost=total_cost,
                )
            )
    logger.info("Recorded BUY lot %s: %s x %s %s (cost %s)", lot.id, qty, key.ticker, unit_price, total_cost)
    return lot


async def record_sell(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    quantity: object,
    price: object,
    fee: object,
    tax_rate_percent: object | None,
    trade_date: object,
) -> SellOutcome:
    """Book a sale against the oldest open lots and return its realized P&L.

    The open lots are read with a row lock so two concurrent sales cannot
    spend the same shares; lot decrements and the SELL journal row commit as
    one unit, and any failure leaves every lot untouched.
    """

    key = LotKey.build(owner_id, account_id, ticker)
    qty = to_quantity(quantity)
    unit_price = _positive(price, "price")
    sell_fee = _non_negative(fee, "fee")
    settings = get_settings()
    rate = settings.sell_tax_rate_percent if tax_rate_percent is None else to_decimal(tax_rate_percent, "tax rate")
    if rate < 0 or rate > 100:
        raise ValidationError("tax rate percent must be between 0 and 100")
    sell_date = to_trade_date(trade_date)
    quantum = settings.money_quantum

    with tracer.start_as_current_span("ledger.record_sell") as span:
        span.set_attribute("ledger.ticker", key.ticker)
        span.set_attribute("ledger.quantity", qty)
        async with store.unit_of_work():
            lots = await store.open_lots(key, for_update=True)
            try:
                consumptions = plan_fifo_consumption(lots, qty, ticker=key.ticker, quantum=quantum)
            except InsufficientLotsError as exc:
                logger.warning(
                    "Rejected SELL of %s %s in account %s: only %s available",
                    qty,
                    key.ticker,
                    key.account_id,
                    exc.available,
                )
                raise
            outcome = build_sell_outcome(
                consumptions,
                ticker=key.ticker,
                account_id=key.account_id,
                quantity=qty,
                price=unit_price,
                fee=sell_fee,
                tax_rate_percent=rate,
                quantum=quantum,
            )
            lots_by_id = {lot.id: lot for lot in lots}
            for consumption in consumptions:
                lots_by_id[consumption.lot_id].remaining_quantity = consumption.remaining_after
            trade = await store.add(
                LedgerTrade(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    ticker=key.ticker,
                    side=TradeSide.SELL,
                    trade_date=sell_date,
                    quantity=qty,
                    price=unit_price,
                    fee=sell_fee,
                    tax_rate_percent=rate,
                    gross_sell_value=outcome.gross_sell_value,
                    selling_tax=outcome.selling_tax,
                    net_proceeds=outcome.net_proceeds,
                    total_cogs=outcome.total_cogs,
                    realized_pl=outcome.profit_or_loss,
                    lots_used=[c.as_dict() for c in consumptions],
                )
            )
            outcome.trade_id = trade.id
        span.set_attribute("ledger.lots_used", len(consumptions))
    logger.info(
        "Recorded SELL %s x %s @ %s across %d lot(s): COGS %s, P&L %s",
        qty,
        key.ticker,
        unit_price,
        len(consumptions),
        outcome.total_cogs,
        outcome.profit_or_loss,
    )
    return outcome


async def current_average_cost(
    store: LedgerStore, owner_id: str, account_id: str, ticker: str
) -> OpenCostBasis:
    """Unadjusted average cost of the open shares; zeros when nothing is held."""

    key = LotKey.build(owner_id, account_id, ticker)
    lots = await store.open_lots(key)
    quantity = sum(lot.remaining_quantity for lot in lots)
    total_cost = sum((lot.remaining_quantity * lot_unit_cost(lot) for lot in lots), ZERO)
    average = quantize_money(total_cost / quantity) if quantity else ZERO
    return OpenCostBasis(
        ticker=key.ticker,
        account_id=key.account_id,
        quantity=quantity,
        total_cost=total_cost,
        average_cost=average,
    )


__all__ = [
    "LotConsumption",
    "OpenCostBasis",
    "SellOutcome",
    "build_sell_outcome",
    "current_average_cost",
    "lot_unit_cost",
    "plan_fifo_consumption",
    "record_buy",
    "record_sell",
    "to_quantity",
    "to_trade_date",
]
