"""Corporate-action adjustment engine.

Adjusted cost basis is a derived view: lots plus active adjustments are folded
on every read and nothing is written back to ``purchase_lot``. Per lot, every
active adjustment dated on or after the purchase date is applied in event
order:

* ``CASH_DIVIDEND`` lowers the lot's total cost by the shares still held at
  that step times the dividend per share (the total may go negative).
* ``STOCK_DIVIDEND`` and ``STOCK_SPLIT`` multiply quantity and remaining
  quantity by the ratio, floored to whole shares; total cost is unchanged.

The realized P&L already booked by :mod:`lotledger.services.fifo` is never
affected by anything in this module.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from opentelemetry import trace

from ..core.config import get_settings
from ..db.base import utcnow
from ..errors import AdjustmentNotFoundError, NoOpenLotsError, ValidationError
from ..models import AccountFee, AdjustmentKind, CorporateActionAdjustment, FeeKind, PurchaseLot
from ..money import ZERO, floor_shares, quantize_money, to_decimal
from .fifo import current_average_cost, to_trade_date
from .store import LedgerStore, LotKey

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AdjustmentLike(Protocol):
    id: int
    kind: AdjustmentKind
    event_date: date
    is_active: bool
    dividend_per_share: Decimal | None
    ratio: Decimal | None


@dataclass(frozen=True)
class AdjustedLot:
    lot_id: int
    purchase_date: date
    quantity: int
    remaining_quantity: int
    total_cost: Decimal
    cost_per_share: Decimal
    applied_adjustment_ids: tuple[int, ...] = ()
    # Fractional remaining shares dropped by floor truncation, for cash-in-lieu.
    discarded_fraction: Decimal = ZERO

    @property
    def applied_adjustments(self) -> int:
        return len(self.applied_adjustment_ids)

    @property
    def open_cost(self) -> Decimal:
        return self.remaining_quantity * self.cost_per_share


@dataclass
class AdjustedPosition:
    owner_id: str
    account_id: str
    ticker: str
    total_quantity: int = 0
    total_cost: Decimal = ZERO
    average_cost: Decimal = ZERO
    applied_adjustments: int = 0
    lots: list[AdjustedLot] = field(default_factory=list)


@dataclass(frozen=True)
class CostBasisComparison:
    ticker: str
    account_id: str
    original_quantity: int
    original_total_cost: Decimal
    original_average_cost: Decimal
    adjusted: AdjustedPosition

    @property
    def quantity_diff(self) -> int:
        return self.adjusted.total_quantity - self.original_quantity

    @property
    def cost_diff(self) -> Decimal:
        return self.adjusted.total_cost - self.original_total_cost

    @property
    def average_cost_diff(self) -> Decimal:
        return self.adjusted.average_cost - self.original_average_cost


@dataclass(frozen=True)
class CashDividendResult:
    adjustment: CorporateActionAdjustment
    fee: AccountFee
    total_shares: int
    gross_dividend: Decimal
    tax_withheld: Decimal
    net_dividend: Decimal


@dataclass(frozen=True)
class StockDividendResult:
    adjustment: CorporateActionAdjustment
    total_shares: int
    bonus_shares: int


@dataclass(frozen=True)
class StockSplitResult:
    adjustment: CorporateActionAdjustment
    shares_before: int
    shares_after: int


def _adjust_lot(lot: PurchaseLot, adjustments: Sequence[AdjustmentLike], quantum: Decimal) -> AdjustedLot:
    effective = [
        adj for adj in adjustments if adj.is_active and adj.event_date >= lot.purchase_date
    ]
    effective.sort(key=lambda adj: adj.event_date)

    quantity = int(lot.quantity)
    remaining = int(lot.remaining_quantity)
    total_cost = Decimal(lot.total_cost)
    discarded = ZERO
    for adj in effective:
        if adj.kind == AdjustmentKind.CASH_DIVIDEND:
            total_cost -= remaining * Decimal(adj.dividend_per_share)
        elif adj.kind in (AdjustmentKind.STOCK_DIVIDEND, AdjustmentKind.STOCK_SPLIT):
            ratio = Decimal(adj.ratio)
            scaled_remaining = remaining * ratio
            quantity = floor_shares(quantity * ratio)
            remaining = floor_shares(scaled_remaining)
            discarded += scaled_remaining - remaining
        else:  # pragma: no cover - guarded by the enum column
            raise ValidationError(f"Unsupported adjustment kind: {adj.kind}")

    cost_per_share = quantize_money(total_cost / quantity, quantum) if quantity else ZERO
    return AdjustedLot(
        lot_id=lot.id,
        purchase_date=lot.purchase_date,
        quantity=quantity,
        remaining_quantity=remaining,
        total_cost=total_cost,
        cost_per_share=cost_per_share,
        applied_adjustment_ids=tuple(adj.id for adj in effective),
        discarded_fraction=discarded,
    )


def apply_adjustments(
    lots: Iterable[PurchaseLot],
    adjustments: Iterable[AdjustmentLike],
    *,
    quantum: Decimal | None = None,
) -> list[AdjustedLot]:
    """Fold active adjustments over each lot; inputs are left untouched."""

    if quantum is None:
        quantum = get_settings().money_quantum
    adjustment_list = list(adjustments)
    return [_adjust_lot(lot, adjustment_list, quantum) for lot in lots]


def summarize_position(key: LotKey, adjusted_lots: list[AdjustedLot]) -> AdjustedPosition:
    total_quantity = sum(lot.remaining_quantity for lot in adjusted_lots)
    total_cost = sum((lot.open_cost for lot in adjusted_lots), ZERO)
    average = quantize_money(total_cost / total_quantity) if total_quantity else ZERO
    applied = {adj_id for lot in adjusted_lots for adj_id in lot.applied_adjustment_ids}
    return AdjustedPosition(
        owner_id=key.owner_id,
        account_id=key.account_id,
        ticker=key.ticker,
        total_quantity=total_quantity,
        total_cost=total_cost,
        average_cost=average,
        applied_adjustments=len(applied),
        lots=adjusted_lots,
    )


async def calculate_adjusted_position(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    as_of_date: date | None = None,
) -> AdjustedPosition:
    """Adjusted cost basis of the open shares for one key."""

    key = LotKey.build(owner_id, account_id, ticker)
    lots = await store.open_lots(key)
    if not lots:
        return AdjustedPosition(owner_id=key.owner_id, account_id=key.account_id, ticker=key.ticker)
    adjustments = await store.active_adjustments(key, as_of_date=as_of_date)
    position = summarize_position(key, apply_adjustments(lots, adjustments))
    logger.debug(
        "Adjusted %s/%s: %s shares, cost %s, %d adjustment(s)",
        key.account_id,
        key.ticker,
        position.total_quantity,
        position.total_cost,
        position.applied_adjustments,
    )
    return position


async def calculate_adjusted_portfolio(
    store: LedgerStore,
    owner_id: str,
    account_id: str | None = None,
    as_of_date: date | None = None,
) -> list[AdjustedPosition]:
    positions: list[AdjustedPosition] = []
    for key in await store.open_lot_keys(owner_id, account_id):
        position = await calculate_adjusted_position(
            store, key.owner_id, key.account_id, key.ticker, as_of_date
        )
        if position.total_quantity > 0:
            positions.append(position)
    return positions


async def compare_cost_basis(
    store: LedgerStore, owner_id: str, account_id: str, ticker: str
) -> CostBasisComparison:
    original = await current_average_cost(store, owner_id, account_id, ticker)
    adjusted = await calculate_adjusted_position(store, owner_id, account_id, ticker)
    return CostBasisComparison(
        ticker=original.ticker,
        account_id=original.account_id,
        original_quantity=original.quantity,
        original_total_cost=original.total_cost,
        original_average_cost=original.average_cost,
        adjusted=adjusted,
    )


def _coerce_kind(kind: AdjustmentKind | str) -> AdjustmentKind:
    if isinstance(kind, AdjustmentKind):
        return kind
    try:
        return AdjustmentKind(str(kind).upper())
    except ValueError as exc:
        raise ValidationError(f"Unsupported adjustment kind: {kind}") from exc


def validate_adjustment_payload(
    kind: AdjustmentKind | str,
    *,
    dividend_per_share: object = None,
    tax_rate: object = None,
    ratio: object = None,
) -> AdjustmentKind:
    """Reject payloads that are missing or out of range for ``kind``."""

    resolved = _coerce_kind(kind)
    if resolved == AdjustmentKind.CASH_DIVIDEND:
        if dividend_per_share is None:
            raise ValidationError("Dividend per share is required")
        if to_decimal(dividend_per_share, "dividend per share") <= 0:
            raise ValidationError("Dividend per share must be greater than 0")
        if tax_rate is None:
            raise ValidationError("Tax rate is required")
        rate = to_decimal(tax_rate, "tax rate")
        if rate < 0 or rate > 1:
            raise ValidationError("Tax rate must be between 0 and 1")
    else:
        if ratio is None:
            raise ValidationError("Ratio is required")
        if to_decimal(ratio, "ratio") <= 0:
            raise ValidationError("Ratio must be greater than 0")
    return resolved


async def _require_open_lots(store: LedgerStore, key: LotKey) -> list[PurchaseLot]:
    lots = await store.open_lots(key)
    if not lots:
        raise NoOpenLotsError(key.ticker, key.account_id)
    return lots


async def process_cash_dividend(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    dividend_per_share: object,
    event_date: object,
    tax_rate: object | None = None,
    description: str | None = None,
    external_ref: str | None = None,
) -> CashDividendResult:
    """Record a cash dividend and the DIVIDEND_TAX fee withheld on it."""

    key = LotKey.build(owner_id, account_id, ticker)
    settings = get_settings()
    rate = settings.dividend_tax_rate if tax_rate is None else tax_rate
    validate_adjustment_payload(AdjustmentKind.CASH_DIVIDEND, dividend_per_share=dividend_per_share, tax_rate=rate)
    per_share = to_decimal(dividend_per_share, "dividend per share")
    rate = to_decimal(rate, "tax rate")
    ex_date = to_trade_date(event_date)

    with tracer.start_as_current_span("ledger.corporate_action") as span:
        span.set_attribute("ledger.kind", AdjustmentKind.CASH_DIVIDEND.value)
        span.set_attribute("ledger.ticker", key.ticker)
        async with store.unit_of_work():
            lots = await _require_open_lots(store, key)
            total_shares = sum(lot.remaining_quantity for lot in lots)
            gross = total_shares * per_share
            tax = quantize_money(gross * rate, settings.money_quantum)
            adjustment = await store.add(
                CorporateActionAdjustment(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    ticker=key.ticker,
                    kind=AdjustmentKind.CASH_DIVIDEND,
                    event_date=ex_date,
                    dividend_per_share=per_share,
                    tax_rate=rate,
                    is_active=True,
                    description=description or f"Cash dividend {key.ticker} - {per_share}/share",
                    external_ref=external_ref,
                )
            )
            fee = await store.add(
                AccountFee(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    kind=FeeKind.DIVIDEND_TAX,
                    amount=tax,
                    fee_date=ex_date,
                    description=f"Dividend tax {key.ticker} - {per_share}/share x {total_shares} shares",
                    reference_number=external_ref,
                    is_active=True,
                )
            )
    logger.info(
        "Cash dividend %s for %s: %s shares, gross %s, tax %s (adjustment %s, fee %s)",
        per_share,
        key.ticker,
        total_shares,
        gross,
        tax,
        adjustment.id,
        fee.id,
    )
    return CashDividendResult(
        adjustment=adjustment,
        fee=fee,
        total_shares=total_shares,
        gross_dividend=gross,
        tax_withheld=tax,
        net_dividend=gross - tax,
    )


async def process_stock_dividend(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    dividend_ratio: object,
    event_date: object,
    description: str | None = None,
    external_ref: str | None = None,
) -> StockDividendResult:
    """Record a stock dividend; ``dividend_ratio`` 0.1 means one bonus share per ten."""

    key = LotKey.build(owner_id, account_id, ticker)
    validate_adjustment_payload(AdjustmentKind.STOCK_DIVIDEND, ratio=dividend_ratio)
    bonus_ratio = to_decimal(dividend_ratio, "ratio")
    ex_date = to_trade_date(event_date)

    with tracer.start_as_current_span("ledger.corporate_action") as span:
        span.set_attribute("ledger.kind", AdjustmentKind.STOCK_DIVIDEND.value)
        span.set_attribute("ledger.ticker", key.ticker)
        async with store.unit_of_work():
            lots = await _require_open_lots(store, key)
            total_shares = sum(lot.remaining_quantity for lot in lots)
            adjustment = await store.add(
                CorporateActionAdjustment(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    ticker=key.ticker,
                    kind=AdjustmentKind.STOCK_DIVIDEND,
                    event_date=ex_date,
                    ratio=Decimal("1") + bonus_ratio,
                    is_active=True,
                    description=description or f"Stock dividend {key.ticker} - {bonus_ratio * 100}%",
                    external_ref=external_ref,
                )
            )
    bonus_shares = floor_shares(total_shares * bonus_ratio)
    logger.info(
        "Stock dividend %s for %s: %s bonus shares on %s (adjustment %s)",
        bonus_ratio,
        key.ticker,
        bonus_shares,
        total_shares,
        adjustment.id,
    )
    return StockDividendResult(adjustment=adjustment, total_shares=total_shares, bonus_shares=bonus_shares)


async def process_stock_split(
    store: LedgerStore,
    owner_id: str,
    account_id: str,
    ticker: str,
    split_ratio: object,
    event_date: object,
    description: str | None = None,
    external_ref: str | None = None,
) -> StockSplitResult:
    key = LotKey.build(owner_id, account_id, ticker)
    validate_adjustment_payload(AdjustmentKind.STOCK_SPLIT, ratio=split_ratio)
    ratio = to_decimal(split_ratio, "ratio")
    ex_date = to_trade_date(event_date)

    with tracer.start_as_current_span("ledger.corporate_action") as span:
        span.set_attribute("ledger.kind", AdjustmentKind.STOCK_SPLIT.value)
        span.set_attribute("ledger.ticker", key.ticker)
        async with store.unit_of_work():
            lots = await _require_open_lots(store, key)
            shares_before = sum(lot.remaining_quantity for lot in lots)
            adjustment = await store.add(
                CorporateActionAdjustment(
                    owner_id=key.owner_id,
                    account_id=key.account_id,
                    ticker=key.ticker,
                    kind=AdjustmentKind.STOCK_SPLIT,
                    event_date=ex_date,
                    ratio=ratio,
                    is_active=True,
                    description=description or f"Stock split {key.ticker} - {ratio}:1",
                    external_ref=external_ref,
                )
            )
    shares_after = floor_shares(shares_before * ratio)
    logger.info(
        "Stock split %s for %s: %s -> %s shares (adjustment %s)",
        ratio,
        key.ticker,
        shares_before,
        shares_after,
        adjustment.id,
    )
    return StockSplitResult(adjustment=adjustment, shares_before=shares_before, shares_after=shares_after)


async def list_adjustments(
    store: LedgerStore,
    owner_id: str,
    *,
    ticker: str | None = None,
    account_id: str | None = None,
    kind: AdjustmentKind | str | None = None,
    active: bool | None = None,
) -> list[CorporateActionAdjustment]:
    resolved = _coerce_kind(kind) if kind is not None else None
    return await store.list_adjustments(owner_id, ticker=ticker, account_id=account_id, kind=resolved, active=active)


async def set_adjustment_active(
    store: LedgerStore, owner_id: str, adjustment_id: int, active: bool
) -> CorporateActionAdjustment:
    async with store.unit_of_work():
        adjustment = await store.get_adjustment(owner_id, adjustment_id)
        if adjustment is None:
            raise AdjustmentNotFoundError(adjustment_id)
        adjustment.is_active = active
        adjustment.updated_at = utcnow()
        await store.flush()
    logger.info("Adjustment %s %s", adjustment_id, "activated" if active else "deactivated")
    return adjustment


async def delete_adjustment(store: LedgerStore, owner_id: str, adjustment_id: int) -> None:
    async with store.unit_of_work():
        adjustment = await store.get_adjustment(owner_id, adjustment_id)
        if adjustment is None:
            raise AdjustmentNotFoundError(adjustment_id)
        ticker = adjustment.ticker
        await store.delete(adjustment)
    logger.info("Deleted adjustment %s for %s", adjustment_id, ticker)


__all__ = [
    "AdjustedLot",
    "AdjustedPosition",
    "CashDividendResult",
    "CostBasisComparison",
    "StockDividendResult",
    "StockSplitResult",
    "apply_adjustments",
    "calculate_adjusted_portfolio",
    "calculate_adjusted_position",
    "compare_cost_basis",
    "delete_adjustment",
    "list_adjustments",
    "process_cash_dividend",
    "process_stock_dividend",
    "process_stock_split",
    "set_adjustment_active",
    "summarize_position",
    "validate_adjustment_payload",
]
