"""Net position summaries for display.

Positions are rebuilt by replaying the trade journal in trade-date order with
a running weighted-average cost: a BUY adds its shares and lot cost, a SELL
removes ``cost * shares_sold / quantity`` of cost. This is an approximation
for display and intentionally differs from the FIFO-exact cost of goods sold
booked by :func:`lotledger.services.fifo.record_sell`; the two are not
reconciled, so average cost here can differ from the cost of the lots still
open.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ..models import LedgerTrade, TradeSide
from ..money import ZERO, quantize_money
from .store import LedgerStore


@dataclass
class PositionSummary:
    ticker: str
    account_id: str
    quantity: int = 0
    total_cost: Decimal = ZERO
    average_cost: Decimal = ZERO


def fold_positions(trades: Iterable[LedgerTrade]) -> list[PositionSummary]:
    """Replay trades into one weighted-average position per (ticker, account)."""

    positions: dict[tuple[str, str], PositionSummary] = {}
    for trade in sorted(trades, key=lambda t: (t.trade_date, t.id)):
        key = (trade.ticker, trade.account_id)
        position = positions.setdefault(key, PositionSummary(ticker=trade.ticker, account_id=trade.account_id))
        if trade.side == TradeSide.BUY:
            cost = trade.total_cost
            if cost is None:
                cost = Decimal(trade.price) * trade.quantity + Decimal(trade.fee)
            position.total_cost += Decimal(cost)
            position.quantity += trade.quantity
        elif trade.side == TradeSide.SELL and position.quantity > 0:
            sold = min(trade.quantity, position.quantity)
            position.total_cost -= position.total_cost * sold / position.quantity
            position.quantity -= sold

    summaries = []
    for position in positions.values():
        if position.quantity <= 0:
            continue
        position.average_cost = quantize_money(position.total_cost / position.quantity)
        summaries.append(position)
    summaries.sort(key=lambda p: (p.account_id, p.ticker))
    return summaries


async def aggregate_positions(
    store: LedgerStore, owner_id: str, account_id: str | None = None
) -> list[PositionSummary]:
    """Weighted-average display positions for an owner, optionally one account."""

    trades = await store.trades(owner_id, account_id)
    return fold_positions(trades)


__all__ = ["PositionSummary", "aggregate_positions", "fold_positions"]
