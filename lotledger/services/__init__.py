"""Service-layer exports."""

from .adjustments import (
    apply_adjustments,
    calculate_adjusted_portfolio,
    calculate_adjusted_position,
    compare_cost_basis,
    delete_adjustment,
    list_adjustments,
    process_cash_dividend,
    process_stock_dividend,
    process_stock_split,
    set_adjustment_active,
    validate_adjustment_payload,
)
from .fifo import current_average_cost, record_buy, record_sell
from .positions import aggregate_positions
from .store import LedgerStore, LotKey

__all__ = [
    "LedgerStore",
    "LotKey",
    "aggregate_positions",
    "apply_adjustments",
    "calculate_adjusted_portfolio",
    "calculate_adjusted_position",
    "compare_cost_basis",
    "current_average_cost",
    "delete_adjustment",
    "list_adjustments",
    "process_cash_dividend",
    "process_stock_dividend",
    "process_stock_split",
    "record_buy",
    "record_sell",
    "set_adjustment_active",
    "validate_adjustment_payload",
]
