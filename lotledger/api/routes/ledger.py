"""Lot, position and corporate-action endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...errors import (
    AdjustmentNotFoundError,
    ConcurrencyConflictError,
    InsufficientLotsError,
    LedgerError,
    PersistenceError,
    ValidationError,
)
from ...models import AdjustmentKind
from ...schemas import (
    AdjustedPositionSchema,
    AdjustmentSchema,
    AdjustmentUpdateRequest,
    BuyRequest,
    CashDividendRequest,
    CashDividendSchema,
    CostBasisComparisonSchema,
    PositionSchema,
    PurchaseLotSchema,
    SellOutcomeSchema,
    SellRequest,
    StockDividendRequest,
    StockDividendSchema,
    StockSplitRequest,
    StockSplitSchema,
)
from ...services import adjustments as adjustment_service
from ...services import fifo as fifo_service
from ...services import positions as position_service
from ...services.store import LedgerStore
from ..dependencies import InternalAuth, OwnerContext, get_owner, get_store

router = APIRouter(dependencies=[InternalAuth])


def _http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AdjustmentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InsufficientLotsError, ConcurrencyConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger storage unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/lots/buy", response_model=PurchaseLotSchema, status_code=status.HTTP_201_CREATED)
async def post_buy(
    payload: BuyRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> PurchaseLotSchema:
    try:
        lot = await fifo_service.record_buy(
            store,
            owner.owner_id,
            payload.account_id,
            payload.ticker,
            payload.quantity,
            payload.price,
            payload.fee,
            payload.trade_date,
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return PurchaseLotSchema.model_validate(lot)


@router.post("/lots/sell", response_model=SellOutcomeSchema, status_code=status.HTTP_201_CREATED)
async def post_sell(
    payload: SellRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> SellOutcomeSchema:
    try:
        outcome = await fifo_service.record_sell(
            store,
            owner.owner_id,
            payload.account_id,
            payload.ticker,
            payload.quantity,
            payload.price,
            payload.fee,
            payload.tax_rate_percent,
            payload.trade_date,
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return SellOutcomeSchema.model_validate(outcome)


@router.get("/positions", response_model=list[PositionSchema])
async def get_positions(
    account_id: str | None = Query(default=None),
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> list[PositionSchema]:
    try:
        positions = await position_service.aggregate_positions(store, owner.owner_id, account_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return [PositionSchema.model_validate(position) for position in positions]


@router.get("/positions/adjusted", response_model=list[AdjustedPositionSchema])
async def get_adjusted_portfolio(
    account_id: str | None = Query(default=None),
    as_of: date | None = Query(default=None),
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> list[AdjustedPositionSchema]:
    try:
        positions = await adjustment_service.calculate_adjusted_portfolio(
            store, owner.owner_id, account_id, as_of
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return [AdjustedPositionSchema.model_validate(position) for position in positions]


@router.get("/positions/{account_id}/{ticker}/adjusted", response_model=AdjustedPositionSchema)
async def get_adjusted_position(
    account_id: str,
    ticker: str,
    as_of: date | None = Query(default=None),
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> AdjustedPositionSchema:
    try:
        position = await adjustment_service.calculate_adjusted_position(
            store, owner.owner_id, account_id, ticker, as_of
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return AdjustedPositionSchema.model_validate(position)


@router.get("/positions/{account_id}/{ticker}/comparison", response_model=CostBasisComparisonSchema)
async def get_cost_basis_comparison(
    account_id: str,
    ticker: str,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> CostBasisComparisonSchema:
    try:
        comparison = await adjustment_service.compare_cost_basis(store, owner.owner_id, account_id, ticker)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return CostBasisComparisonSchema(
        ticker=comparison.ticker,
        account_id=comparison.account_id,
        original_quantity=comparison.original_quantity,
        original_total_cost=comparison.original_total_cost,
        original_average_cost=comparison.original_average_cost,
        adjusted=AdjustedPositionSchema.model_validate(comparison.adjusted),
        quantity_diff=comparison.quantity_diff,
        cost_diff=comparison.cost_diff,
        average_cost_diff=comparison.average_cost_diff,
    )


@router.post("/adjustments/cash-dividend", response_model=CashDividendSchema, status_code=status.HTTP_201_CREATED)
async def post_cash_dividend(
    payload: CashDividendRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> CashDividendSchema:
    try:
        result = await adjustment_service.process_cash_dividend(
            store,
            owner.owner_id,
            payload.account_id,
            payload.ticker,
            payload.dividend_per_share,
            payload.event_date,
            tax_rate=payload.tax_rate,
            description=payload.description,
            external_ref=payload.external_ref,
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return CashDividendSchema(
        adjustment=AdjustmentSchema.model_validate(result.adjustment),
        fee_id=result.fee.id,
        total_shares=result.total_shares,
        gross_dividend=result.gross_dividend,
        tax_withheld=result.tax_withheld,
        net_dividend=result.net_dividend,
    )


@router.post("/adjustments/stock-dividend", response_model=StockDividendSchema, status_code=status.HTTP_201_CREATED)
async def post_stock_dividend(
    payload: StockDividendRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> StockDividendSchema:
    try:
        result = await adjustment_service.process_stock_dividend(
            store,
            owner.owner_id,
            payload.account_id,
            payload.ticker,
            payload.dividend_ratio,
            payload.event_date,
            description=payload.description,
            external_ref=payload.external_ref,
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return StockDividendSchema(
        adjustment=AdjustmentSchema.model_validate(result.adjustment),
        total_shares=result.total_shares,
        bonus_shares=result.bonus_shares,
    )


@router.post("/adjustments/stock-split", response_model=StockSplitSchema, status_code=status.HTTP_201_CREATED)
async def post_stock_split(
    payload: StockSplitRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> StockSplitSchema:
    try:
        result = await adjustment_service.process_stock_split(
            store,
            owner.owner_id,
            payload.account_id,
            payload.ticker,
            payload.split_ratio,
            payload.event_date,
            description=payload.description,
            external_ref=payload.external_ref,
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return StockSplitSchema(
        adjustment=AdjustmentSchema.model_validate(result.adjustment),
        shares_before=result.shares_before,
        shares_after=result.shares_after,
    )


@router.get("/adjustments", response_model=list[AdjustmentSchema])
async def get_adjustments(
    ticker: str | None = Query(default=None),
    account_id: str | None = Query(default=None),
    kind: AdjustmentKind | None = Query(default=None),
    active: bool | None = Query(default=None),
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> list[AdjustmentSchema]:
    try:
        records = await adjustment_service.list_adjustments(
            store, owner.owner_id, ticker=ticker, account_id=account_id, kind=kind, active=active
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return [AdjustmentSchema.model_validate(record) for record in records]


@router.patch("/adjustments/{adjustment_id}", response_model=AdjustmentSchema)
async def patch_adjustment(
    adjustment_id: int,
    payload: AdjustmentUpdateRequest,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> AdjustmentSchema:
    try:
        record = await adjustment_service.set_adjustment_active(
            store, owner.owner_id, adjustment_id, payload.is_active
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return AdjustmentSchema.model_validate(record)


@router.delete("/adjustments/{adjustment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_adjustment(
    adjustment_id: int,
    store: LedgerStore = Depends(get_store),
    owner: OwnerContext = Depends(get_owner),
) -> Response:
    try:
        await adjustment_service.delete_adjustment(store, owner.owner_id, adjustment_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
