"""Persistence port used by the ledger core.

Every ledger operation receives a :class:`LedgerStore` explicitly instead of
reaching for a module-level session. The store owns the row-locking query for
SELLs and the all-or-nothing :meth:`LedgerStore.unit_of_work` boundary, and it
translates SQLAlchemy failures into the ledger's error taxonomy.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConcurrencyConflictError, PersistenceError, ValidationError
from ..models import (
    AccountFee,
    AdjustmentKind,
    CorporateActionAdjustment,
    LedgerTrade,
    PurchaseLot,
)

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def normalize_ticker(ticker: str) -> str:
    normalized = (ticker or "").strip().upper()
    if not normalized:
        raise ValidationError("Ticker must not be empty")
    return normalized


@dataclass(frozen=True)
class LotKey:
    """The (owner, account, ticker) triple lots and adjustments share."""

    owner_id: str
    account_id: str
    ticker: str

    @classmethod
    def build(cls, owner_id: str, account_id: str, ticker: str) -> "LotKey":
        if not owner_id:
            raise ValidationError("Owner id is required")
        account = (account_id or "").strip()
        if not account:
            raise ValidationError("Account id is required")
        return cls(owner_id=owner_id, account_id=account, ticker=normalize_ticker(ticker))


def _is_conflict(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


def _translate(exc: SQLAlchemyError) -> Exception:
    if isinstance(exc, DBAPIError) and _is_conflict(exc):
        return ConcurrencyConflictError(f"Concurrent ledger update detected: {exc.orig}")
    return PersistenceError(str(exc))


class LedgerStore:
    """CRUD over lots, adjustments, trades and fees plus a transactional unit."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["LedgerStore"]:
        """Commit everything done inside the block, or nothing at all."""

        try:
            yield self
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            translated = _translate(exc)
            if isinstance(translated, PersistenceError):
                logger.exception("Ledger unit of work failed; rolled back")
            raise translated from exc
        except PersistenceError:
            # Already translated by add/flush/delete
            await self.session.rollback()
            logger.exception("Ledger unit of work failed; rolled back")
            raise
        except BaseException:
            await self.session.rollback()
            raise

    async def _scalars(self, stmt: Select) -> list[Any]:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc
        return list(result.scalars().all())

    async def add(self, record: Any) -> Any:
        self.session.add(record)
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc
        return record

    async def delete(self, record: Any) -> None:
        try:
            await self.session.delete(record)
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    # Lots

    @staticmethod
    def open_lots_statement(key: LotKey, *, for_update: bool = False) -> Select:
        """Open lots for ``key`` in FIFO order: purchase date, then lot id."""

        stmt = (
            select(PurchaseLot)
            .where(
                PurchaseLot.owner_id == key.owner_id,
                PurchaseLot.account_id == key.account_id,
                PurchaseLot.ticker == key.ticker,
                PurchaseLot.remaining_quantity > 0,
            )
            .order_by(PurchaseLot.purchase_date.asc(), PurchaseLot.id.asc())
        )
        if for_update:
            stmt = stmt.with_for_update()
        return stmt

    async def open_lots(self, key: LotKey, *, for_update: bool = False) -> list[PurchaseLot]:
        return await self._scalars(self.open_lots_statement(key, for_update=for_update))

    async def lots_for_key(self, key: LotKey) -> list[PurchaseLot]:
        """Every lot for ``key``, closed ones included."""

        stmt = (
            select(PurchaseLot)
            .where(
                PurchaseLot.owner_id == key.owner_id,
                PurchaseLot.account_id == key.account_id,
                PurchaseLot.ticker == key.ticker,
            )
            .order_by(PurchaseLot.purchase_date.asc(), PurchaseLot.id.asc())
        )
        return await self._scalars(stmt)

    async def open_lot_keys(self, owner_id: str, account_id: str | None = None) -> list[LotKey]:
        stmt = (
            select(PurchaseLot.account_id, PurchaseLot.ticker)
            .where(PurchaseLot.owner_id == owner_id, PurchaseLot.remaining_quantity > 0)
            .distinct()
            .order_by(PurchaseLot.account_id, PurchaseLot.ticker)
        )
        if account_id is not None:
            stmt = stmt.where(PurchaseLot.account_id == account_id)
        try:
            rows = (await self.session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc
        return [LotKey(owner_id=owner_id, account_id=row[0], ticker=row[1]) for row in rows]

    # Adjustments

    async def active_adjustments(
        self, key: LotKey, *, as_of_date: date | None = None
    ) -> list[CorporateActionAdjustment]:
        stmt = (
            select(CorporateActionAdjustment)
            .where(
                CorporateActionAdjustment.owner_id == key.owner_id,
                CorporateActionAdjustment.account_id == key.account_id,
                CorporateActionAdjustment.ticker == key.ticker,
                CorporateActionAdjustment.is_active.is_(True),
            )
            .order_by(CorporateActionAdjustment.event_date.asc(), CorporateActionAdjustment.id.asc())
        )
        if as_of_date is not None:
            stmt = stmt.where(CorporateActionAdjustment.event_date <= as_of_date)
        return await self._scalars(stmt)

    async def list_adjustments(
        self,
        owner_id: str,
        *,
        ticker: str | None = None,
        account_id: str | None = None,
        kind: AdjustmentKind | None = None,
        active: bool | None = None,
    ) -> list[CorporateActionAdjustment]:
        stmt = select(CorporateActionAdjustment).where(CorporateActionAdjustment.owner_id == owner_id)
        if ticker:
            stmt = stmt.where(CorporateActionAdjustment.ticker == normalize_ticker(ticker))
        if account_id is not None:
            stmt = stmt.where(CorporateActionAdjustment.account_id == account_id)
        if kind is not None:
            stmt = stmt.where(CorporateActionAdjustment.kind == kind)
        if active is not None:
            stmt = stmt.where(CorporateActionAdjustment.is_active.is_(active))
        stmt = stmt.order_by(CorporateActionAdjustment.event_date.desc(), CorporateActionAdjustment.id.desc())
        return await self._scalars(stmt)

    async def get_adjustment(self, owner_id: str, adjustment_id: int) -> CorporateActionAdjustment | None:
        try:
            record = await self.session.get(CorporateActionAdjustment, adjustment_id)
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc
        if record is None or record.owner_id != owner_id:
            return None
        return record

    # Trade journal and fee sink

    async def trades(self, owner_id: str, account_id: str | None = None) -> list[LedgerTrade]:
        stmt = select(LedgerTrade).where(LedgerTrade.owner_id == owner_id)
        if account_id is not None:
            stmt = stmt.where(LedgerTrade.account_id == account_id)
        stmt = stmt.order_by(LedgerTrade.trade_date.asc(), LedgerTrade.id.asc())
        return await self._scalars(stmt)

    async def fees(self, owner_id: str, account_id: str | None = None) -> list[AccountFee]:
        stmt = select(AccountFee).where(AccountFee.owner_id == owner_id)
        if account_id is not None:
            stmt = stmt.where(AccountFee.account_id == account_id)
        stmt = stmt.order_by(AccountFee.fee_date.asc(), AccountFee.id.asc())
        return await self._scalars(stmt)


__all__ = ["LedgerStore", "LotKey", "normalize_ticker"]
