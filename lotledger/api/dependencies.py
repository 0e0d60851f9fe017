"""Request-scoped dependencies: ledger store, caller identity, internal auth."""

from __future__ import annotations

import secrets
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..db.session import get_session_factory
from ..services.store import LedgerStore


async def get_db_session() -> AsyncIterator[AsyncSession]:
    async with get_session_factory()() as session:
        yield session


def get_store(session: AsyncSession = Depends(get_db_session)) -> LedgerStore:
    """One store per request; each ledger mutation opens its own unit of work."""

    return LedgerStore(session)


def verify_internal_token(x_internal_token: str | None = Header(default=None)) -> None:
    expected = get_settings().internal_auth_token
    if expected is None:
        return
    if x_internal_token is None or not secrets.compare_digest(x_internal_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid internal token")


InternalAuth = Depends(verify_internal_token)


@dataclass(frozen=True)
class OwnerContext:
    """The ledger owner every lot, trade and adjustment is scoped to."""

    owner_id: str


def get_owner(x_user_id: str | None = Header(default=None)) -> OwnerContext:
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing ledger owner")
    return OwnerContext(owner_id=owner_id)


__all__ = ["InternalAuth", "OwnerContext", "get_db_session", "get_owner", "get_store"]
