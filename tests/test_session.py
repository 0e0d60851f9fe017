import pytest
from fastapi import HTTPException
from sqlalchemy import text

from lotledger.api.dependencies import get_db_session, get_owner, get_store, verify_internal_token
from lotledger.core.config import get_settings
from lotledger.db import session as db_session
from lotledger.services.store import LedgerStore


async def test_engine_is_lazy_shared_and_disposable(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    get_settings.cache_clear()
    try:
        engine = db_session.get_engine()
        assert db_session.get_engine() is engine
        assert engine.url.drivername == "sqlite+aiosqlite"

        async with db_session.get_session_factory()() as session:
            assert (await session.execute(text("select 1"))).scalar_one() == 1

        await db_session.dispose_engine()
        assert db_session.get_engine() is not engine
    finally:
        await db_session.dispose_engine()
        get_settings.cache_clear()


async def test_request_dependencies_yield_a_store_over_the_shared_factory(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite://")
    get_settings.cache_clear()
    try:
        sessions = get_db_session()
        session = await sessions.__anext__()
        store = get_store(session)
        assert isinstance(store, LedgerStore)
        assert store.session is session
        await sessions.aclose()
    finally:
        await db_session.dispose_engine()
        get_settings.cache_clear()


def test_owner_header_is_trimmed_and_required():
    assert get_owner("  user-7 ").owner_id == "user-7"
    with pytest.raises(HTTPException) as missing:
        get_owner("   ")
    assert missing.value.status_code == 401


def test_internal_token_rejects_missing_header(monkeypatch):
    monkeypatch.setenv("INTERNAL_AUTH_TOKEN", "s3cret")
    get_settings.cache_clear()
    try:
        verify_internal_token("s3cret")
        with pytest.raises(HTTPException):
            verify_internal_token(None)
    finally:
        get_settings.cache_clear()
