from contextlib import asynccontextmanager
from decimal import Decimal

from httpx import ASGITransport, AsyncClient

import pytest

from lotledger.api.dependencies import get_db_session, get_store
from lotledger.core.config import get_settings
from lotledger.errors import ConcurrencyConflictError, PersistenceError
from lotledger.main import create_app
from lotledger.services.store import LedgerStore


class _UnavailableStore(LedgerStore):
    """Fails every lot read with a fixed storage error."""

    def __init__(self, session, error: Exception) -> None:
        super().__init__(session)
        self.error = error

    async def open_lots(self, key, *, for_update=False):
        raise self.error


def _client(session_factory, user_id: str | None = "user-1", store_error: Exception | None = None):
    @asynccontextmanager
    async def _manager():
        factory = await session_factory()
        app = create_app()

        async def _session_override():
            async with factory() as session:
                yield session

        app.dependency_overrides[get_db_session] = _session_override
        if store_error is not None:

            async def _store_override():
                async with factory() as session:
                    yield _UnavailableStore(session, store_error)

            app.dependency_overrides[get_store] = _store_override
        headers = {"X-User-Id": user_id} if user_id else {}
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
            yield client

    return _manager


async def _buy(client: AsyncClient, quantity: int, price: str, fee: str, trade_date: str, ticker: str = "VNM"):
    response = await client.post(
        "/ledger/lots/buy",
        json={
            "account_id": "acct-1",
            "ticker": ticker,
            "quantity": quantity,
            "price": price,
            "fee": fee,
            "trade_date": trade_date,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_health_endpoint(session_factory):
    async with _client(session_factory)() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_buy_then_sell_books_fifo_cost(session_factory):
    async with _client(session_factory)() as client:
        first = await _buy(client, 100, "100000", "10000", "2024-01-10")
        await _buy(client, 100, "110000", "10000", "2024-02-10")
        assert Decimal(first["total_cost"]) == Decimal("10010000")
        assert first["remaining_quantity"] == 100

        response = await client.post(
            "/ledger/lots/sell",
            json={
                "account_id": "acct-1",
                "ticker": "vnm",
                "quantity": 150,
                "price": "120000",
                "fee": "15000",
                "tax_rate_percent": "0",
                "trade_date": "2024-03-01",
            },
        )
        assert response.status_code == 201, response.text
        outcome = response.json()

        positions = (await client.get("/ledger/positions")).json()

    assert outcome["trade_id"] is not None
    assert outcome["ticker"] == "VNM"
    assert Decimal(outcome["total_cogs"]) == Decimal("15515000")
    assert Decimal(outcome["net_proceeds"]) == Decimal("17985000")
    assert Decimal(outcome["profit_or_loss"]) == Decimal("2470000")
    assert [(lot["quantity"], lot["remaining_after"]) for lot in outcome["lots_used"]] == [(100, 0), (50, 50)]
    assert [(p["ticker"], p["quantity"]) for p in positions] == [("VNM", 50)]


async def test_oversell_returns_conflict(session_factory):
    async with _client(session_factory)() as client:
        await _buy(client, 10, "10", "0", "2024-01-01")
        response = await client.post(
            "/ledger/lots/sell",
            json={"account_id": "acct-1", "ticker": "VNM", "quantity": 11, "price": "12", "trade_date": "2024-01-02"},
        )
        lots_after = (await client.get("/ledger/positions/acct-1/VNM/adjusted")).json()

    assert response.status_code == 409
    assert "requested 11, available 10" in response.json()["detail"]
    assert lots_after["total_quantity"] == 10


async def test_invalid_payloads_are_rejected(session_factory):
    async with _client(session_factory)() as client:
        zero_quantity = await client.post(
            "/ledger/lots/buy",
            json={"account_id": "acct-1", "ticker": "VNM", "quantity": 0, "price": "10", "trade_date": "2024-01-01"},
        )
        blank_ticker = await client.post(
            "/ledger/lots/buy",
            json={"account_id": "acct-1", "ticker": "   ", "quantity": 1, "price": "10", "trade_date": "2024-01-01"},
        )

    assert zero_quantity.status_code == 422
    assert blank_ticker.status_code == 400
    assert blank_ticker.json()["detail"] == "Ticker must not be empty"


async def test_requests_without_user_are_unauthorized(session_factory):
    async with _client(session_factory, user_id=None)() as client:
        response = await client.get("/ledger/positions")
    assert response.status_code == 401


async def test_internal_token_is_enforced_when_configured(session_factory, monkeypatch):
    monkeypatch.setenv("INTERNAL_AUTH_TOKEN", "s3cret")
    get_settings.cache_clear()
    try:
        async with _client(session_factory)() as client:
            denied = await client.get("/ledger/positions")
            allowed = await client.get("/ledger/positions", headers={"X-Internal-Token": "s3cret"})
    finally:
        get_settings.cache_clear()

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json() == []


async def test_corporate_action_endpoints(session_factory):
    async with _client(session_factory)() as client:
        await _buy(client, 100, "10000", "0", "2024-01-10")

        split = await client.post(
            "/ledger/adjustments/stock-split",
            json={"account_id": "acct-1", "ticker": "VNM", "split_ratio": "2", "event_date": "2024-03-01"},
        )
        assert split.status_code == 201, split.text
        split_body = split.json()
        adjustment_id = split_body["adjustment"]["id"]
        assert (split_body["shares_before"], split_body["shares_after"]) == (100, 200)

        dividend = await client.post(
            "/ledger/adjustments/cash-dividend",
            json={
                "account_id": "acct-1",
                "ticker": "VNM",
                "dividend_per_share": "100",
                "tax_rate": "0.05",
                "event_date": "2024-04-01",
            },
        )
        assert dividend.status_code == 201, dividend.text
        assert Decimal(dividend.json()["tax_withheld"]) == Decimal("500")

        bonus = await client.post(
            "/ledger/adjustments/stock-dividend",
            json={"account_id": "acct-1", "ticker": "VNM", "dividend_ratio": "0.1", "event_date": "2024-05-01"},
        )
        assert bonus.status_code == 201, bonus.text
        assert bonus.json()["bonus_shares"] == 10

        adjusted = (await client.get("/ledger/positions/acct-1/VNM/adjusted")).json()
        assert adjusted["total_quantity"] == 220
        assert adjusted["applied_adjustments"] == 3

        early = (await client.get("/ledger/positions/acct-1/VNM/adjusted", params={"as_of": "2024-03-15"})).json()
        assert early["total_quantity"] == 200

        comparison = (await client.get("/ledger/positions/acct-1/VNM/comparison")).json()
        assert comparison["original_quantity"] == 100
        assert comparison["quantity_diff"] == 120

        portfolio = (await client.get("/ledger/positions/adjusted")).json()
        assert [p["ticker"] for p in portfolio] == ["VNM"]

        splits = (await client.get("/ledger/adjustments", params={"kind": "STOCK_SPLIT"})).json()
        assert [adj["id"] for adj in splits] == [adjustment_id]

        patched = await client.patch(f"/ledger/adjustments/{adjustment_id}", json={"is_active": False})
        assert patched.status_code == 200
        assert patched.json()["is_active"] is False

        deleted = await client.delete(f"/ledger/adjustments/{adjustment_id}")
        assert deleted.status_code == 204
        missing = await client.delete(f"/ledger/adjustments/{adjustment_id}")
        assert missing.status_code == 404

        remaining = (await client.get("/ledger/adjustments")).json()
        assert len(remaining) == 2


async def test_corporate_action_errors_map_to_status_codes(session_factory):
    async with _client(session_factory)() as client:
        no_lots = await client.post(
            "/ledger/adjustments/stock-split",
            json={"account_id": "acct-1", "ticker": "VNM", "split_ratio": "2", "event_date": "2024-03-01"},
        )
        await _buy(client, 10, "10", "0", "2024-01-01")
        bad_rate = await client.post(
            "/ledger/adjustments/cash-dividend",
            json={
                "account_id": "acct-1",
                "ticker": "VNM",
                "dividend_per_share": "1",
                "tax_rate": "1.5",
                "event_date": "2024-04-01",
            },
        )
        bad_ratio = await client.post(
            "/ledger/adjustments/stock-split",
            json={"account_id": "acct-1", "ticker": "VNM", "split_ratio": "-2", "event_date": "2024-03-01"},
        )
        foreign = await client.patch("/ledger/adjustments/999", json={"is_active": True})

    assert no_lots.status_code == 409
    assert bad_rate.status_code == 400
    assert bad_ratio.status_code == 400
    assert foreign.status_code == 404


@pytest.mark.parametrize(
    "error, status_code, detail",
    [
        (ConcurrencyConflictError("could not serialize access"), 409, "could not serialize access"),
        (PersistenceError("disk I/O error"), 503, "Ledger storage unavailable"),
    ],
)
async def test_storage_failures_map_to_retryable_status_codes(session_factory, error, status_code, detail):
    async with _client(session_factory, store_error=error)() as client:
        response = await client.post(
            "/ledger/lots/sell",
            json={"account_id": "acct-1", "ticker": "VNM", "quantity": 1, "price": "12", "trade_date": "2024-01-02"},
        )

    assert response.status_code == status_code
    assert response.json()["detail"] == detail
