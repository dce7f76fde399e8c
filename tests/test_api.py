"""HTTP API tests: auth, trade lifecycle, quotes, account and system routes."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlmodel import Session

from margin_desk.database import engine
from margin_desk.main import app
from margin_desk.schemas.trade import TradeCloseRequest, TradeOpenRequest
from margin_desk.services import ledger
from margin_desk.services.auth import create_access_token, decode_access_token
from margin_desk.utils.constants import DEFAULT_SPREADS, FEED_SCOPE

client = TestClient(app)

OPEN_BODY = {
    "symbol": "eur/usd",
    "direction": "long",
    "investment": 100,
    "multiplier": 10,
    "mid_price": 1.0,
}


def _auth(user_id: str = "alice") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _feed_auth() -> dict:
    return {"Authorization": f"Bearer {create_access_token('price-feed', scope=FEED_SCOPE)}"}


def _fund(user_id: str = "alice", amount: float = 1000):
    with Session(engine) as session:
        ledger.deposit(session, user_id, amount)
        session.commit()


@pytest.fixture
def zero_spread(monkeypatch):
    """Price EUR/USD without a spread so the P/L arithmetic stays round."""
    monkeypatch.setitem(DEFAULT_SPREADS, "EUR/USD", 0.0)


def _open(**overrides) -> dict:
    resp = client.post("/api/trades", json={**OPEN_BODY, **overrides}, headers=_auth())
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# 1. Schemas and auth
# ---------------------------------------------------------------------------

class TestSchemas:
    def test_open_request_normalizes(self):
        req = TradeOpenRequest(**{**OPEN_BODY, "symbol": " gbp/usd ", "direction": "DOWN"})
        assert req.symbol == "GBP/USD"
        assert req.direction == "sell"

    def test_open_request_rejects_unknown_direction(self):
        with pytest.raises(ValidationError):
            TradeOpenRequest(**{**OPEN_BODY, "direction": "sideways"})

    def test_open_request_drops_client_spread(self):
        req = TradeOpenRequest(**{**OPEN_BODY, "spread_fraction": 0})
        assert "spread_fraction" not in req.model_dump()

    def test_close_request_defaults_to_manual(self):
        req = TradeCloseRequest()
        assert req.mid_price is None
        assert req.reason.value == "manual"


class TestAuth:
    def test_token_round_trip(self):
        assert decode_access_token(create_access_token("alice")) == "alice"
        assert decode_access_token("not-a-token") is None

    def test_health_is_public(self):
        assert client.get("/api/system/health").json() == {"status": "ok"}

    def test_missing_token_rejected(self):
        assert client.get("/api/trades").status_code in (401, 403)

    def test_bad_token_rejected(self):
        resp = client.get("/api/trades", headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# 2. Trade lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.usefixtures("zero_spread")
class TestTrades:
    def test_open_trade(self):
        _fund()
        data = _open()
        assert data["trade"]["symbol"] == "EUR/USD"
        assert data["trade"]["direction"] == "buy"
        assert data["trade"]["status"] == "open"
        assert data["new_balance"] == 900
        assert data["balance_change"] == -100
        assert data["message"] == "Opened BUY EUR/USD @ 1.00000"

    def test_engine_validation_is_400(self):
        _fund()
        resp = client.post("/api/trades", json={**OPEN_BODY, "multiplier": 0.5}, headers=_auth())
        assert resp.status_code == 400
        assert "Multiplier" in resp.json()["detail"]

    def test_schema_validation_is_422(self):
        resp = client.post("/api/trades", json={**OPEN_BODY, "direction": "sideways"}, headers=_auth())
        assert resp.status_code == 422

    def test_insufficient_balance_is_400(self):
        _fund(amount=10)
        resp = client.post("/api/trades", json=OPEN_BODY, headers=_auth())
        assert resp.status_code == 400
        assert "Insufficient balance" in resp.json()["detail"]

    def test_idempotency_header(self):
        _fund()
        headers = {**_auth(), "X-Idempotency-Key": "abc"}
        first = client.post("/api/trades", json=OPEN_BODY, headers=headers).json()
        second = client.post("/api/trades", json=OPEN_BODY, headers=headers).json()
        assert second["duplicate"] is True
        assert second["message"] == "Trade already processed"
        assert second["trade"]["id"] == first["trade"]["id"]
        assert second["new_balance"] == 900

    def test_close_trade(self):
        _fund()
        trade_id = _open()["trade"]["id"]
        resp = client.post(f"/api/trades/{trade_id}/close", json={"mid_price": 1.02}, headers=_auth())
        assert resp.status_code == 200
        data = resp.json()
        assert data["trade"]["status"] == "won"
        assert data["new_balance"] == pytest.approx(1020)
        assert data["credit_amount"] == pytest.approx(120)
        assert data["message"] == "Closed EUR/USD: +20.00"

        again = client.post(f"/api/trades/{trade_id}/close", json={"mid_price": 1.02}, headers=_auth())
        assert again.status_code == 409

    def test_close_without_quote_is_409(self):
        _fund()
        trade_id = _open()["trade"]["id"]
        resp = client.post(f"/api/trades/{trade_id}/close", json={}, headers=_auth())
        assert resp.status_code == 409

    def test_other_users_trade_is_404(self):
        _fund()
        trade_id = _open()["trade"]["id"]
        assert client.get(f"/api/trades/{trade_id}", headers=_auth("bob")).status_code == 404
        assert client.get(f"/api/trades/{trade_id}", headers=_auth()).status_code == 200

    def test_list_filters_by_status(self):
        _fund()
        open_id = _open()["trade"]["id"]
        closed_id = _open(investment=50)["trade"]["id"]
        client.post(f"/api/trades/{closed_id}/close", json={"mid_price": 0.99}, headers=_auth())

        def ids(status):
            resp = client.get(f"/api/trades?status={status}", headers=_auth())
            return {t["id"] for t in resp.json()}

        assert ids("open") == {open_id}
        assert ids("closed") == {closed_id}
        assert ids("all") == {open_id, closed_id}

    def test_update_levels(self):
        _fund()
        trade_id = _open()["trade"]["id"]
        resp = client.patch(
            f"/api/trades/{trade_id}/levels",
            json={"stop_loss": 0.95, "take_profit": 1.1},
            headers=_auth(),
        )
        assert resp.status_code == 200
        assert resp.json()["stop_loss"] == 0.95

        bad = client.patch(f"/api/trades/{trade_id}/levels", json={"stop_loss": -1}, headers=_auth())
        assert bad.status_code == 400


# ---------------------------------------------------------------------------
# 3. Quotes and account
# ---------------------------------------------------------------------------

@pytest.mark.usefixtures("zero_spread")
class TestQuotesAndAccount:
    def test_quote_tick_marks_and_liquidates(self):
        _fund()
        marked_id = _open(direction="sell")["trade"]["id"]
        liquidated_id = _open()["trade"]["id"]

        resp = client.post("/api/quotes", json={"symbol": "EUR/USD", "mid_price": 0.89}, headers=_feed_auth())
        assert resp.status_code == 200
        data = resp.json()
        assert data["marked"] == 1
        assert data["closed"] == [{"id": liquidated_id, "status": "liquidated", "pnl": -100.0}]

        trade = client.get(f"/api/trades/{marked_id}", headers=_auth()).json()
        assert trade["floating_pnl"] == pytest.approx(110)

    def test_bad_quote_is_409(self):
        resp = client.post("/api/quotes", json={"symbol": "EUR/USD", "mid_price": 0}, headers=_feed_auth())
        assert resp.status_code == 409

    def test_get_quote(self):
        client.post("/api/quotes", json={"symbol": "gbp/usd", "mid_price": 1.1}, headers=_feed_auth())
        data = client.get("/api/quotes/GBP/USD", headers=_auth()).json()
        assert data["mid_price"] == 1.1
        assert data["fresh"] is True
        assert data["bid"] < 1.1 < data["ask"]
        assert client.get("/api/quotes/XAU/USD", headers=_auth()).status_code == 409

    def test_account_summary(self):
        _fund()
        _open()
        client.post("/api/quotes", json={"symbol": "EUR/USD", "mid_price": 0.98}, headers=_feed_auth())
        data = client.get("/api/account", headers=_auth()).json()
        assert data["balance"] == 900
        assert data["margin_used"] == 100
        assert data["unrealized_pnl"] == pytest.approx(-20)
        assert data["equity"] == pytest.approx(980)
        assert data["open_trades"] == 1

    def test_ledger_history(self):
        _fund()
        _open()
        entries = client.get("/api/account/ledger", headers=_auth()).json()
        assert [e["type"] for e in entries] == ["trade_open", "deposit"]
        assert entries[0]["balance_after"] == 900


# ---------------------------------------------------------------------------
# 4. Server-side pricing and feed access
# ---------------------------------------------------------------------------

class TestServerSpread:
    def test_client_spread_is_ignored(self):
        _fund()
        body = {**OPEN_BODY, "multiplier": 100, "mid_price": 1.1, "spread_fraction": 0}
        trade = client.post("/api/trades", json=body, headers=_auth()).json()["trade"]
        assert trade["spread_fraction"] == DEFAULT_SPREADS["EUR/USD"]
        assert trade["floating_pnl"] == pytest.approx(-0.8, abs=1e-3)
        assert trade["spread_cost"] > 0


class TestFeedAccess:
    def test_user_token_cannot_push_prices(self):
        _fund()
        trade_id = _open()["trade"]["id"]
        resp = client.post(
            "/api/quotes", json={"symbol": "EUR/USD", "mid_price": 0.5}, headers=_auth("mallory")
        )
        assert resp.status_code == 403
        trade = client.get(f"/api/trades/{trade_id}", headers=_auth()).json()
        assert trade["status"] == "open"

    def test_user_token_cannot_run_mark_cycle(self):
        assert client.post("/api/system/mark", headers=_auth()).status_code == 403

    def test_bad_token_on_feed_route_is_401(self):
        resp = client.post("/api/system/mark", headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 401

    def test_feed_token_can_read_quotes(self):
        client.post("/api/quotes", json={"symbol": "USD/JPY", "mid_price": 150.0}, headers=_feed_auth())
        assert client.get("/api/quotes/USD/JPY", headers=_feed_auth()).status_code == 200


# ---------------------------------------------------------------------------
# 5. System and scheduler
# ---------------------------------------------------------------------------

class TestSystem:
    def test_manual_mark_cycle(self):
        resp = client.post("/api/system/mark", headers=_feed_auth())
        assert resp.status_code == 200
        assert resp.json()["skipped"] is False

    def test_scheduler_status_when_stopped(self):
        data = client.get("/api/system/scheduler", headers=_auth()).json()
        assert data["running"] is False

    def test_start_scheduler_registers_mark_job(self):
        from margin_desk.engine import scheduler as sched

        fake = MagicMock()
        fake.get_jobs.return_value = [MagicMock()]
        with patch.object(sched, "scheduler", fake):
            sched.start_scheduler()
        fake.add_job.assert_called_once()
        assert fake.add_job.call_args.kwargs["id"] == sched.MARK_JOB_ID
        fake.start.assert_called_once()
