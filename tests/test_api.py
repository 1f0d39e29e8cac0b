"""HTTP and WebSocket surface, exercised through the full app with fake collaborators."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from tradegpt.config import Settings
from tradegpt.errors import ConfigurationError
from tradegpt.main import create_app
from tradegpt.models.market import MarketSnapshot
from tradegpt.services.ai_router import DisabledProvider

from conftest import ROUTER, SMART_ACCOUNT, TX_HASH, WALLET, make_chain


def _settings(**overrides) -> Settings:
    fields = {"stop_loss_enabled": False, "router_address": ROUTER}
    fields.update(overrides)
    return Settings(_env_file=None, **fields)


@pytest.fixture
def market_data():
    market = MagicMock()
    market.fetch_price = AsyncMock(return_value=3100.0)
    market.get_snapshot = AsyncMock(
        return_value=MarketSnapshot(symbol="ETH", price=3100.0, change_24h=1.5, rsi=58.0)
    )
    return market


@pytest.fixture
def provider():
    chat_provider = MagicMock()
    chat_provider.name = "fake"
    chat_provider.complete = AsyncMock(return_value="**Direction**: LONG\n**Leverage**: 3X\n**Collateral**: $200")
    return chat_provider


@pytest.fixture
def chain():
    return make_chain()


@pytest.fixture
def client(market_data, provider, chain):
    app = create_app(_settings(), market_data=market_data, chain=chain, chat_provider=provider)
    with TestClient(app) as test_client:
        yield test_client


def _draft(client, user_id="u1", message="long eth") -> dict:
    response = client.post("/api/chat", json={"userId": user_id, "message": message})
    assert response.status_code == 200
    return response.json()["trade"]


# ---------------------------------------------------------------------------
# 1. Health and chat
# ---------------------------------------------------------------------------

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_chat_drafts_trade(client):
    body = client.post("/api/chat", json={"userId": "u1", "message": "long eth"}).json()

    assert body["stagedOnChain"] is False
    assert body["reply"]["role"] == "assistant"
    trade = body["trade"]
    assert trade["status"] == "draft"
    assert trade["side"] == "LONG"
    assert trade["leverage"] == 3
    assert trade["collateral"] == 200
    assert trade["entryPrice"] == 3100.0

    listed = client.get("/api/trades", params={"userId": "u1"}).json()["trades"]
    assert [t["id"] for t in listed] == [trade["id"]]
    assert client.get("/api/trades", params={"userId": "u2"}).json() == {"trades": []}


def test_chat_keeps_conversation_history(client, provider):
    client.post("/api/chat", json={"userId": "u1", "message": "first"})
    client.post("/api/chat", json={"userId": "u1", "message": "second"})
    history = provider.complete.call_args.args[0]
    assert [m.content for m in history][-1] == "second"
    assert [m.role for m in history] == ["user", "assistant", "user"]


def test_chat_without_provider_is_503(market_data, chain):
    app = create_app(_settings(), market_data=market_data, chain=chain, chat_provider=DisabledProvider())
    with TestClient(app) as test_client:
        response = test_client.post("/api/chat", json={"userId": "u1", "message": "hi"})
    assert response.status_code == 503
    assert "No AI provider configured" in response.json()["error"]


def test_chat_validation_error_is_400(client):
    response = client.post("/api/chat", json={"userId": "", "message": "hi"})
    assert response.status_code == 400
    assert "error" in response.json()


# ---------------------------------------------------------------------------
# 2. Trades
# ---------------------------------------------------------------------------

def test_patch_updates_only_sent_fields(client):
    trade = _draft(client)
    response = client.patch(f"/api/trades/{trade['id']}", json={"userId": "u1", "stopLoss": 2900})
    assert response.status_code == 200

    updated = response.json()["trade"]
    assert updated["stopLoss"] == 2900
    assert updated["takeProfit"] == trade["takeProfit"]
    assert updated["createdAt"] == trade["createdAt"]
    assert updated["updatedAt"] > trade["updatedAt"]


def test_patch_can_clear_stop_loss(client):
    trade = _draft(client)
    response = client.patch(f"/api/trades/{trade['id']}", json={"userId": "u1", "stopLoss": None})
    assert response.status_code == 200
    assert response.json()["trade"]["stopLoss"] is None


def test_patch_unknown_trade_is_404(client):
    response = client.patch("/api/trades/missing", json={"userId": "u1", "status": "staged"})
    assert response.status_code == 404
    assert response.json() == {"error": "Trade not found"}


@pytest.mark.parametrize(
    "patch",
    [
        {"leverage": 0},
        {"collateral": -5},
        {"status": "closed"},
        {"status": None},
        {"leverage": None},
        {"collateral": None},
        {"transactionHash": None},
        {"preparedTx": None},
        {"preparedTx": {"to": "0x123", "data": "0x", "value": "0"}},
        {"preparedTx": {"to": ROUTER, "data": "", "value": "0"}},
    ],
)
def test_patch_rejects_invalid_fields(client, patch):
    trade = _draft(client)
    response = client.patch(f"/api/trades/{trade['id']}", json={"userId": "u1", **patch})
    assert response.status_code == 400
    assert client.get("/api/trades", params={"userId": "u1"}).json()["trades"][0] == trade


def test_stage_and_confirm(client, chain):
    trade = _draft(client)
    response = client.post("/api/chat/stage", json={"userId": "u1", "account": WALLET, "tradeId": trade["id"]})
    assert response.status_code == 200
    body = response.json()
    assert body["stagedOnChain"] is False
    assert body["smartAccountUsed"] is False
    assert body["transaction"]["to"] == ROUTER
    assert body["transaction"]["chainId"] == 50312

    response = client.post(f"/api/trades/{trade['id']}/confirm", json={"userId": "u1", "transactionHash": TX_HASH})
    assert response.status_code == 200
    confirmed = response.json()["trade"]
    assert confirmed["status"] == "executed"
    assert confirmed["transactionHash"] == TX_HASH


def test_stage_unknown_trade_is_404(client):
    response = client.post("/api/chat/stage", json={"userId": "u1", "account": WALLET, "tradeId": "missing"})
    assert response.status_code == 404
    assert response.json() == {"error": "Trade not found"}


def test_stage_rejects_bad_account(client):
    trade = _draft(client)
    response = client.post("/api/chat/stage", json={"userId": "u1", "account": "0xabc", "tradeId": trade["id"]})
    assert response.status_code == 400


def test_stage_without_router_is_500(market_data, provider, chain):
    app = create_app(_settings(router_address=""), market_data=market_data, chain=chain, chat_provider=provider)
    with TestClient(app) as test_client:
        trade = _draft(test_client)
        response = test_client.post(
            "/api/chat/stage", json={"userId": "u1", "account": WALLET, "tradeId": trade["id"]}
        )
        assert response.status_code == 500
        assert "Router address not configured" in response.json()["error"]
        listed = test_client.get("/api/trades", params={"userId": "u1"}).json()["trades"]
        assert listed[0]["status"] == "draft"


# ---------------------------------------------------------------------------
# 3. Stop-loss endpoints
# ---------------------------------------------------------------------------

def test_stop_loss_status_and_manual_check(client, market_data):
    assert client.get("/api/stop-loss/status").json() == {
        "isRunning": False,
        "cachedPrices": [],
        "monitoredTrades": 0,
    }

    trade = _draft(client)
    client.patch(f"/api/trades/{trade['id']}", json={"userId": "u1", "status": "executed", "stopLoss": 3200})
    assert client.get("/api/stop-loss/status").json()["monitoredTrades"] == 1

    response = client.post(f"/api/stop-loss/check/{trade['id']}")
    assert response.json() == {"tradeId": trade["id"], "triggered": True}

    status = client.get("/api/stop-loss/status").json()
    assert status["cachedPrices"][0]["symbol"] == "ETH"
    assert status["cachedPrices"][0]["price"] == 3100.0


def test_manual_check_unknown_trade_is_404(client):
    response = client.post("/api/stop-loss/check/missing")
    assert response.status_code == 404
    assert response.json() == {"error": "Trade missing not found"}


def test_monitor_runs_when_enabled(market_data, provider, chain):
    app = create_app(
        _settings(stop_loss_enabled=True, stop_loss_interval_seconds=60),
        market_data=market_data,
        chain=chain,
        chat_provider=provider,
    )
    with TestClient(app) as test_client:
        assert test_client.get("/api/stop-loss/status").json()["isRunning"] is True
    chain.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# 4. Accounts
# ---------------------------------------------------------------------------

def test_smart_account_lookup(client, chain):
    chain.get_accounts.return_value = [SMART_ACCOUNT]
    body = client.get(f"/api/accounts/smart-account/{WALLET}").json()
    assert body == {
        "hasAccount": True,
        "smartAccount": SMART_ACCOUNT,
        "totalAccounts": 1,
        "accounts": [SMART_ACCOUNT],
    }


def test_smart_account_balance(client, chain):
    chain.get_accounts.return_value = [SMART_ACCOUNT]
    chain.get_balance.return_value = 2 * 10**18
    body = client.get(f"/api/accounts/smart-account/{WALLET}/balance").json()
    assert body["hasAccount"] is True
    assert body["balance"] == str(2 * 10**18)
    assert body["balanceFormatted"] == "2"


def test_balance_without_account(client):
    assert client.get(f"/api/accounts/smart-account/{WALLET}/balance").json() == {
        "hasAccount": False,
        "balance": "0",
    }


def test_account_lookup_without_factory_is_500(client, chain):
    chain.get_accounts.side_effect = ConfigurationError("Factory address not configured")
    response = client.get(f"/api/accounts/smart-account/{WALLET}")
    assert response.status_code == 500
    assert response.json() == {"error": "Factory address not configured"}


def test_account_lookup_rejects_bad_owner(client):
    assert client.get("/api/accounts/smart-account/0x12").status_code == 400


# ---------------------------------------------------------------------------
# 5. Realtime channel
# ---------------------------------------------------------------------------

def test_websocket_greets_and_streams_trade_events(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"type": "connection", "payload": "connected"}
        trade = _draft(client)
        event = ws.receive_json()
        assert event["type"] == "trade.draft"
        assert event["payload"]["id"] == trade["id"]