"""
HTTP route tests
"""

import pytest
from fastapi.testclient import TestClient

from apps.dashboard.api import create_app
from apps.dashboard.trading_service import MISSING_CREDENTIALS, TradingService
from libs.data.models import ExchangePosition

DOGE = "DOGE/USDT:USDT"
ETH = "ETH/USDT:USDT"


@pytest.fixture
def client(trading_service, market_service):
    return TestClient(create_app(trading_service, market_service))


@pytest.fixture
def anonymous_client(repo, market_service, client_factory, settings):
    settings = settings.model_copy(update={"binance_api_key": None, "binance_api_secret": None})
    service = TradingService(repo, market_service=market_service,
                             client_factory=client_factory, settings=settings)
    return TestClient(create_app(service, market_service))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestTradeRoutes:

    def test_trade(self, client, exchange):
        response = client.post("/trade", json={"symbols": [DOGE], "side": "LONG"})

        assert response.status_code == 200
        body = response.json()
        assert body["results"][0]["symbol"] == DOGE
        assert body["results"][0]["status"] == "SUCCESS"
        assert body["summary"]["SUCCESS"] == 1
        assert exchange.market_orders[0][2] == 75.0

    def test_empty_symbols(self, client):
        response = client.post("/trade", json={"symbols": [], "side": "LONG"})
        assert response.status_code == 400

    def test_invalid_side(self, client):
        response = client.post("/trade", json={"symbols": [DOGE], "side": "UP"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid input"

    def test_missing_credentials(self, anonymous_client):
        response = anonymous_client.post("/trade", json={"symbols": [DOGE], "side": "SHORT"})
        assert response.status_code == 401
        assert response.json()["detail"] == MISSING_CREDENTIALS

    def test_ranking_trade(self, client, exchange):
        exchange.tickers = [{"symbol": DOGE, "last": 2.0, "percentage": 5.0, "quoteVolume": 1e9}]
        response = client.post("/trade/ranking", json={"ranking": "top_gainers", "side": "LONG", "limit": 1})
        assert response.status_code == 200
        assert [r["symbol"] for r in response.json()["results"]] == [DOGE]

    def test_unknown_ranking(self, client):
        response = client.post("/trade/ranking", json={"ranking": "top_volume", "side": "LONG"})
        assert response.status_code == 400

    @pytest.mark.parametrize("limit", [-1, 0, 201])
    def test_ranking_limit_out_of_range(self, client, exchange, limit):
        exchange.tickers = [{"symbol": DOGE, "last": 2.0, "percentage": 5.0, "quoteVolume": 1e9}]
        response = client.post("/trade/ranking", json={"ranking": "top_market", "side": "LONG", "limit": limit})
        assert response.status_code == 400
        assert exchange.market_orders == []

    def test_add_margin(self, client, exchange):
        exchange.positions = [ExchangePosition(symbol=DOGE, amount=75, entry_price=2.0)]
        response = client.post("/add-margin", json={"symbols": [DOGE, ETH], "side": "LONG"})

        assert response.status_code == 200
        assert [r["status"] for r in response.json()["results"]] == ["SUCCESS", "SKIPPED"]


def test_market(client, exchange):
    exchange.tickers = [
        {"symbol": "BTC/USDT:USDT", "last": 60000, "percentage": 1.0, "quoteVolume": 9e9},
        {"symbol": DOGE, "last": 2.0, "percentage": 5.0, "quoteVolume": 1e9},
    ]
    response = client.get("/market", params={"limit": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["top_market"][0]["symbol"] == "BTC/USDT:USDT"
    assert body["top_gainers"][0]["symbol"] == DOGE


class TestPositionRoutes:

    @pytest.fixture
    def held(self, exchange):
        exchange.positions = [
            ExchangePosition(symbol=DOGE, amount=75, entry_price=2.0),
            ExchangePosition(symbol=ETH, amount=-0.05, entry_price=3000.0),
        ]
        return exchange

    def test_get_positions(self, client, held):
        response = client.get("/positions")

        assert response.status_code == 200
        body = response.json()
        assert {p["symbol"] for p in body["positions"]} == {DOGE, ETH}
        assert body["wallet_balance"] == 1000.0

    def test_get_positions_requires_credentials(self, anonymous_client):
        assert anonymous_client.get("/positions").status_code == 401

    def test_close_by_side(self, client, held):
        response = client.delete("/positions", params={"type": "SHORT"})

        assert response.status_code == 200
        assert response.json()["results"] == [{"symbol": ETH, "status": "CLOSED", "order_id": "1001"}]

    def test_close_symbol_subset(self, client, held):
        response = client.request("DELETE", "/positions", json={"symbols": [DOGE]})

        assert response.status_code == 200
        assert [r["symbol"] for r in response.json()["results"]] == [DOGE]
        assert held.market_orders[0][3] is True

    def test_close_invalid_scope(self, client):
        assert client.delete("/positions", params={"type": "BOTH"}).status_code == 400


class TestConfigRoutes:

    def test_secrets_are_hidden(self, client):
        config = client.get("/config").json()["config"]

        assert config["api_key"] == "test-key-123456"
        assert "api_secret" not in config
        assert config["has_api_secret"] is True
        assert config["has_copytrading_api_secret"] is False

    def test_partial_update_keeps_other_fields(self, client, trading_service):
        response = client.put("/config", json={"long_leverage": 20, "take_profit": "25", "stop_loss": ""})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "配置已保存"
        assert body["config"]["long_leverage"] == 20.0
        assert body["config"]["take_profit"] == 25.0
        assert body["config"]["stop_loss"] is None
        assert body["config"]["has_api_secret"] is True

        stored = trading_service.load_config()
        assert stored.api_secret == "test-secret-abcdef"
        assert stored.short_leverage == 50.0

    @pytest.mark.parametrize("update", [
        {"long_margin": 0},
        {"short_margin": -3},
        {"long_leverage": 0.5},
        {"short_leverage": -10},
        {"default_limit": 0},
    ])
    def test_out_of_range_values_are_rejected(self, client, trading_service, update):
        response = client.put("/config", json=update)

        assert response.status_code == 400
        stored = trading_service.load_config()
        assert stored.long_margin == 3.0
        assert stored.long_leverage == 50.0
