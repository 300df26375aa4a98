"""
Ranking list and CoinGecko client tests
"""

import httpx

from apps.dashboard.market_service import (
    build_rankings,
    format_volume,
    is_usdt_perpetual,
    lookup_market_cap,
    symbol_variants,
)
from libs.data_sources.coingecko import CoinGeckoClient, build_market_cap_map, format_market_cap
from tests.conftest import run


def ticker(symbol, last=1.0, percentage=0.0, volume=0.0):
    return {"symbol": symbol, "last": last, "percentage": percentage, "quoteVolume": volume}


TICKERS = [
    ticker("BTC/USDT:USDT", 60000, 1.5, 9e9),
    ticker("ETH/USDT:USDT", 3000, -2.0, 5e9),
    ticker("DOGE/USDT:USDT", 0.2, 12.0, 8e8),
    ticker("1000PEPE/USDT:USDT", 0.01, -9.0, 6e8),
    ticker("USDC/USDT:USDT", 1.0, 0.01, 3e9),
    ticker("ETH/BTC", 0.05, 0.5, 1e6),
    ticker("OLD/USDT:USDT", 1.0, 50.0, 1e3),
]


class TestFormatting:

    def test_format_volume(self):
        assert format_volume(1.5e9) == "1.50B"
        assert format_volume(2.25e6) == "2.25M"
        assert format_volume(1200) == "1.20K"
        assert format_volume(12) == "12.00"

    def test_format_market_cap(self):
        assert format_market_cap(1.2e12) == "1.20万亿"
        assert format_market_cap(3.5e8) == "3.50亿"
        assert format_market_cap(4e6) == "4.00百万"
        assert format_market_cap(999) == "999.00"


class TestSymbolMatching:

    def test_variants_strip_multiplier_prefix(self):
        assert symbol_variants("1000PEPE") == ["1000PEPE", "PEPE"]

    def test_variants_strip_quote(self):
        assert symbol_variants("btc/usdt:usdt") == ["BTC/USDT:USDT", "BTC"]

    def test_lookup_uses_variants(self, market_caps):
        assert lookup_market_cap("1000PEPE", market_caps).rank == 30
        assert lookup_market_cap("UNKNOWN", market_caps) is None
        assert lookup_market_cap("BTC", None) is None

    def test_usdt_perpetual_filter(self):
        assert is_usdt_perpetual(ticker("BTC/USDT:USDT"))
        assert not is_usdt_perpetual(ticker("USDC/USDT:USDT"))
        assert not is_usdt_perpetual(ticker("ETH/BTC"))
        assert not is_usdt_perpetual(ticker("BTC/USD:BTC"))


class TestBuildRankings:

    def test_top_market_orders_by_rank(self, market_caps):
        rankings = build_rankings(TICKERS, market_caps, 3, lambda s: True)
        assert [r.symbol for r in rankings.top_market] == ["BTC/USDT:USDT", "ETH/USDT:USDT", "DOGE/USDT:USDT"]
        assert rankings.top_market[0].market_cap_formatted == "1.20万亿"

    def test_top_market_falls_back_to_volume(self):
        rankings = build_rankings(TICKERS, None, 2, lambda s: True)
        assert [r.symbol for r in rankings.top_market] == ["BTC/USDT:USDT", "ETH/USDT:USDT"]
        assert rankings.top_market[0].market_cap_formatted == "N/A"
        assert rankings.top_market[0].rank is None

    def test_stablecoins_and_non_perps_are_excluded(self, market_caps):
        rankings = build_rankings(TICKERS, market_caps, 10, lambda s: True)
        symbols = {r.symbol for r in rankings.top_market + rankings.top_gainers + rankings.top_losers}
        assert "USDC/USDT:USDT" not in symbols
        assert "ETH/BTC" not in symbols

    def test_gainers_and_losers_only_include_trading_markets(self, market_caps):
        trading = {"BTC/USDT:USDT", "ETH/USDT:USDT", "DOGE/USDT:USDT", "1000PEPE/USDT:USDT"}
        rankings = build_rankings(TICKERS, market_caps, 2, lambda s: s in trading)
        assert [r.symbol for r in rankings.top_gainers] == ["DOGE/USDT:USDT", "BTC/USDT:USDT"]
        assert [r.symbol for r in rankings.top_losers] == ["1000PEPE/USDT:USDT", "ETH/USDT:USDT"]

    def test_symbols_helper(self, market_caps):
        rankings = build_rankings(TICKERS, market_caps, 3, lambda s: True)
        assert rankings.symbols("top_market", 2) == ["BTC/USDT:USDT", "ETH/USDT:USDT"]


class TestMarketService:

    def test_get_rankings(self, market_service, exchange):
        exchange.tickers = TICKERS
        exchange.trading = {"DOGE/USDT:USDT", "BTC/USDT:USDT"}
        rankings = run(market_service.get_rankings(limit=2))
        assert [r.symbol for r in rankings.top_market] == ["BTC/USDT:USDT", "ETH/USDT:USDT"]
        assert [r.symbol for r in rankings.top_gainers] == ["DOGE/USDT:USDT", "BTC/USDT:USDT"]

    def test_skip_market_cap(self, client_factory, exchange):
        from apps.dashboard.market_service import MarketService

        calls = []

        async def source():
            calls.append(1)
            return {}

        exchange.tickers = TICKERS
        service = MarketService(client_factory=client_factory, market_cap_source=source)
        rankings = run(service.get_rankings(limit=1, skip_market_cap=True))
        assert calls == []
        assert rankings.top_market[0].symbol == "BTC/USDT:USDT"


class TestCoinGeckoClient:

    COINS = [
        {"symbol": "btc", "market_cap": 1.2e12, "market_cap_rank": 1},
        {"symbol": "eth", "market_cap": 4e11, "market_cap_rank": 2},
        {"symbol": "eth", "market_cap": 1e6, "market_cap_rank": 900},
        {"symbol": "nocap", "market_cap": None, "market_cap_rank": 5},
        {"symbol": "norank", "market_cap": 1e9, "market_cap_rank": None},
    ]

    def test_build_map_keeps_best_rank(self):
        caps = build_market_cap_map(self.COINS)
        assert set(caps) == {"BTC", "ETH"}
        assert caps["ETH"].rank == 2

    def _fetch(self, handler):
        async def go():
            async with CoinGeckoClient(api_key="demo", base_url="https://cg.test/api/v3",
                                       transport=httpx.MockTransport(handler)) as client:
                return await client.get_market_caps()
        return run(go())

    def test_get_market_caps(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json=self.COINS)

        caps = self._fetch(handler)
        assert caps["BTC"].rank == 1
        assert "x_cg_demo_api_key=demo" in seen["url"]
        assert "order=market_cap_desc" in seen["url"]

    def test_http_error_returns_none(self):
        assert self._fetch(lambda request: httpx.Response(429, json={"error": "rate limited"})) is None

    def test_non_json_body_returns_none(self):
        def handler(request):
            return httpx.Response(200, text="<html>rate limited</html>")

        assert self._fetch(handler) is None

    def test_empty_payload_returns_none(self):
        assert self._fetch(lambda request: httpx.Response(200, json=[])) is None

    def test_transport_failure_returns_none(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert self._fetch(handler) is None
