"""
CoinGecko client for market capitalisation rankings
"""

from typing import Dict, Any, List, Optional

import httpx

from ..core.config import get_settings
from ..core.logging import get_logger
from ..data.models import MarketCapEntry

logger = get_logger(__name__)


def format_market_cap(value: float) -> str:
    if value >= 1e12:
        return f"{value / 1e12:.2f}万亿"
    if value >= 1e8:
        return f"{value / 1e8:.2f}亿"
    if value >= 1e6:
        return f"{value / 1e6:.2f}百万"
    return f"{value:.2f}"


def build_market_cap_map(coins: List[Dict[str, Any]]) -> Dict[str, MarketCapEntry]:
    """Index coins by uppercase symbol, keeping the best rank per symbol"""
    result: Dict[str, MarketCapEntry] = {}
    for coin in coins:
        market_cap = coin.get("market_cap")
        rank = coin.get("market_cap_rank")
        symbol = coin.get("symbol")
        if not market_cap or market_cap <= 0 or not symbol or not rank:
            continue

        symbol = symbol.upper()
        existing = result.get(symbol)
        if existing and existing.rank < rank:
            continue

        result[symbol] = MarketCapEntry(
            market_cap=market_cap,
            market_cap_formatted=format_market_cap(market_cap),
            rank=rank,
        )
    return result


class CoinGeckoClient:
    """Client for the CoinGecko `/coins/markets` endpoint"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_settings()
        self.api_key = api_key if api_key is not None else self.settings.coingecko_api_key
        self.base_url = (base_url or self.settings.coingecko_url).rstrip("/")
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry"""
        self.client = httpx.AsyncClient(
            timeout=self.settings.http_timeout,
            headers={"Accept": "application/json"},
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        if self.client:
            await self.client.aclose()

    async def get_market_caps(self) -> Optional[Dict[str, MarketCapEntry]]:
        """
        Fetch market caps keyed by symbol.

        Returns None on any HTTP failure or an empty payload so callers can
        fall back to volume ordering.
        """
        params = {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": str(self.settings.market_cap_page_size),
            "page": "1",
            "sparkline": "false",
        }
        if self.api_key:
            params["x_cg_demo_api_key"] = self.api_key

        try:
            response = await self.client.get(f"{self.base_url}/coins/markets", params=params)
        except httpx.HTTPError as e:
            logger.error("Failed to fetch market cap data", error=str(e))
            return None

        if response.status_code != 200:
            logger.error("CoinGecko API error", status_code=response.status_code)
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error("CoinGecko returned invalid JSON", error=str(e))
            return None

        if not isinstance(data, list) or not data:
            logger.warning("CoinGecko returned no coins")
            return None

        market_caps = build_market_cap_map(data)
        logger.info("Fetched market cap data", coins=len(market_caps))
        return market_caps
