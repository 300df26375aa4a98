"""
Market Service Implementation

Builds the market-cap, gainers and losers ranking lists from Binance
futures tickers merged with CoinGecko market capitalisation.
"""

import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from libs.broker.base import BaseExchange
from libs.broker.binance_client import get_exchange_client
from libs.core.logging import get_logger
from libs.data.models import MarketCapEntry, RankedTicker, Rankings
from libs.data_sources.coingecko import CoinGeckoClient

logger = get_logger(__name__)

STABLECOINS = {
    "USDT", "USDC", "BUSD", "DAI", "TUSD", "USDP", "USDD", "GUSD",
    "FRAX", "LUSD", "SUSD", "USDK", "USDN", "FDUSD", "PYUSD",
}

RANKING_LISTS = ("top_market", "top_gainers", "top_losers")

MarketCapSource = Callable[[], Awaitable[Optional[Dict[str, MarketCapEntry]]]]


def format_volume(value: float) -> str:
    if value >= 1e9:
        return f"{value / 1e9:.2f}B"
    if value >= 1e6:
        return f"{value / 1e6:.2f}M"
    if value >= 1e3:
        return f"{value / 1e3:.2f}K"
    return f"{value:.2f}"


def symbol_variants(coin: str) -> List[str]:
    """Lookup keys for a coin: as-is, without multiplier prefix, without quote suffix"""
    upper = coin.upper()
    variants = [upper]

    without_prefix = re.sub(r"^\d+", "", upper)
    if without_prefix and without_prefix != upper:
        variants.append(without_prefix)

    without_suffix = upper.split("/")[0].split(":")[0]
    if without_suffix != upper:
        variants.append(without_suffix)

    return list(dict.fromkeys(variants))


def is_usdt_perpetual(ticker: Dict[str, Any]) -> bool:
    symbol = ticker.get("symbol") or ""
    if not symbol.endswith(":USDT"):
        return False
    return symbol.split("/")[0] not in STABLECOINS


def lookup_market_cap(coin: str, market_caps: Optional[Dict[str, MarketCapEntry]]) -> Optional[MarketCapEntry]:
    if not market_caps:
        return None
    for variant in symbol_variants(coin):
        entry = market_caps.get(variant)
        if entry:
            return entry
    return None


def to_ranked(ticker: Dict[str, Any], entry: Optional[MarketCapEntry]) -> RankedTicker:
    volume = ticker.get("quoteVolume")
    return RankedTicker(
        symbol=ticker["symbol"],
        price=ticker.get("last"),
        change=ticker.get("percentage"),
        volume=volume,
        volume_formatted=format_volume(volume or 0),
        market_cap=entry.market_cap if entry else 0.0,
        market_cap_formatted=entry.market_cap_formatted if entry else "N/A",
        rank=entry.rank if entry else None,
    )


def build_rankings(tickers: List[Dict[str, Any]],
                   market_caps: Optional[Dict[str, MarketCapEntry]],
                   limit: int,
                   is_trading: Callable[[str], bool]) -> Rankings:
    """
    Rank USDT perpetual tickers three ways.

    Market-cap order needs at least `limit` coins with cap data; otherwise
    the list falls back to 24h quote volume. Gainers and losers only
    consider markets that are active with status TRADING.
    """
    rows = [
        to_ranked(ticker, lookup_market_cap(ticker["symbol"].split("/")[0], market_caps))
        for ticker in tickers
        if is_usdt_perpetual(ticker)
    ]

    with_cap = [row for row in rows if row.rank is not None]
    if len(with_cap) >= limit:
        top_market = sorted(with_cap, key=lambda r: r.rank)[:limit]
    else:
        top_market = sorted(rows, key=lambda r: r.volume or 0, reverse=True)[:limit]

    trading = [row for row in rows if is_trading(row.symbol)]
    top_gainers = sorted(trading, key=lambda r: r.change or 0, reverse=True)[:limit]
    top_losers = sorted(trading, key=lambda r: r.change or 0)[:limit]

    return Rankings(top_market=top_market, top_gainers=top_gainers, top_losers=top_losers)


async def fetch_coingecko_market_caps() -> Optional[Dict[str, MarketCapEntry]]:
    async with CoinGeckoClient() as client:
        return await client.get_market_caps()


class MarketService:
    """Ranking lists for the dashboard"""

    def __init__(self,
                 client_factory: Callable[..., Awaitable[BaseExchange]] = get_exchange_client,
                 market_cap_source: MarketCapSource = fetch_coingecko_market_caps):
        self.client_factory = client_factory
        self.market_cap_source = market_cap_source

    async def get_rankings(self, limit: int = 50, skip_market_cap: bool = False) -> Rankings:
        """Fetch tickers and market caps and build the three ranking lists"""
        client = await self.client_factory()
        market_caps = None if skip_market_cap else await self.market_cap_source()

        tickers = await client.fetch_tickers()
        await client.load_markets()

        rankings = build_rankings(tickers, market_caps, limit, client.market_is_trading)
        logger.info("Rankings built",
                    tickers=len(tickers),
                    market_caps=len(market_caps) if market_caps else 0,
                    limit=limit)
        return rankings
