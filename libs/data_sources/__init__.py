"""
External market data sources
"""

from .coingecko import CoinGeckoClient, build_market_cap_map, format_market_cap

__all__ = [
    "CoinGeckoClient",
    "build_market_cap_map",
    "format_market_cap",
]
