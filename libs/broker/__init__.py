"""
Exchange integration and Binance futures client
"""

from .base import (
    BaseExchange,
    BrokerError,
    AuthenticationError,
    OrderError,
    MarketDataError,
    describe_auth_error,
)
from .binance_client import BinanceFuturesClient, get_exchange_client, close_public_client

__all__ = [
    "BaseExchange",
    "BrokerError",
    "AuthenticationError",
    "OrderError",
    "MarketDataError",
    "describe_auth_error",
    "BinanceFuturesClient",
    "get_exchange_client",
    "close_public_client",
]
