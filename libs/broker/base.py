"""
Base exchange interface and exceptions
"""

import json
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any

from ..data.models import MarketLimits, ExchangePosition, ConditionalOrder, PositionSide


class BrokerError(Exception):
    """Base exception for exchange-related errors"""
    pass


class AuthenticationError(BrokerError):
    """Missing or rejected API credentials"""
    pass


class OrderError(BrokerError):
    """Order placement error"""
    pass


class MarketDataError(BrokerError):
    """Ticker, market or balance lookup error"""
    pass


_BINANCE_ERROR_RE = re.compile(r"binance\s+({.+})")


def describe_auth_error(message: Optional[str]) -> str:
    """Translate a Binance credential rejection into a user-facing message"""
    default = "API Key 验证失败"
    match = _BINANCE_ERROR_RE.search(message or "")
    if not match:
        return default
    try:
        payload = json.loads(match.group(1))
    except ValueError:
        return default

    code = payload.get("code")
    if code == -2008:
        return "API Key 无效，请检查您的 API 密钥配置"
    if code == -2015:
        return "API Secret 无效，请检查您的 API 密钥配置"
    if payload.get("msg"):
        return f"Binance API 错误: {payload['msg']}"
    return default


class BaseExchange(ABC):
    """Abstract base class for futures exchange implementations"""

    @abstractmethod
    async def load_markets(self) -> None:
        """Load market metadata"""
        pass

    @abstractmethod
    async def fetch_tickers(self) -> List[Dict[str, Any]]:
        """Get 24h tickers for every market"""
        pass

    @abstractmethod
    async def fetch_usdt_balance(self, prefer: str = "free") -> float:
        """Get USDT balance, `free` for sizing or `total` for display"""
        pass

    @abstractmethod
    async def fetch_positions(self) -> List[ExchangePosition]:
        """Get open (non-zero) positions"""
        pass

    @abstractmethod
    async def fetch_last_price(self, symbol: str) -> float:
        """Get last traded price"""
        pass

    @abstractmethod
    async def set_leverage(self, leverage: float, symbol: str) -> None:
        """Set leverage for a symbol"""
        pass

    @abstractmethod
    def market_limits(self, symbol: str) -> Optional[MarketLimits]:
        """Get order-size limits for a loaded market"""
        pass

    @abstractmethod
    def market_is_trading(self, symbol: str) -> bool:
        """Check whether a market is active and trading"""
        pass

    @abstractmethod
    async def create_market_order(self, symbol: str, side: PositionSide, quantity: float,
                                  reduce: bool = False) -> str:
        """Place a market order on a hedge-mode position side and return the order ID"""
        pass

    @abstractmethod
    async def create_conditional_order(self, symbol: str, order_type: str, side: PositionSide,
                                       quantity: float, stop_price: float) -> str:
        """Place a close-position trigger order and return the order ID"""
        pass

    @abstractmethod
    async def fetch_open_orders(self, symbol: str) -> List[ConditionalOrder]:
        """Get open orders for a symbol"""
        pass

    @abstractmethod
    async def fetch_open_algo_orders(self) -> List[ConditionalOrder]:
        """Get open trigger orders held by the algo order service, all symbols"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources"""
        pass
