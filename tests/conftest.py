"""
Shared fixtures: an in-memory exchange and services wired to it
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from libs.broker.base import BaseExchange, AuthenticationError, BrokerError, MarketDataError
from libs.core.config import Settings
from libs.data.models import (
    ConditionalOrder,
    Credentials,
    ExchangePosition,
    MarketCapEntry,
    MarketLimits,
    PositionSide,
    TradingConfig,
)
from libs.data.repository import TradingConfigRepository


def run(coro):
    return asyncio.run(coro)


class FakeExchange(BaseExchange):
    """Scriptable exchange that records every order it receives"""

    def __init__(self,
                 prices: Optional[Dict[str, float]] = None,
                 positions: Optional[List[ExchangePosition]] = None,
                 limits: Optional[Dict[str, MarketLimits]] = None,
                 balance: float = 1000.0,
                 total_balance: Optional[float] = None,
                 tickers: Optional[List[Dict[str, Any]]] = None,
                 trading: Optional[set] = None):
        self.prices = prices or {}
        self.positions = positions or []
        self.limits = limits or {}
        self.balance = balance
        self.total_balance = total_balance if total_balance is not None else balance
        self.tickers = tickers or []
        self.trading = trading
        self.open_orders: Dict[str, List[ConditionalOrder]] = {}
        self.algo_orders: List[ConditionalOrder] = []

        self.order_errors: Dict[str, List[Exception]] = {}
        self.rejected_leverage: set = set()
        self.balance_error: Optional[Exception] = None
        self.open_orders_error: Optional[Exception] = None
        self.algo_orders_error: Optional[Exception] = None

        self.market_orders: List[tuple] = []
        self.conditional_orders: List[tuple] = []
        self.leverage_calls: List[tuple] = []
        self.closed = 0
        self._next_id = 1000

    def _order_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def load_markets(self) -> None:
        pass

    async def fetch_tickers(self) -> List[Dict[str, Any]]:
        return list(self.tickers)

    async def fetch_usdt_balance(self, prefer: str = "free") -> float:
        if self.balance_error:
            raise self.balance_error
        return self.balance if prefer == "free" else self.total_balance

    async def fetch_positions(self) -> List[ExchangePosition]:
        return list(self.positions)

    async def fetch_last_price(self, symbol: str) -> float:
        if symbol not in self.prices:
            raise MarketDataError("Could not fetch price")
        return self.prices[symbol]

    async def set_leverage(self, leverage: float, symbol: str) -> None:
        self.leverage_calls.append((symbol, leverage))
        if leverage in self.rejected_leverage:
            raise BrokerError(f"leverage {leverage} is not valid")

    def market_limits(self, symbol: str) -> Optional[MarketLimits]:
        return self.limits.get(symbol)

    def market_is_trading(self, symbol: str) -> bool:
        return self.trading is None or symbol in self.trading

    async def create_market_order(self, symbol: str, side: PositionSide, quantity: float,
                                  reduce: bool = False) -> str:
        errors = self.order_errors.get(symbol)
        if errors:
            raise errors.pop(0)
        self.market_orders.append((symbol, side, quantity, reduce))
        return self._order_id()

    async def create_conditional_order(self, symbol: str, order_type: str, side: PositionSide,
                                       quantity: float, stop_price: float) -> str:
        self.conditional_orders.append((symbol, order_type, side, quantity, stop_price))
        return self._order_id()

    async def fetch_open_orders(self, symbol: str) -> List[ConditionalOrder]:
        if self.open_orders_error:
            raise self.open_orders_error
        return self.open_orders.get(symbol, [])

    async def fetch_open_algo_orders(self) -> List[ConditionalOrder]:
        if self.algo_orders_error:
            raise self.algo_orders_error
        return list(self.algo_orders)

    async def close(self) -> None:
        self.closed += 1


class FakeClientFactory:
    """Stands in for get_exchange_client"""

    def __init__(self, exchange: FakeExchange):
        self.exchange = exchange
        self.calls: List[Optional[Credentials]] = []

    async def __call__(self, credentials: Optional[Credentials] = None, require_auth: bool = False):
        self.calls.append(credentials)
        if require_auth and credentials is None:
            raise AuthenticationError("Authentication required: API Key and Secret must be provided")
        return self.exchange


@pytest.fixture
def settings():
    return Settings(
        positions_poll_interval=0,
        trade_batch_size=2,
        close_batch_size=2,
        log_format="console",
    )


@pytest.fixture
def repo(tmp_path):
    return TradingConfigRepository(str(tmp_path / "config.db"))


@pytest.fixture
def configured_repo(repo):
    repo.save(TradingConfig(api_key="test-key-123456", api_secret="test-secret-abcdef"))
    return repo


@pytest.fixture
def exchange():
    return FakeExchange(
        prices={
            "BTC/USDT:USDT": 60000.0,
            "ETH/USDT:USDT": 3000.0,
            "DOGE/USDT:USDT": 2.0,
            "PEPE/USDT:USDT": 0.00001,
        },
        limits={
            "DOGE/USDT:USDT": MarketLimits(min_amount=1.0, min_cost=5.0, amount_step=Decimal("1")),
            "ETH/USDT:USDT": MarketLimits(min_amount=0.001, min_cost=20.0, amount_step=Decimal("0.001")),
        },
    )


@pytest.fixture
def client_factory(exchange):
    return FakeClientFactory(exchange)


@pytest.fixture
def market_caps():
    return {
        "BTC": MarketCapEntry(market_cap=1.2e12, market_cap_formatted="1.20万亿", rank=1),
        "ETH": MarketCapEntry(market_cap=4e11, market_cap_formatted="4000.00亿", rank=2),
        "DOGE": MarketCapEntry(market_cap=2e10, market_cap_formatted="200.00亿", rank=8),
        "PEPE": MarketCapEntry(market_cap=4e9, market_cap_formatted="40.00亿", rank=30),
    }


@pytest.fixture
def market_service(client_factory, market_caps):
    from apps.dashboard.market_service import MarketService

    async def source():
        return market_caps

    return MarketService(client_factory=client_factory, market_cap_source=source)


@pytest.fixture
def trading_service(configured_repo, market_service, client_factory, settings):
    from apps.dashboard.trading_service import TradingService

    return TradingService(configured_repo, market_service=market_service,
                          client_factory=client_factory, settings=settings)
