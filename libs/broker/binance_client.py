"""
Binance USDT-margined futures client built on ccxt
"""

from decimal import Decimal
from typing import List, Optional, Dict, Any

import ccxt.async_support as ccxt
from ccxt.base.decimal_to_precision import DECIMAL_PLACES, TICK_SIZE

from .base import BaseExchange, BrokerError, AuthenticationError, OrderError, MarketDataError
from ..core.config import get_settings
from ..core.logging import get_logger, mask_key
from ..data.models import Credentials, MarketLimits, ExchangePosition, ConditionalOrder, PositionSide

logger = get_logger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_usdt_balance(balance: Dict[str, Any], prefer: str = "free") -> float:
    """Pull the USDT amount out of a ccxt balance structure"""
    order = ("free", "total") if prefer == "free" else ("total", "free")

    usdt = balance.get("USDT")
    if isinstance(usdt, dict):
        for key in order:
            amount = _to_float(usdt.get(key))
            if amount:
                return amount
        return 0.0
    if usdt is not None:
        return _to_float(usdt) or 0.0

    for key in order:
        bucket = balance.get(key) or {}
        amount = _to_float(bucket.get("USDT"))
        if amount:
            return amount
    return 0.0


def parse_position(raw: Dict[str, Any]) -> Optional[ExchangePosition]:
    """Convert a ccxt position into an ExchangePosition, None when flat"""
    info = raw.get("info") or {}
    amount = _to_float(info.get("positionAmt")) or 0.0
    if amount == 0:
        return None

    entry_price = _to_float(raw.get("entryPrice")) or _to_float(info.get("entryPrice")) or 0.0
    mark_price = _to_float(raw.get("markPrice")) or _to_float(raw.get("last")) or entry_price
    return ExchangePosition(
        symbol=raw["symbol"],
        amount=amount,
        entry_price=entry_price,
        mark_price=mark_price,
        unrealized_pnl=_to_float(raw.get("unrealizedPnl")) or 0.0,
        notional=_to_float(info.get("notional")),
        initial_margin=_to_float(info.get("initialMargin")),
        leverage=_to_float(info.get("leverage")) or _to_float(raw.get("leverage")),
    )


def parse_open_order(raw: Dict[str, Any], symbol: str) -> ConditionalOrder:
    """Convert a regular or algo open order into a ConditionalOrder"""
    info = raw.get("info") or raw
    return ConditionalOrder(
        symbol=symbol,
        order_type=info.get("type") or info.get("orderType") or raw.get("type") or "",
        position_side=info.get("positionSide"),
        stop_price=_to_float(info.get("triggerPrice")) or _to_float(info.get("stopPrice"))
        or _to_float(raw.get("stopPrice")),
    )


def limits_from_market(market: Dict[str, Any], precision_mode: int) -> MarketLimits:
    """Read min amount, min cost and amount step from a ccxt market"""
    limits = market.get("limits") or {}
    amount_limits = limits.get("amount") or {}
    cost_limits = limits.get("cost") or {}

    step = None
    precision = (market.get("precision") or {}).get("amount")
    if precision is not None:
        if precision_mode == TICK_SIZE:
            step = Decimal(str(precision))
        elif precision_mode == DECIMAL_PLACES:
            step = Decimal(1).scaleb(-int(precision))

    return MarketLimits(
        min_amount=_to_float(amount_limits.get("min")),
        min_cost=_to_float(cost_limits.get("min")),
        amount_step=step,
    )


class BinanceFuturesClient(BaseExchange):
    """Binance futures client (hedge mode, USDT-margined perpetuals)"""

    def __init__(self, credentials: Optional[Credentials] = None):
        self.settings = get_settings()
        self.credentials = credentials
        options = {"defaultType": "future"}
        config = {"enableRateLimit": True, "options": options}
        if credentials:
            options["recvWindow"] = self.settings.binance_recv_window
            config["apiKey"] = credentials.api_key
            config["secret"] = credentials.api_secret
        self.exchange = ccxt.binance(config)

    @property
    def authenticated(self) -> bool:
        return self.credentials is not None

    async def sync_time(self) -> None:
        """Synchronise with the exchange server clock"""
        try:
            await self.exchange.load_time_difference()
            logger.debug("Binance time synchronized")
        except ccxt.BaseError as e:
            logger.warning("Binance time sync failed", error=str(e))

    async def load_markets(self) -> None:
        try:
            await self.exchange.load_markets()
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to load markets: {e}") from e

    async def fetch_tickers(self) -> List[Dict[str, Any]]:
        try:
            tickers = await self.exchange.fetch_tickers()
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch tickers: {e}") from e
        return list(tickers.values())

    async def fetch_usdt_balance(self, prefer: str = "free") -> float:
        try:
            balance = await self.exchange.fetch_balance()
        except ccxt.AuthenticationError as e:
            raise AuthenticationError(str(e)) from e
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch balance: {e}") from e
        return extract_usdt_balance(balance, prefer)

    async def fetch_positions(self) -> List[ExchangePosition]:
        try:
            raw_positions = await self.exchange.fetch_positions()
        except ccxt.AuthenticationError as e:
            raise AuthenticationError(str(e)) from e
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch positions: {e}") from e

        positions = []
        for raw in raw_positions:
            position = parse_position(raw)
            if position is not None:
                positions.append(position)
        return positions

    async def fetch_last_price(self, symbol: str) -> float:
        try:
            ticker = await self.exchange.fetch_ticker(symbol)
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch ticker for {symbol}: {e}") from e
        price = _to_float(ticker.get("last"))
        if not price:
            raise MarketDataError("Could not fetch price")
        return price

    async def set_leverage(self, leverage: float, symbol: str) -> None:
        try:
            await self.exchange.set_leverage(int(leverage), symbol)
        except ccxt.BaseError as e:
            raise BrokerError(str(e)) from e

    def market_limits(self, symbol: str) -> Optional[MarketLimits]:
        try:
            market = self.exchange.market(symbol)
        except ccxt.BaseError as e:
            logger.warning("Could not fetch market limits", symbol=symbol, error=str(e))
            return None
        return limits_from_market(market, self.exchange.precisionMode)

    def market_is_trading(self, symbol: str) -> bool:
        try:
            market = self.exchange.market(symbol)
        except ccxt.BaseError:
            return False
        info = market.get("info") or {}
        return market.get("active") is True and info.get("status") == "TRADING"

    async def create_market_order(self, symbol: str, side: PositionSide, quantity: float,
                                  reduce: bool = False) -> str:
        order_side = side.exit_side if reduce else side.order_side
        try:
            order = await self.exchange.create_market_order(
                symbol, order_side, quantity, None, {"positionSide": side.value}
            )
        except ccxt.AuthenticationError as e:
            raise AuthenticationError(str(e)) from e
        except ccxt.BaseError as e:
            raise OrderError(str(e)) from e
        return str(order.get("id"))

    async def create_conditional_order(self, symbol: str, order_type: str, side: PositionSide,
                                       quantity: float, stop_price: float) -> str:
        try:
            stop_price = float(self.exchange.price_to_precision(symbol, stop_price))
            order = await self.exchange.create_order(
                symbol, order_type, side.exit_side, quantity, None,
                {"positionSide": side.value, "stopPrice": stop_price, "closePosition": True},
            )
        except ccxt.BaseError as e:
            raise OrderError(str(e)) from e
        return str(order.get("id"))

    async def fetch_open_orders(self, symbol: str) -> List[ConditionalOrder]:
        try:
            orders = await self.exchange.fetch_open_orders(symbol)
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch open orders for {symbol}: {e}") from e
        return [parse_open_order(order, symbol) for order in orders]

    async def fetch_open_algo_orders(self) -> List[ConditionalOrder]:
        """
        Open TAKE_PROFIT_MARKET / STOP_MARKET orders from `/fapi/v1/openAlgoOrders`.

        Binance keeps conditional orders in a separate algo order service that
        the regular open-orders endpoint does not return. One call covers every
        symbol; exchange ids such as `DOGEUSDT` are mapped back to unified
        symbols.
        """
        try:
            raw_orders = await self.exchange.request("openAlgoOrders", "fapiPrivate", "GET", {})
        except ccxt.AuthenticationError as e:
            raise AuthenticationError(str(e)) from e
        except ccxt.BaseError as e:
            raise MarketDataError(f"Failed to fetch algo orders: {e}") from e

        if not isinstance(raw_orders, list):
            return []
        return [
            parse_open_order(raw, self.exchange.safe_symbol(raw.get("symbol"), None, None, "swap"))
            for raw in raw_orders
        ]

    async def close(self) -> None:
        await self.exchange.close()


_public_client: Optional[BinanceFuturesClient] = None


async def get_exchange_client(credentials: Optional[Credentials] = None,
                              require_auth: bool = False) -> BinanceFuturesClient:
    """Authenticated client per call, or the shared public client without credentials"""
    global _public_client

    has_key = bool(credentials and credentials.api_key.strip())
    has_secret = bool(credentials and credentials.api_secret.strip())

    if require_auth and not (has_key and has_secret):
        raise AuthenticationError("Authentication required: API Key and Secret must be provided")

    if not (has_key and has_secret):
        if _public_client is None:
            logger.info("Creating public Binance client")
            _public_client = BinanceFuturesClient()
        return _public_client

    trimmed = Credentials(
        api_key=credentials.api_key.strip(),
        api_secret=credentials.api_secret.strip(),
        mode=credentials.mode,
    )
    logger.info("Creating authenticated Binance client", api_key=mask_key(trimmed.api_key), mode=trimmed.mode)
    client = BinanceFuturesClient(trimmed)
    await client.sync_time()
    return client


async def close_public_client() -> None:
    global _public_client
    if _public_client is not None:
        await _public_client.close()
        _public_client = None
