"""
Trading Service Implementation

Batch open, add-margin and close operations plus the position reader.
Every symbol in a batch produces exactly one BatchItemResult; a failure on
one symbol never stops the rest of the batch.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from libs.broker.base import BaseExchange, BrokerError, AuthenticationError, OrderError, describe_auth_error
from libs.broker.binance_client import get_exchange_client
from libs.core.config import Settings, get_settings
from libs.core.logging import get_logger, log_trade_decision, mask_key
from libs.data.models import (
    BatchItemResult,
    BatchReport,
    CloseScope,
    ConditionalOrder,
    Credentials,
    ExchangePosition,
    PositionSide,
    PositionsSnapshot,
    ResultStatus,
    TradingConfig,
)
from libs.data.repository import TradingConfigRepository
from libs.trading.positions import build_position_view
from libs.trading.retry import LEVERAGE_FALLBACKS, is_retryable_order_error, retry_notional
from libs.trading.sizing import SizingError, cap_notional, compute_notional, size_order
from libs.trading.symbols import chunked, filter_ignored, parse_ignored_symbols
from libs.trading.tpsl import derive_trigger_prices

from .market_service import MarketService, RANKING_LISTS

logger = get_logger(__name__)

MISSING_CREDENTIALS = "请先在设置中配置 API 密钥"


def sse_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class TradingService:
    """Order sizing and submission against the configured futures account"""

    def __init__(self,
                 config_repo: TradingConfigRepository,
                 market_service: Optional[MarketService] = None,
                 client_factory: Callable[..., Awaitable[BaseExchange]] = get_exchange_client,
                 settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.config_repo = config_repo
        self.market_service = market_service or MarketService()
        self.client_factory = client_factory

    # Configuration

    def load_config(self) -> TradingConfig:
        """Stored config, or defaults seeded with credentials from the environment"""
        config = self.config_repo.get()
        if config is None:
            config = TradingConfig(
                api_key=self.settings.binance_api_key,
                api_secret=self.settings.binance_api_secret,
            )
        return config

    def save_config(self, config: TradingConfig) -> TradingConfig:
        saved = self.config_repo.save(config)
        logger.info("Trading config saved",
                    api_key=mask_key(saved.api_key),
                    copytrading_mode=saved.copytrading_mode)
        return saved

    def _require_credentials(self, config: TradingConfig) -> Credentials:
        credentials = config.credentials()
        if credentials is None:
            logger.error("No credentials configured")
            raise AuthenticationError(MISSING_CREDENTIALS)
        logger.info("Using account credentials", mode=credentials.mode, api_key=mask_key(credentials.api_key))
        return credentials

    async def _sizing_balance(self, client: BaseExchange) -> float:
        """Free USDT balance, or the configured fallback when unavailable"""
        fallback = self.settings.fallback_account_balance
        try:
            balance = await client.fetch_usdt_balance("free")
        except BrokerError as e:
            logger.warning("Could not fetch balance, using default", default=fallback, error=str(e))
            return fallback
        return balance or fallback

    # Opening positions

    async def open_positions(self, symbols: List[str], side: PositionSide) -> BatchReport:
        """Open a new position on every symbol that has none"""
        config = self.load_config()
        credentials = self._require_credentials(config)

        leverage = config.leverage_for(side)
        margin = config.margin_for(side)
        notional = compute_notional(margin, leverage)

        logger.info("Trade request",
                    symbols=len(symbols),
                    side=side.value,
                    leverage=leverage,
                    margin=margin,
                    notional=notional,
                    take_profit=config.take_profit_percent,
                    stop_loss=config.stop_loss_percent)

        report = BatchReport()
        ignored = parse_ignored_symbols(config.ignored_symbols)
        kept, dropped = filter_ignored(symbols, ignored)
        for symbol in dropped:
            logger.info("Skipping ignored symbol", symbol=symbol)
            report.add(BatchItemResult.skipped(symbol, "币种已忽略"))
        if not kept:
            logger.warning("All symbols are in the ignore list")
            return report

        client = await self.client_factory(credentials, require_auth=True)
        try:
            await client.load_markets()
            balance = await self._sizing_balance(client)
            open_symbols = {p.symbol for p in await client.fetch_positions()}
            logger.info("Opening positions", balance=balance, candidates=len(kept), open_positions=len(open_symbols))

            for batch in chunked(kept, self.settings.trade_batch_size):
                logger.debug("Processing batch", symbols=batch)
                for symbol in batch:
                    report.add(await self._open_one(
                        client, symbol, side, config, leverage, notional, balance, open_symbols
                    ))
        finally:
            await client.close()

        logger.info("Trade batch finished", side=side.value, summary=report.summary())
        return report

    async def open_from_ranking(self, list_name: str, side: PositionSide,
                                limit: Optional[int] = None) -> BatchReport:
        """Open positions on the top `limit` symbols of a ranking list"""
        if list_name not in RANKING_LISTS:
            raise ValueError(f"Unknown ranking list: {list_name}")

        config = self.load_config()
        limit = limit or config.default_limit
        if limit < 1:
            raise ValueError(f"Ranking limit must be positive: {limit}")
        rankings = await self.market_service.get_rankings(limit=limit)
        symbols = rankings.symbols(list_name, limit)
        logger.info("Trading ranking list", list_name=list_name, limit=limit, symbols=len(symbols))
        return await self.open_positions(symbols, side)

    async def _apply_leverage(self, client: BaseExchange, symbol: str, leverage: float) -> float:
        """Set leverage, stepping down through fallbacks; 1 when nothing is accepted"""
        try:
            await client.set_leverage(leverage, symbol)
            return leverage
        except BrokerError as e:
            logger.warning("Failed to set leverage, trying lower values",
                           symbol=symbol, leverage=leverage, error=str(e))

        for fallback in LEVERAGE_FALLBACKS:
            try:
                await client.set_leverage(fallback, symbol)
                logger.info("Leverage set", symbol=symbol, leverage=fallback)
                return fallback
            except BrokerError as e:
                logger.debug("Leverage rejected", symbol=symbol, leverage=fallback, error=str(e))

        logger.warning("Could not set leverage, proceeding with account leverage", symbol=symbol)
        return 1

    async def _open_one(self, client: BaseExchange, symbol: str, side: PositionSide,
                        config: TradingConfig, leverage: float, notional: float,
                        balance: float, open_symbols: Set[str]) -> BatchItemResult:
        if symbol in open_symbols:
            return BatchItemResult.skipped(symbol, "已有仓位")

        try:
            actual_leverage = await self._apply_leverage(client, symbol, leverage)

            price = await client.fetch_last_price(symbol)
            target = cap_notional(notional, balance, self.settings.max_balance_fraction)
            quantity = size_order(target, price, client.market_limits(symbol))
            actual_notional = quantity * price

            log_trade_decision(
                logger, symbol, side.order_side, quantity, price,
                reason="batch_open",
                metadata={
                    "configured_notional": notional,
                    "target_notional": target,
                    "actual_notional": round(actual_notional, 2),
                    "leverage": actual_leverage,
                },
            )
            order_id = await client.create_market_order(symbol, side, quantity)

            await self._place_triggers(client, symbol, side, config, price,
                                       actual_notional, actual_leverage, quantity)
            return BatchItemResult.success(symbol, order_id)

        except SizingError as e:
            logger.error("Invalid order size", symbol=symbol, error=str(e))
            return BatchItemResult.failed(symbol, str(e))
        except OrderError as e:
            logger.error("Order rejected", symbol=symbol, error=str(e))
            if is_retryable_order_error(str(e)):
                return await self._retry_open(client, symbol, side, notional, balance, str(e))
            return BatchItemResult.failed(symbol, str(e))
        except Exception as e:
            logger.error("Error trading symbol", symbol=symbol, error=str(e))
            return BatchItemResult.failed(symbol, str(e))

    async def _place_triggers(self, client: BaseExchange, symbol: str, side: PositionSide,
                              config: TradingConfig, entry: float, actual_notional: float,
                              actual_leverage: float, quantity: float) -> None:
        """Attach TP/SL close-position orders; failures are logged only"""
        take_profit = config.take_profit_percent
        stop_loss = config.stop_loss_percent
        if take_profit <= 0 and stop_loss <= 0:
            return

        prices = derive_trigger_prices(entry, side, actual_notional, actual_leverage,
                                       quantity, take_profit, stop_loss)
        logger.info("Trigger prices", symbol=symbol, side=side.value, entry=entry,
                    take_profit=prices.take_profit, stop_loss=prices.stop_loss)

        for order_type, stop_price in (("TAKE_PROFIT_MARKET", prices.take_profit),
                                       ("STOP_MARKET", prices.stop_loss)):
            if not stop_price or stop_price <= 0:
                continue
            try:
                await client.create_conditional_order(symbol, order_type, side, quantity, stop_price)
                logger.info("Trigger order set", symbol=symbol, order_type=order_type, stop_price=stop_price)
            except BrokerError as e:
                logger.warning("Failed to set trigger order", symbol=symbol, order_type=order_type, error=str(e))

    async def _retry_open(self, client: BaseExchange, symbol: str, side: PositionSide,
                          notional: float, balance: float, first_error: str) -> BatchItemResult:
        """One more market order with a larger notional"""
        try:
            price = await client.fetch_last_price(symbol)
            target = retry_notional(symbol, notional, balance,
                                    self.settings.retry_notional_increment,
                                    self.settings.max_balance_fraction)
            quantity = size_order(target, price, client.market_limits(symbol))
            logger.info("Retrying with increased notional", symbol=symbol, notional=target, quantity=quantity)

            order_id = await client.create_market_order(symbol, side, quantity)
            logger.info("Retry successful", symbol=symbol, order_id=order_id)
            return BatchItemResult.success(symbol, order_id, "增加仓位后成功")
        except Exception as e:
            logger.error("Retry also failed", symbol=symbol, error=str(e))
            return BatchItemResult.failed(symbol, f"首次失败: {first_error}, 重试也失败: {e}")

    # Adding to positions

    async def add_margin(self, symbols: List[str], side: PositionSide) -> BatchReport:
        """Add one more configured-size market order to existing positions"""
        config = self.load_config()
        credentials = self._require_credentials(config)

        margin = config.margin_for(side)
        leverage = config.leverage_for(side)
        notional = compute_notional(margin, leverage)
        logger.info("Add margin request", symbols=symbols, side=side.value, margin=margin, notional=notional)

        report = BatchReport()
        client = await self.client_factory(credentials, require_auth=True)
        try:
            await client.load_markets()
            balance = await self._sizing_balance(client)
            held = {p.symbol for p in await client.fetch_positions()}

            for symbol in symbols:
                if symbol not in held:
                    report.add(BatchItemResult.skipped(symbol, "该币种没有持仓"))
                    continue
                try:
                    price = await client.fetch_last_price(symbol)
                    target = cap_notional(notional, balance, self.settings.max_balance_fraction)
                    quantity = size_order(target, price, client.market_limits(symbol))
                    log_trade_decision(logger, symbol, side.order_side, quantity, price, reason="add_margin")

                    order_id = await client.create_market_order(symbol, side, quantity)
                    report.add(BatchItemResult.success(symbol, order_id))
                except Exception as e:
                    logger.error("Add margin failed", symbol=symbol, error=str(e))
                    report.add(BatchItemResult.failed(symbol, str(e)))
        finally:
            await client.close()

        return report

    # Closing positions

    async def close_positions(self, scope: CloseScope, symbols: Optional[List[str]] = None) -> BatchReport:
        """Market-close open positions on the given side(s), optionally limited to `symbols`"""
        config = self.load_config()
        credentials = self._require_credentials(config)

        report = BatchReport()
        client = await self.client_factory(credentials, require_auth=True)
        try:
            positions = await client.fetch_positions()
            targets = set(symbols) if symbols else None
            to_close = [
                p for p in positions
                if (targets is None or p.symbol in targets) and scope.includes(p.side)
            ]
            logger.info("Closing positions", scope=scope.value, count=len(to_close))

            for batch in chunked(to_close, self.settings.close_batch_size):
                for position in batch:
                    report.add(await self._close_one(client, position))
        finally:
            await client.close()

        failed = report.by_status(ResultStatus.FAILED)
        if failed:
            logger.warning("Some positions were not closed", symbols=[r.symbol for r in failed])
        logger.info("Close batch finished", scope=scope.value, summary=report.summary())
        return report

    async def _close_one(self, client: BaseExchange, position: ExchangePosition) -> BatchItemResult:
        try:
            order_id = await client.create_market_order(position.symbol, position.side, position.size, reduce=True)
            logger.info("Position closed", symbol=position.symbol, side=position.side.value, size=position.size)
            return BatchItemResult.closed(position.symbol, order_id)
        except Exception as e:
            logger.error("Failed to close position", symbol=position.symbol, error=str(e))
            return BatchItemResult.failed(position.symbol, str(e))

    # Position reader

    async def _collect_positions(self, client: BaseExchange) -> PositionsSnapshot:
        positions = await client.fetch_positions()
        wallet_balance = await client.fetch_usdt_balance("total")

        # TP/SL placed as conditional orders live in the algo store
        algo_by_symbol: Dict[str, List[ConditionalOrder]] = {}
        if positions:
            try:
                for order in await client.fetch_open_algo_orders():
                    algo_by_symbol.setdefault(order.symbol, []).append(order)
            except BrokerError as e:
                logger.warning("Failed to fetch algo orders", error=str(e))

        views = []
        for position in positions:
            try:
                orders = await client.fetch_open_orders(position.symbol)
            except BrokerError as e:
                logger.warning("Failed to fetch open orders", symbol=position.symbol, error=str(e))
                orders = []
            orders = list(orders) + algo_by_symbol.get(position.symbol, [])
            views.append(build_position_view(position, orders))

        logger.debug("Positions fetched", count=len(views), wallet_balance=wallet_balance)
        return PositionsSnapshot(positions=views, wallet_balance=wallet_balance)

    async def get_positions(self) -> PositionsSnapshot:
        """Open positions with TP/SL prices and the USDT wallet balance"""
        config = self.load_config()
        credentials = self._require_credentials(config)

        client = await self.client_factory(credentials, require_auth=True)
        try:
            return await self._collect_positions(client)
        finally:
            await client.close()

    async def _positions_frame(self) -> str:
        credentials = self.load_config().credentials()
        if credentials is None:
            return sse_frame({"type": "error", "error": MISSING_CREDENTIALS, "code": "NO_CREDENTIALS"})

        try:
            client = await self.client_factory(credentials, require_auth=True)
        except BrokerError as e:
            return sse_frame({"type": "error", "error": str(e)})

        try:
            try:
                await client.fetch_usdt_balance("total")
            except AuthenticationError as e:
                return sse_frame({"type": "error", "error": describe_auth_error(str(e)), "code": "AUTH_FAILED"})

            snapshot = await self._collect_positions(client)
            payload = {"type": "positions", **snapshot.model_dump(mode="json")}
            return sse_frame(payload)
        except Exception as e:
            logger.error("Positions stream error", error=str(e))
            return sse_frame({"type": "error", "error": str(e) or "获取持仓失败"})
        finally:
            await client.close()

    async def stream_positions(self, is_disconnected: Callable[[], Awaitable[bool]]) -> AsyncIterator[str]:
        """Server-sent event frames: `connected`, then a positions frame every poll interval"""
        yield sse_frame({"type": "connected"})
        while not await is_disconnected():
            yield await self._positions_frame()
            await asyncio.sleep(self.settings.positions_poll_interval)
        logger.info("Positions stream closed")
