"""
Order sizing, TP/SL derivation and batch helpers
"""

from .sizing import SizingError, compute_notional, cap_notional, size_order, round_to_step
from .tpsl import TriggerPrices, derive_trigger_prices, take_profit_price, stop_loss_price
from .retry import (
    LEVERAGE_FALLBACKS,
    is_retryable_order_error,
    retry_notional,
    default_min_notional,
    base_asset,
)
from .symbols import parse_ignored_symbols, filter_ignored, chunked
from .positions import build_position_view, effective_leverage

__all__ = [
    "SizingError",
    "compute_notional",
    "cap_notional",
    "size_order",
    "round_to_step",
    "TriggerPrices",
    "derive_trigger_prices",
    "take_profit_price",
    "stop_loss_price",
    "LEVERAGE_FALLBACKS",
    "is_retryable_order_error",
    "retry_notional",
    "default_min_notional",
    "base_asset",
    "parse_ignored_symbols",
    "filter_ignored",
    "chunked",
    "build_position_view",
    "effective_leverage",
]
