"""
Data models and database utilities
"""

from .models import (
    PositionSide,
    CloseScope,
    ResultStatus,
    BatchItemResult,
    BatchReport,
    Credentials,
    TradingConfig,
    MarketLimits,
    ExchangePosition,
    ConditionalOrder,
    PositionView,
    PositionsSnapshot,
    MarketCapEntry,
    RankedTicker,
    Rankings,
)
from .repository import TradingConfigRepository

__all__ = [
    "PositionSide",
    "CloseScope",
    "ResultStatus",
    "BatchItemResult",
    "BatchReport",
    "Credentials",
    "TradingConfig",
    "MarketLimits",
    "ExchangePosition",
    "ConditionalOrder",
    "PositionView",
    "PositionsSnapshot",
    "MarketCapEntry",
    "RankedTicker",
    "Rankings",
    "TradingConfigRepository",
]
