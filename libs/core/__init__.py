"""
Core utilities and shared functionality
"""

from .config import Settings, get_settings
from .logging import setup_logging, get_logger, log_trade_decision, mask_key

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "log_trade_decision",
    "mask_key",
]
