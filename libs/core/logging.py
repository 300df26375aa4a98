"""
structlog setup for the dashboard

Events are key=value pairs rendered as JSON lines, or as coloured console
output when LOG_FORMAT is anything other than `json`. ccxt and uvicorn keep
logging through the standard library at the same level.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.typing import FilteringBoundLogger, Processor

from .config import get_settings


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(service_name: str) -> None:
    """Configure structlog once at startup and tag every event with `service`"""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            _renderer(settings.log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str) -> FilteringBoundLogger:
    return structlog.get_logger(name)


def mask_key(key: Optional[str]) -> str:
    """`abcdefgh... (64 chars)`; keys never reach the log in full"""
    if not key:
        return "empty"
    return f"{key[:8]}... ({len(key)} chars)"


def log_trade_decision(
    logger: FilteringBoundLogger,
    symbol: str,
    action: str,
    quantity: float,
    price: float,
    reason: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record the inputs behind one order before it is sent.

    `action` is the ccxt order side; `reason` names the operation
    (`batch_open`, `add_margin`), and `metadata` carries the sizing figures.
    """
    logger.info(
        "trade_decision",
        symbol=symbol,
        action=action,
        quantity=quantity,
        price=price,
        reason=reason,
        **(metadata or {}),
    )
