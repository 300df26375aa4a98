"""
Single retry for orders rejected as too small
"""

RETRYABLE_MARKERS = ("notional", "minimum", "precision")

LEVERAGE_FALLBACKS = (40, 30, 20, 10)


def is_retryable_order_error(message: str) -> bool:
    """Whether an exchange rejection looks like a minimum-size problem"""
    text = (message or "").lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def default_min_notional(symbol: str) -> float:
    return 200.0 if base_asset(symbol) == "BTC" else 100.0


def retry_notional(symbol: str, notional: float, balance: float,
                   increment: float = 50.0, fraction: float = 0.5) -> float:
    """Notional for the retry: bumped by `increment`, floored, then capped by balance"""
    bumped = max(notional + increment, default_min_notional(symbol))
    return min(bumped, balance * fraction)


def base_asset(symbol: str) -> str:
    """`BTC/USDT:USDT` -> `BTC`"""
    return symbol.split("/")[0].split(":")[0].upper()
