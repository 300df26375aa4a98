"""
Pydantic models for data structures
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field, field_validator


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def order_side(self) -> str:
        """ccxt order side that opens or adds to this position"""
        return "buy" if self is PositionSide.LONG else "sell"

    @property
    def exit_side(self) -> str:
        """ccxt order side that reduces this position"""
        return "sell" if self is PositionSide.LONG else "buy"


class CloseScope(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    ALL = "ALL"

    def includes(self, side: PositionSide) -> bool:
        return self is CloseScope.ALL or self.value == side.value


class ResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    CLOSED = "CLOSED"


class BatchItemResult(BaseModel):
    """Outcome of one symbol inside a batch operation"""
    symbol: str
    status: ResultStatus
    order_id: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, symbol: str, order_id: Optional[str] = None, message: Optional[str] = None) -> "BatchItemResult":
        return cls(symbol=symbol, status=ResultStatus.SUCCESS, order_id=order_id, message=message)

    @classmethod
    def skipped(cls, symbol: str, message: str) -> "BatchItemResult":
        return cls(symbol=symbol, status=ResultStatus.SKIPPED, message=message)

    @classmethod
    def failed(cls, symbol: str, message: str) -> "BatchItemResult":
        return cls(symbol=symbol, status=ResultStatus.FAILED, message=message)

    @classmethod
    def closed(cls, symbol: str, order_id: Optional[str] = None) -> "BatchItemResult":
        return cls(symbol=symbol, status=ResultStatus.CLOSED, order_id=order_id)


class BatchReport(BaseModel):
    """Ordered per-symbol results of a batch operation"""
    results: List[BatchItemResult] = Field(default_factory=list)

    def add(self, result: BatchItemResult) -> BatchItemResult:
        self.results.append(result)
        return result

    def by_status(self, status: ResultStatus) -> List[BatchItemResult]:
        return [r for r in self.results if r.status == status]

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ResultStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def to_response(self) -> Dict[str, Any]:
        return {
            "results": [r.model_dump(exclude_none=True) for r in self.results],
            "summary": self.summary(),
        }


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class Credentials(BaseModel):
    """API credentials selected for a request"""
    api_key: str
    api_secret: str
    mode: str = "main"


class TradingConfig(BaseModel):
    """Per-user trading parameters read before every trade"""
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    long_leverage: float = Field(50.0, ge=1)
    long_margin: float = Field(3.0, gt=0)
    short_leverage: float = Field(50.0, ge=1)
    short_margin: float = Field(3.0, gt=0)
    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None
    default_limit: int = Field(10, ge=1, le=200)
    ignored_symbols: str = ""
    copytrading_mode: bool = False
    copytrading_api_key: Optional[str] = None
    copytrading_api_secret: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("take_profit", "stop_loss", mode="before")
    @classmethod
    def _parse_percent(cls, value: Any) -> Optional[float]:
        return _blank_to_none(value)

    @field_validator("long_leverage", "short_leverage", mode="before")
    @classmethod
    def _default_leverage(cls, value: Any) -> float:
        parsed = _blank_to_none(value)
        return 50.0 if parsed is None else parsed

    @field_validator("long_margin", "short_margin", mode="before")
    @classmethod
    def _default_margin(cls, value: Any) -> float:
        parsed = _blank_to_none(value)
        return 3.0 if parsed is None else parsed

    @field_validator("ignored_symbols", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return value or ""

    def leverage_for(self, side: PositionSide) -> float:
        return self.long_leverage if side is PositionSide.LONG else self.short_leverage

    def margin_for(self, side: PositionSide) -> float:
        return self.long_margin if side is PositionSide.LONG else self.short_margin

    @property
    def take_profit_percent(self) -> float:
        return self.take_profit or 0.0

    @property
    def stop_loss_percent(self) -> float:
        return self.stop_loss or 0.0

    def credentials(self) -> Optional[Credentials]:
        """Copytrading credentials when enabled and complete, otherwise the main account"""
        if self.copytrading_mode:
            key = (self.copytrading_api_key or "").strip()
            secret = (self.copytrading_api_secret or "").strip()
            if key and secret:
                return Credentials(api_key=key, api_secret=secret, mode="copytrading")

        key = (self.api_key or "").strip()
        secret = (self.api_secret or "").strip()
        if not key or not secret:
            return None
        return Credentials(api_key=key, api_secret=secret, mode="main")


class MarketLimits(BaseModel):
    """Exchange order-size limits for one market"""
    min_amount: Optional[float] = None
    min_cost: Optional[float] = None
    amount_step: Optional[Decimal] = None


class ExchangePosition(BaseModel):
    """Open futures position as reported by the exchange"""
    symbol: str
    amount: float  # signed; positive is LONG
    entry_price: float
    mark_price: Optional[float] = None
    unrealized_pnl: float = 0.0
    notional: Optional[float] = None
    initial_margin: Optional[float] = None
    leverage: Optional[float] = None

    @property
    def side(self) -> PositionSide:
        return PositionSide.LONG if self.amount > 0 else PositionSide.SHORT

    @property
    def size(self) -> float:
        return abs(self.amount)


class ConditionalOrder(BaseModel):
    """Open take-profit or stop-loss trigger order"""
    symbol: str
    order_type: str
    position_side: Optional[str] = None
    stop_price: Optional[float] = None


class PositionView(BaseModel):
    """Position joined with its TP/SL trigger prices"""
    symbol: str
    size: float
    entry_price: float
    mark_price: float
    pnl: float
    side: PositionSide
    leverage: float
    position_notional: float
    margin: float
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None


class PositionsSnapshot(BaseModel):
    positions: List[PositionView] = Field(default_factory=list)
    wallet_balance: float = 0.0


class MarketCapEntry(BaseModel):
    market_cap: float
    market_cap_formatted: str
    rank: int


class RankedTicker(BaseModel):
    """One row of a ranking list"""
    symbol: str
    price: Optional[float] = None
    change: Optional[float] = None
    volume: Optional[float] = None
    volume_formatted: str = "0.00"
    market_cap: float = 0.0
    market_cap_formatted: str = "N/A"
    rank: Optional[int] = None


class Rankings(BaseModel):
    top_market: List[RankedTicker] = Field(default_factory=list)
    top_gainers: List[RankedTicker] = Field(default_factory=list)
    top_losers: List[RankedTicker] = Field(default_factory=list)

    def symbols(self, list_name: str, limit: Optional[int] = None) -> List[str]:
        rows = getattr(self, list_name)
        if limit is not None:
            rows = rows[:limit]
        return [row.symbol for row in rows]
