"""
Take-profit / stop-loss trigger prices from margin-percentage targets
"""

from typing import NamedTuple, Optional

from ..data.models import PositionSide


class TriggerPrices(NamedTuple):
    take_profit: Optional[float]
    stop_loss: Optional[float]


def take_profit_price(entry: float, side: PositionSide, margin: float,
                      quantity: float, percent: float) -> Optional[float]:
    """Price at which P&L equals `percent` of margin; None when disabled"""
    if percent <= 0:
        return None
    profit_target = margin * (1 + percent / 100)
    delta = (profit_target - margin) / quantity
    return entry + delta if side is PositionSide.LONG else entry - delta


def stop_loss_price(entry: float, side: PositionSide, margin: float,
                    quantity: float, percent: float) -> Optional[float]:
    """Price at which loss equals `percent` of margin; None when disabled"""
    if percent <= 0:
        return None
    loss_limit = margin * (1 - percent / 100)
    delta = (margin - loss_limit) / quantity
    return entry - delta if side is PositionSide.LONG else entry + delta


def derive_trigger_prices(entry: float, side: PositionSide, notional: float, leverage: float,
                          quantity: float, take_profit: float, stop_loss: float) -> TriggerPrices:
    """Both trigger prices, using the margin actually committed (notional / leverage)"""
    margin = notional / leverage
    return TriggerPrices(
        take_profit=take_profit_price(entry, side, margin, quantity, take_profit),
        stop_loss=stop_loss_price(entry, side, margin, quantity, stop_loss),
    )
