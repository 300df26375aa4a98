"""
Join exchange positions with their open TP/SL orders
"""

from typing import Iterable

from ..data.models import ExchangePosition, ConditionalOrder, PositionView

TAKE_PROFIT_TYPES = {"TAKE_PROFIT_MARKET", "TAKE_PROFIT"}
STOP_LOSS_TYPES = {"STOP_MARKET", "STOP"}


def effective_leverage(position: ExchangePosition) -> float:
    notional = abs(position.notional or 0.0)
    if notional and position.initial_margin and position.initial_margin > 0:
        return notional / position.initial_margin
    if position.leverage:
        return position.leverage
    return 1.0


def build_position_view(position: ExchangePosition, orders: Iterable[ConditionalOrder]) -> PositionView:
    side = position.side
    leverage = effective_leverage(position)
    position_notional = position.size * position.entry_price

    take_profit = None
    stop_loss = None
    for order in orders:
        if order.position_side != side.value:
            continue
        if order.order_type in TAKE_PROFIT_TYPES:
            take_profit = order.stop_price
        elif order.order_type in STOP_LOSS_TYPES:
            stop_loss = order.stop_price

    return PositionView(
        symbol=position.symbol,
        size=position.size,
        entry_price=position.entry_price,
        mark_price=position.mark_price or position.entry_price,
        pnl=position.unrealized_pnl,
        side=side,
        leverage=leverage,
        position_notional=position_notional,
        margin=position.initial_margin or position_notional / leverage,
        take_profit_price=take_profit,
        stop_loss_price=stop_loss,
    )
