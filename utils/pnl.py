"""持仓盈亏计算（名义价值口径）。"""

from __future__ import annotations

from shared.models.models import Position, PositionSide


def position_profit(side: PositionSide, size: float, avg_price: float, price: float) -> float:
    """
    按名义价值计算盈亏：LONG 为 size * (price - avg) / avg，SHORT 取反。
    """
    if avg_price <= 0:
        return 0.0
    move = (price - avg_price) / avg_price
    if side == PositionSide.SHORT:
        move = -move
    return size * move


def profit_percent(profit: float, size: float) -> float:
    """盈亏占名义价值的百分比。"""
    return profit / size * 100.0 if size else 0.0


def compute_unrealized_pnl(position: Position | None, price: float) -> float:
    """
    当前持仓在 price 下的未实现盈亏；无持仓为 0。
    """
    if position is None:
        return 0.0
    return position_profit(position.side, position.current_size, position.average_entry_price, price)


def weighted_average_price(entries) -> float:
    """按名义价值加权的平均入场价。"""
    total = sum(e.size for e in entries)
    if total <= 0:
        return 0.0
    return sum(e.price * e.size for e in entries) / total
