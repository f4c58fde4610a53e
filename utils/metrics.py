"""回测绩效指标计算。"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from statistics import mean, pstdev
from typing import Iterable, Optional, Sequence

from shared.models.models import DirectionStats, EquityPoint, Position, PositionSide, TradeStats

MS_PER_HOUR = 1000 * 60 * 60


def _profit(p: Position) -> float:
    return p.profit or 0.0


def _is_win(p: Position) -> bool:
    return _profit(p) > 0


def compute_streaks(positions: Iterable[Position]) -> tuple[int, int]:
    """单次前向遍历求最大连胜/连亏。"""
    max_wins = max_losses = 0
    wins = losses = 0
    for p in positions:
        if _is_win(p):
            wins += 1
            losses = 0
            max_wins = max(max_wins, wins)
        else:
            losses += 1
            wins = 0
            max_losses = max(max_losses, losses)
    return max_wins, max_losses


def compute_max_drawdown(equity_curve: Sequence[EquityPoint], initial_capital: float) -> float:
    """最大回撤（%）：峰值只在创新高时更新。"""
    peak = initial_capital
    max_dd = 0.0
    for point in equity_curve:
        if point.equity > peak:
            peak = point.equity
        dd = (peak - point.equity) / peak * 100.0 if peak > 0 else 0.0
        max_dd = max(max_dd, dd)
    return max_dd


def daily_equity(equity_curve: Sequence[EquityPoint]) -> list[tuple[str, float]]:
    """按 UTC 自然日取每天最后一个权益点。"""
    by_day: dict[str, float] = {}
    for point in equity_curve:
        day = datetime.fromtimestamp(point.timestamp / 1000, tz=timezone.utc).date().isoformat()
        by_day[day] = point.equity
    return sorted(by_day.items())


def compute_sharpe(equity_curve: Sequence[EquityPoint]) -> float:
    """日收益 Sharpe（年化因子 sqrt(365)，加密货币 7x24）。

    少于 2 天或标准差为 0 时返回 0。
    """
    days = daily_equity(equity_curve)
    returns = []
    for (_, prev), (_, curr) in zip(days, days[1:]):
        if prev != 0:
            returns.append((curr - prev) / prev)
    if not returns:
        return 0.0
    sigma = pstdev(returns)
    if sigma == 0:
        return 0.0
    return mean(returns) / sigma * math.sqrt(365)


def _direction_stats(positions: Sequence[Position], side: PositionSide) -> DirectionStats:
    subset = [p for p in positions if p.side == side]
    winners = [p for p in subset if _is_win(p)]
    return DirectionStats(
        total_trades=len(subset),
        winning_trades=len(winners),
        win_rate=len(winners) / len(subset) * 100.0 if subset else 0.0,
        total_profit=sum(_profit(p) for p in subset),
    )


def summarize(
    positions: Sequence[Position],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    *,
    last_timestamp: Optional[int] = None,
) -> TradeStats:
    """汇总持仓列表与权益曲线为 TradeStats。

    Parameters
    ----------
    positions:
        已终结的持仓（CLOSED / NOT_COMPLETED），按时间顺序。
    equity_curve:
        权益曲线。
    initial_capital:
        初始资金（回撤峰值起点、收益率分母）。
    last_timestamp:
        数据最后时间戳，用于未平仓持仓的持有时长；缺省取权益曲线最后一点。
    """
    winners = [p for p in positions if _is_win(p)]
    losers = [p for p in positions if not _is_win(p)]
    total = len(positions)

    avg_profit = mean(_profit(p) for p in winners) if winners else 0.0
    avg_loss = mean(_profit(p) for p in losers) if losers else 0.0
    pl_ratio = abs(avg_profit) / abs(avg_loss) if winners and losers and avg_loss != 0 else 0.0

    max_wins, max_losses = compute_streaks(positions)

    if last_timestamp is None:
        last_timestamp = equity_curve[-1].timestamp if equity_curve else 0
    lengths = [
        ((p.close_timestamp if p.close_timestamp is not None else last_timestamp) - p.open_timestamp) / MS_PER_HOUR
        for p in positions
    ]

    final_equity = equity_curve[-1].equity if equity_curve else initial_capital
    total_return = (final_equity / initial_capital - 1) * 100.0 if initial_capital else 0.0

    return TradeStats(
        total_trades=total,
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=len(winners) / total * 100.0 if total else 0.0,
        average_profit=avg_profit,
        average_loss=avg_loss,
        profit_loss_ratio=pl_ratio,
        total_profit=sum(_profit(p) for p in positions),
        max_drawdown=compute_max_drawdown(equity_curve, initial_capital),
        sharpe_ratio=compute_sharpe(equity_curve),
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        average_trade_length=mean(lengths) if lengths else 0.0,
        long_trade_stats=_direction_stats(positions, PositionSide.LONG),
        short_trade_stats=_direction_stats(positions, PositionSide.SHORT),
        final_equity=final_equity,
        total_return_pct=total_return,
    )
