"""核心数据结构：Candle/SyntheticTrade/EnrichedCandle/Position/BacktestResult。

时间戳统一为毫秒级 epoch（int）。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    NOT_COMPLETED = "NOT_COMPLETED"


@dataclass(frozen=True)
class Candle:
    """K 线数据（OHLCV）。"""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    volume_quote: float = 0.0


@dataclass(frozen=True)
class SyntheticTrade:
    """由 K 线合成的逐笔成交。"""
    price: float
    timestamp: int
    volume: float = 0.0
    rsi: Optional[float] = None
    atr: Optional[float] = None
    avg_atr: Optional[float] = None


@dataclass(frozen=True)
class EnrichedTrade:
    """带完整指标的合成成交（指标字段必有值）。"""
    price: float
    timestamp: int
    volume: float
    rsi: float
    atr: float
    avg_atr: float


@dataclass(frozen=True)
class EnrichedCandle:
    """K 线 + 其合成成交 + K 线级指标。"""
    candle: Candle
    trades: tuple[EnrichedTrade, ...]
    rsi: float
    atr: float
    avg_atr: float

    @property
    def timestamp(self) -> int:
        return self.candle.timestamp

    @property
    def close(self) -> float:
        return self.candle.close


@dataclass(frozen=True)
class MarketEvent:
    """模拟引擎消费的单个事件（一笔成交或一根无成交 K 线的收盘）。"""
    price: float
    rsi: float
    atr: float
    avg_atr: float
    timestamp: int
    candle_timestamp: int


@dataclass(frozen=True)
class PositionEntry:
    """一次开仓/加仓记录（只追加，不删除）。"""
    price: float
    size: float
    timestamp: int
    entry_rsi: float
    entry_atr: float
    avg_atr: float
    break_even_price: float
    candle_timestamp: int
    pnl: float = 0.0


@dataclass(frozen=True)
class Position:
    """持仓（单方向，多次入场）。

    size 均为计价货币名义价值（USDT）。
    """
    side: PositionSide
    entries: tuple[PositionEntry, ...]
    average_entry_price: float
    current_size: float
    open_timestamp: int
    last_entry_timestamp: int
    open_rsi: float
    status: PositionStatus = PositionStatus.OPEN
    close_timestamp: Optional[int] = None
    close_price: Optional[float] = None
    close_rsi: Optional[float] = None
    profit: Optional[float] = None
    profit_percent: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN


@dataclass(frozen=True)
class EquityPoint:
    timestamp: int
    equity: float


@dataclass(frozen=True)
class DirectionStats:
    """单方向（LONG/SHORT）统计。"""
    total_trades: int = 0
    winning_trades: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0


@dataclass(frozen=True)
class TradeStats:
    """回测汇总指标。

    百分比字段（win_rate/max_drawdown/total_return_pct）单位为 %，
    average_trade_length 单位为小时。
    """
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    average_profit: float
    average_loss: float
    profit_loss_ratio: float
    total_profit: float
    max_drawdown: float
    sharpe_ratio: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    average_trade_length: float
    long_trade_stats: DirectionStats = field(default_factory=DirectionStats)
    short_trade_stats: DirectionStats = field(default_factory=DirectionStats)
    final_equity: float = 0.0
    total_return_pct: float = 0.0


@dataclass(frozen=True)
class BacktestResult:
    """一次回测的完整输出（生成后不可变）。"""
    config: Any
    trades: tuple[Position, ...]
    stats: TradeStats
    equity_curve: tuple[EquityPoint, ...]
    start_time: int
    end_time: int

    def to_dict(self) -> dict[str, Any]:
        """转换为可 JSON 序列化的 dict（枚举转字符串）。"""
        cfg = self.config.model_dump(mode="json") if hasattr(self.config, "model_dump") else self.config
        trades = []
        for pos in self.trades:
            row = asdict(pos)
            row["side"] = pos.side.value
            row["status"] = pos.status.value
            trades.append(row)
        return {
            "config": cfg,
            "trades": trades,
            "stats": asdict(self.stats),
            "equity_curve": [asdict(p) for p in self.equity_curve],
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
