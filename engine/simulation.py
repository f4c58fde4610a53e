"""持仓模拟引擎（单持仓状态机）。

状态：NO_POSITION -> OPEN -> (加仓循环) -> CLOSED | NOT_COMPLETED。

设计：
- `SimulationState` 是不可变值；`step(state, event, config)` 是纯函数，
  返回新状态与本事件对应的权益点；
- 事件顺序即正确性：K 线内按成交时间升序，K 线之间按时间升序；
- 资金口径：开/加仓扣除保证金 size / leverage，平仓返还保证金 + 盈亏。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Iterator, Optional, Sequence

from shared.config.schema import CloseStrategy, TradeConfig, build_trade_config
from shared.errors import InsufficientData
from shared.models.models import (
    EnrichedCandle,
    EquityPoint,
    MarketEvent,
    Position,
    PositionEntry,
    PositionSide,
    PositionStatus,
)
from shared.utils.logging import setup_logger
from shared.utils.progress import STAGE_SIMULATION, ProgressCallback, report
from utils.pnl import compute_unrealized_pnl, position_profit, profit_percent, weighted_average_price

_LOGGER = setup_logger("sim-engine")

DEFAULT_INITIAL_CAPITAL = 10_000.0


@dataclass(frozen=True)
class SimulationState:
    """一次模拟的全部可变量（以不可变值的形式逐步替换）。"""

    capital: float
    position: Optional[Position] = None
    completed: tuple[Position, ...] = ()
    peak_equity: float = 0.0
    max_drawdown: float = 0.0
    last_price: Optional[float] = None
    last_event: Optional[MarketEvent] = None

    @classmethod
    def initial(cls, capital: float) -> "SimulationState":
        return cls(capital=capital, peak_equity=capital)


@dataclass(frozen=True)
class SimulationOutcome:
    positions: tuple[Position, ...]
    equity_curve: tuple[EquityPoint, ...]
    start_time: int
    end_time: int
    final_capital: float
    max_drawdown: float


def candle_events(candle: EnrichedCandle) -> Iterator[MarketEvent]:
    """单根 K 线的事件：有成交则逐笔（按时间升序），否则只有收盘价一个事件。"""
    if candle.trades:
        for t in sorted(candle.trades, key=lambda x: x.timestamp):
            yield MarketEvent(
                price=t.price,
                rsi=t.rsi,
                atr=t.atr,
                avg_atr=t.avg_atr,
                timestamp=t.timestamp,
                candle_timestamp=candle.timestamp,
            )
        return
    yield MarketEvent(
        price=candle.close,
        rsi=candle.rsi,
        atr=candle.atr,
        avg_atr=candle.avg_atr,
        timestamp=candle.timestamp,
        candle_timestamp=candle.timestamp,
    )


def iter_events(candles: Iterable[EnrichedCandle]) -> Iterator[MarketEvent]:
    for candle in candles:
        yield from candle_events(candle)


def position_equity(state: SimulationState, price: float, config: TradeConfig) -> float:
    """权益 = 已结算资金 + 未实现盈亏 + 持仓占用保证金。"""
    pos = state.position
    if pos is None:
        return state.capital
    return state.capital + compute_unrealized_pnl(pos, price) + pos.current_size / config.leverage


# ---------------------------------------------------------------------------
# 持仓变换（纯函数）
# ---------------------------------------------------------------------------


def open_position(side: PositionSide, event: MarketEvent, size: float) -> Position:
    entry = PositionEntry(
        price=event.price,
        size=size,
        timestamp=event.timestamp,
        entry_rsi=event.rsi,
        entry_atr=event.atr,
        avg_atr=event.avg_atr,
        break_even_price=event.price,
        candle_timestamp=event.candle_timestamp,
        pnl=0.0,
    )
    return Position(
        side=side,
        entries=(entry,),
        average_entry_price=event.price,
        current_size=size,
        open_timestamp=event.timestamp,
        last_entry_timestamp=event.timestamp,
        open_rsi=event.rsi,
    )


def add_to_position(position: Position, event: MarketEvent, size: float) -> Position:
    pnl = compute_unrealized_pnl(position, event.price)
    draft = PositionEntry(
        price=event.price,
        size=size,
        timestamp=event.timestamp,
        entry_rsi=event.rsi,
        entry_atr=event.atr,
        avg_atr=event.avg_atr,
        break_even_price=0.0,
        candle_timestamp=event.candle_timestamp,
        pnl=pnl,
    )
    entries = position.entries + (draft,)
    avg = weighted_average_price(entries)
    entries = entries[:-1] + (replace(draft, break_even_price=avg),)
    return replace(
        position,
        entries=entries,
        average_entry_price=avg,
        current_size=position.current_size + size,
        last_entry_timestamp=event.timestamp,
    )


def close_position(position: Position, price: float, timestamp: int, rsi: float) -> Position:
    profit = position_profit(position.side, position.current_size, position.average_entry_price, price)
    return replace(
        position,
        status=PositionStatus.CLOSED,
        close_timestamp=timestamp,
        close_price=price,
        close_rsi=rsi,
        profit=profit,
        profit_percent=profit_percent(profit, position.current_size),
    )


# ---------------------------------------------------------------------------
# 决策
# ---------------------------------------------------------------------------


def _rsi_exit_signal(position: Position, rsi: float, config: TradeConfig) -> bool:
    if position.side == PositionSide.LONG:
        return rsi >= config.long_exit_rsi
    return rsi <= config.short_exit_rsi


def close_signal(position: Position, rsi: float, config: TradeConfig) -> bool:
    """按平仓策略给出信号（不含最小盈利门槛）。"""
    strategy = config.close_strategy
    if strategy == CloseStrategy.PROFIT:
        return True
    if strategy == CloseStrategy.HYBRID:
        switch = config.switch_close_strategy_notional
        if switch is not None and position.current_size > switch:
            return True
        return _rsi_exit_signal(position, rsi, config)
    return _rsi_exit_signal(position, rsi, config)


def _check_close(state: SimulationState, event: MarketEvent, config: TradeConfig) -> SimulationState:
    pos = state.position
    if pos is None:
        return state
    profit = position_profit(pos.side, pos.current_size, pos.average_entry_price, event.price)
    pct = profit_percent(profit, pos.current_size)
    if pct < config.min_profit_percent or not close_signal(pos, event.rsi, config):
        return state

    closed = close_position(pos, event.price, event.timestamp, event.rsi)
    _LOGGER.info(
        "平仓 %s @ %.6f RSI=%.2f 盈亏=%.4f (%.2f%%) 入场次数=%d",
        pos.side.value,
        event.price,
        event.rsi,
        profit,
        pct,
        len(pos.entries),
    )
    return replace(
        state,
        position=None,
        completed=state.completed + (closed,),
        capital=state.capital + pos.current_size / config.leverage + profit,
    )


def _loss_entries_exhausted(position: Position, config: TradeConfig) -> bool:
    # max_loss_entries == 0 表示不设上限；否则最多追加 max_loss_entries 次
    if config.max_loss_entries <= 0:
        return False
    return len(position.entries) >= config.max_loss_entries + 1


def should_add(position: Position, event: MarketEvent, config: TradeConfig) -> bool:
    """加仓条件：价差、RSI 更极端、浮亏、波动率闸门、加仓间隔、亏损加仓上限。"""
    avg = position.average_entry_price
    gap_pct = abs((event.price - avg) / avg * 100.0) if avg else 0.0
    if gap_pct <= config.break_even_threshold:
        return False

    if position.side == PositionSide.LONG:
        rsi_adverse = event.rsi < position.open_rsi
    else:
        rsi_adverse = event.rsi > position.open_rsi
    if not rsi_adverse:
        return False

    if compute_unrealized_pnl(position, event.price) >= 0:
        return False

    if config.atr_trade_multiplier > 0 and event.atr < config.atr_trade_multiplier * event.avg_atr:
        return False

    elapsed = event.timestamp - position.last_entry_timestamp
    if elapsed < config.position_add_delay:
        _LOGGER.debug(
            "加仓间隔不足：%.1fs < %.1fs", elapsed / 1000, config.position_add_delay / 1000
        )
        return False

    if _loss_entries_exhausted(position, config):
        _LOGGER.debug("亏损加仓已达上限 (%d)", config.max_loss_entries)
        return False
    return True


def _check_open(state: SimulationState, event: MarketEvent, config: TradeConfig) -> SimulationState:
    pos = state.position
    if pos is None:
        size = config.fixed_position_size
        if state.capital < size:
            return state
        if event.rsi <= config.long_entry_rsi:
            side = PositionSide.LONG
        elif event.rsi >= config.short_entry_rsi:
            side = PositionSide.SHORT
        else:
            return state
        _LOGGER.info("开仓 %s @ %.6f RSI=%.2f size=%.2f", side.value, event.price, event.rsi, size)
        return replace(
            state,
            position=open_position(side, event, size),
            capital=state.capital - size / config.leverage,
        )

    size = config.add_position_size
    if state.capital < size or not should_add(pos, event, config):
        return state
    _LOGGER.info(
        "加仓 %s @ %.6f RSI=%.2f (open RSI=%.2f) size=%.2f",
        pos.side.value,
        event.price,
        event.rsi,
        pos.open_rsi,
        size,
    )
    return replace(
        state,
        position=add_to_position(pos, event, size),
        capital=state.capital - size / config.leverage,
    )


def step(state: SimulationState, event: MarketEvent, config: TradeConfig) -> tuple[SimulationState, EquityPoint]:
    """处理单个事件：先检查平仓，再检查开仓/加仓，最后估值并更新回撤。"""
    state = _check_close(state, event, config)
    state = _check_open(state, event, config)

    equity = position_equity(state, event.price, config)
    peak = max(state.peak_equity, equity)
    dd = (peak - equity) / peak * 100.0 if peak > 0 else 0.0
    state = replace(
        state,
        peak_equity=peak,
        max_drawdown=max(state.max_drawdown, dd),
        last_price=event.price,
        last_event=event,
    )
    return state, EquityPoint(timestamp=event.timestamp, equity=equity)


def _append_equity_point(equity_curve: list[EquityPoint], point: EquityPoint) -> None:
    """
    追加（或覆盖）权益曲线点：
    - 同一 ts 重复写入时，覆盖最后一个点，避免重复 ts 造成指标波动。
    """
    if equity_curve and equity_curve[-1].timestamp == point.timestamp:
        equity_curve[-1] = point
    else:
        equity_curve.append(point)


def finalize(state: SimulationState, last_candle: EnrichedCandle, config: TradeConfig) -> SimulationState:
    """数据结束时处理未平仓持仓。

    - 最后一根 K 线没有合成成交：标记 NOT_COMPLETED（保证金不返还，视为仍在场内）；
    - 否则按最后处理的价格强制平仓。
    """
    pos = state.position
    if pos is None:
        return state
    if not last_candle.trades:
        _LOGGER.info("数据结束，%s 持仓未完成", pos.side.value)
        return replace(
            state,
            position=None,
            completed=state.completed + (replace(pos, status=PositionStatus.NOT_COMPLETED),),
        )

    price = state.last_price if state.last_price is not None else last_candle.close
    rsi = state.last_event.rsi if state.last_event is not None else last_candle.rsi
    closed = close_position(pos, price, last_candle.timestamp, rsi)
    _LOGGER.info("数据结束，按最后价格 %.6f 强制平仓 %s，盈亏=%.4f", price, pos.side.value, closed.profit)
    return replace(
        state,
        position=None,
        completed=state.completed + (closed,),
        capital=state.capital + pos.current_size / config.leverage + (closed.profit or 0.0),
    )


def run_simulation(
    candles: Sequence[EnrichedCandle],
    config: TradeConfig | dict,
    *,
    initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    warmup: int = 0,
    progress: Optional[ProgressCallback] = None,
) -> SimulationOutcome:
    """在整段已计算指标的 K 线上运行状态机。

    Parameters
    ----------
    candles:
        `enrich_candles` 的输出，按时间升序。
    config:
        交易配置；dict 会按 TradeConfig 校验。
    initial_capital:
        初始资金。
    warmup:
        跳过前 warmup 根 K 线（指标预热期），这些 K 线不产生事件。
    progress:
        可选进度回调，每根 K 线调用一次。
    """
    if not candles:
        raise InsufficientData("No candles to simulate")
    cfg = build_trade_config(config)
    warmup = max(0, warmup)

    state = SimulationState.initial(initial_capital)
    curve: list[EquityPoint] = []
    active = candles[warmup:]
    total = len(active)
    report(progress, STAGE_SIMULATION, 0, total)
    for i, candle in enumerate(active, start=1):
        for event in candle_events(candle):
            state, point = step(state, event, cfg)
            _append_equity_point(curve, point)
        report(progress, STAGE_SIMULATION, i, total)

    state = finalize(state, candles[-1], cfg)
    _LOGGER.info(
        "模拟结束：%d 笔持仓，最终资金 %.4f，最大回撤 %.2f%%",
        len(state.completed),
        state.capital,
        state.max_drawdown,
    )
    return SimulationOutcome(
        positions=state.completed,
        equity_curve=tuple(curve),
        start_time=candles[0].timestamp,
        end_time=candles[-1].timestamp,
        final_capital=state.capital,
        max_drawdown=state.max_drawdown,
    )
