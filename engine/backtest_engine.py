"""单次回测引擎（BacktestEngine）。

目标是“一眼能看懂”：配置 → K 线 → 合成成交 → 指标 → 持仓模拟 → 统计。
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional, Sequence

import numpy as np

from engine.base_engine import BaseEngine, EngineResult
from engine.indicator_engine import enrich_candles
from engine.simulation import DEFAULT_INITIAL_CAPITAL, run_simulation
from market_data.loader import CandleSource, CsvCandleSource, timeframe_to_ms
from market_data.trade_generator import attach_synthetic_trades
from shared.config.config_loader import MainConfig, load_config
from shared.config.schema import TradeConfig, build_trade_config
from shared.errors import InsufficientData
from shared.models.models import BacktestResult, Candle
from shared.utils.logging import setup_logger
from shared.utils.progress import ProgressCallback, log_progress
from utils.metrics import summarize

DEFAULT_TRADES_PER_CANDLE = 60


def run_backtest(
    candles: Sequence[Candle],
    config: TradeConfig | dict,
    *,
    initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    trades_per_candle: int = DEFAULT_TRADES_PER_CANDLE,
    candle_duration_ms: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    progress: Optional[ProgressCallback] = None,
) -> BacktestResult:
    """完整回测流水线：合成成交 → 指标 → 模拟 → 统计。

    Parameters
    ----------
    candles:
        按时间升序的 K 线。
    config:
        交易配置（dict 会先校验）。
    candle_duration_ms:
        K 线时间跨度；缺省按 config.timeframe 推算。
    seed / rng:
        合成成交的随机源，传入相同 seed 结果可复现。

    Raises
    ------
    InsufficientData
        K 线数量不足以计算指标。
    """
    cfg = build_trade_config(config)
    logger = setup_logger("backtest")
    candles = sorted(candles, key=lambda c: c.timestamp)
    if len(candles) < cfg.rsi_period + 1:
        raise InsufficientData(
            f"Not enough data to calculate RSI and ATR with period {cfg.rsi_period}: got {len(candles)} candles"
        )
    duration = candle_duration_ms if candle_duration_ms is not None else timeframe_to_ms(cfg.timeframe)

    logger.info(
        "开始回测 %s %s：%d 根 K 线，每根 %d 笔合成成交，初始资金 %.2f",
        cfg.symbol,
        cfg.timeframe,
        len(candles),
        trades_per_candle,
        initial_capital,
    )
    trades = attach_synthetic_trades(
        candles, trades_per_candle, duration, rng=rng, seed=seed, progress=progress
    )
    enriched = enrich_candles(candles, trades, cfg, progress=progress)
    outcome = run_simulation(
        enriched,
        cfg,
        initial_capital=initial_capital,
        warmup=cfg.rsi_period,
        progress=progress,
    )
    stats = summarize(
        outcome.positions,
        outcome.equity_curve,
        initial_capital,
        last_timestamp=outcome.end_time,
    )
    logger.info(
        "回测完成：%d 笔交易，胜率 %.2f%%，总盈亏 %.4f，最大回撤 %.2f%%",
        stats.total_trades,
        stats.win_rate,
        stats.total_profit,
        stats.max_drawdown,
    )
    return BacktestResult(
        config=cfg,
        trades=outcome.positions,
        stats=stats,
        equity_curve=outcome.equity_curve,
        start_time=outcome.start_time,
        end_time=outcome.end_time,
    )


def build_backtest_summary(result: BacktestResult) -> dict[str, Any]:
    """回测结果的摘要（统计 + 时间范围），供 CLI/调用方直接使用。"""
    return {
        "symbol": result.config.symbol,
        "timeframe": result.config.timeframe,
        "start_time": result.start_time,
        "end_time": result.end_time,
        "metrics": asdict(result.stats),
    }


class BacktestEngine(BaseEngine):
    """单次回测引擎。

    Notes
    -----
    - 仅保留类接口，不提供模块级入口；
    - CLI 统一由仓库根目录 `main.py` 承担。
    """

    def __init__(
        self,
        *,
        cfg_path: str = "config/config.yml",
        cfg_obj: MainConfig | None = None,
        source: CandleSource | None = None,
        seed: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self._cfg_path = cfg_path
        self._cfg_obj = cfg_obj
        self._source = source
        self._seed = seed
        self._progress = progress

        self.cfg: MainConfig | None = None
        self.result: BacktestResult | None = None

    def run(self) -> EngineResult:
        cfg = self._load_cfg()
        self.cfg = cfg
        bt_cfg = cfg.backtest

        source = self._source or CsvCandleSource(bt_cfg.data_path)
        candles = source.fetch(cfg.symbol, cfg.timeframe, bt_cfg.limit)
        seed = self._seed if self._seed is not None else bt_cfg.seed

        result = run_backtest(
            candles,
            cfg.trade,
            initial_capital=bt_cfg.initial_capital,
            trades_per_candle=bt_cfg.trades_per_candle,
            seed=seed,
            progress=self._progress or log_progress(setup_logger("backtest")),
        )
        self.result = result
        return EngineResult(summary=build_backtest_summary(result), artifacts={"result": result})

    def _load_cfg(self) -> MainConfig:
        return self._cfg_obj or load_config(self._cfg_path)
