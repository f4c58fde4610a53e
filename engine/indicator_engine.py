"""指标引擎：K 线级 + 合成成交级的 RSI/ATR/平均 ATR。

成交级指标的口径是“如果这笔成交就是当前 K 线的收盘价，指标会是多少”：
- RSI：之前的 K 线不变，当前 K 线收盘价替换为成交价；
- ATR：当前 K 线的 high/low 替换为本 K 线内截至该笔成交的最高/最低价（不看未来）；
- 平均 ATR：直接沿用当前 K 线的值。

增量计算只做“一步”平滑，结果与整段重算一致，复杂度 O(K 线数 + 成交数)。
"""

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

from algo.factors.atr import wilder_atr_state
from algo.factors.registry import apply_factors, build_factors
from algo.factors.rsi import wilder_rsi_state
from shared.config.schema import IndicatorPeriods, TradeConfig
from shared.errors import InsufficientData, InvalidInput
from shared.models.models import Candle, EnrichedCandle, EnrichedTrade, SyntheticTrade
from shared.utils.logging import setup_logger
from shared.utils.progress import STAGE_INDICATORS, ProgressCallback, report

_LOGGER = setup_logger("indicators")


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    rows = [
        {
            "ts": c.timestamp,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
        }
        for c in candles
    ]
    return pd.DataFrame(rows, columns=["ts", "open", "high", "low", "close", "volume"])


def _factor_specs(periods: IndicatorPeriods) -> list[dict]:
    return [
        {"type": "rsi", "period": periods.rsi_period, "out_col": "rsi"},
        {"type": "atr", "period": periods.atr_period, "out_col": "atr"},
        {"type": "avg_atr", "period": periods.avg_atr_period, "atr_col": "atr", "out_col": "avg_atr"},
    ]


def _resolve_periods(cfg: IndicatorPeriods | TradeConfig) -> IndicatorPeriods:
    if isinstance(cfg, TradeConfig):
        return cfg.indicator_periods()
    return cfg


def enrich_candles(
    candles: Sequence[Candle],
    trades: Optional[Sequence[Sequence[SyntheticTrade]]],
    cfg: IndicatorPeriods | TradeConfig,
    *,
    progress: Optional[ProgressCallback] = None,
) -> list[EnrichedCandle]:
    """为整段 K 线（及其合成成交）计算指标。

    Parameters
    ----------
    candles:
        按时间升序的 K 线。
    trades:
        与 candles 一一对应的合成成交；None 表示所有 K 线都没有成交。
    cfg:
        指标周期（或直接传 TradeConfig）。

    Raises
    ------
    InsufficientData
        K 线数量少于 rsi_period + 1。
    InvalidInput
        trades 与 candles 长度不一致。
    """
    periods = _resolve_periods(cfg)
    n = len(candles)
    if n < periods.rsi_period + 1:
        raise InsufficientData(
            f"Not enough data to calculate RSI and ATR with period {periods.rsi_period}: got {n} candles"
        )
    if trades is not None and len(trades) != n:
        raise InvalidInput(f"trades must align with candles: {len(trades)} != {n}")

    df = apply_factors(candles_to_frame(candles), build_factors(_factor_specs(periods)))
    rsi_state = wilder_rsi_state(df["close"], periods.rsi_period)
    atr_state = wilder_atr_state(df, periods.atr_period)

    rsi_col = df["rsi"].to_numpy()
    atr_col = df["atr"].to_numpy()
    avg_atr_col = df["avg_atr"].to_numpy()

    report(progress, STAGE_INDICATORS, 0, n)
    out: list[EnrichedCandle] = []
    for i, candle in enumerate(candles):
        avg_atr = float(avg_atr_col[i])
        enriched_trades: list[EnrichedTrade] = []
        raw = sorted(trades[i], key=lambda t: t.timestamp) if trades is not None else []
        if raw:
            hi = lo = raw[0].price
            for t in raw:
                hi = max(hi, t.price)
                lo = min(lo, t.price)
                enriched_trades.append(
                    EnrichedTrade(
                        price=t.price,
                        timestamp=t.timestamp,
                        volume=t.volume,
                        rsi=rsi_state.value_with_close(i, t.price),
                        atr=atr_state.value_with_bar(i, hi, lo),
                        avg_atr=avg_atr,
                    )
                )
        out.append(
            EnrichedCandle(
                candle=candle,
                trades=tuple(enriched_trades),
                rsi=float(rsi_col[i]),
                atr=float(atr_col[i]),
                avg_atr=avg_atr,
            )
        )
        report(progress, STAGE_INDICATORS, i + 1, n)

    _LOGGER.info(
        "指标计算完成：%d 根 K 线，%d 笔成交（rsi=%d, atr=%d, avg_atr=%d）",
        n,
        sum(len(c.trades) for c in out),
        periods.rsi_period,
        periods.atr_period,
        periods.avg_atr_period,
    )
    return out
