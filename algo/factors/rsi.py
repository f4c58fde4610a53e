"""RSI 因子（Wilder 平滑）。

与 TradingView 口径一致：
- 前 `period` 个差分的简单均值作为初始 avg_gain/avg_loss；
- 之后 `avg = (avg * (period - 1) + new) / period`；
- avg_loss 为 0 时按 0.001 处理；
- 前 `period` 根 K 线历史不足，统一填 50。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd

from shared.errors import InsufficientData

NEUTRAL_RSI = 50.0
LOSS_FLOOR = 0.001


def rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    rs = avg_gain / (avg_loss if avg_loss != 0 else LOSS_FLOOR)
    return 100.0 - 100.0 / (1.0 + rs)


@dataclass(frozen=True, eq=False)
class RSIState:
    """整段收盘价的 RSI 及中间量，用于按“替换某根收盘价”做增量计算。"""

    period: int
    closes: np.ndarray
    gains: np.ndarray
    losses: np.ndarray
    avg_gain: np.ndarray
    avg_loss: np.ndarray
    values: np.ndarray

    def value_with_close(self, index: int, price: float) -> float:
        """假设第 index 根 K 线收盘价为 price（之前 K 线不变）时的 RSI。"""
        p = self.period
        if index < p:
            return NEUTRAL_RSI
        delta = price - float(self.closes[index - 1])
        gain = delta if delta > 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        if index == p:
            g = (float(self.gains[: p - 1].sum()) + gain) / p
            l = (float(self.losses[: p - 1].sum()) + loss) / p
        else:
            g = (float(self.avg_gain[index - 1]) * (p - 1) + gain) / p
            l = (float(self.avg_loss[index - 1]) * (p - 1) + loss) / p
        return rsi_from_averages(g, l)


def wilder_rsi_state(closes: Sequence[float] | np.ndarray | pd.Series, period: int) -> RSIState:
    """计算整段 RSI 并保留平滑中间量。

    Raises
    ------
    InsufficientData
        收盘价数量少于 period + 1。
    """
    if period <= 0:
        raise ValueError("RSI period must be > 0")
    series = pd.Series(closes, dtype=float).reset_index(drop=True)
    n = len(series)
    if n < period + 1:
        raise InsufficientData(f"Not enough data to calculate RSI with period {period}: got {n} closes")

    delta = series.diff().to_numpy()[1:]
    gains = np.clip(delta, 0.0, None)
    losses = np.clip(-delta, 0.0, None)

    values = np.full(n, NEUTRAL_RSI)
    avg_gain = np.full(n, np.nan)
    avg_loss = np.full(n, np.nan)

    g = float(gains[:period].mean())
    l = float(losses[:period].mean())
    avg_gain[period], avg_loss[period] = g, l
    values[period] = rsi_from_averages(g, l)
    for j in range(period + 1, n):
        g = (g * (period - 1) + float(gains[j - 1])) / period
        l = (l * (period - 1) + float(losses[j - 1])) / period
        avg_gain[j], avg_loss[j] = g, l
        values[j] = rsi_from_averages(g, l)

    return RSIState(
        period=period,
        closes=series.to_numpy(dtype=float, copy=True),
        gains=gains,
        losses=losses,
        avg_gain=avg_gain,
        avg_loss=avg_loss,
        values=values,
    )


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（RSI，Wilder 版本）。"""

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("RSI period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "price_col": self.price_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.price_col not in df.columns:
            raise ValueError(f"RSIFactor requires column: {self.price_col}")
        out = self.out_col or f"rsi_{self.period}"
        state = wilder_rsi_state(df[self.price_col], self.period)
        df[out] = state.values
        return df
