"""ATR 因子（Wilder 平滑）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(prev_close - low))


@dataclass(frozen=True, eq=False)
class ATRState:
    """整段 ATR 及真实波幅序列，用于按“替换某根 K 线”做增量计算。"""

    period: int
    closes: np.ndarray
    true_ranges: np.ndarray
    values: np.ndarray

    def value_with_bar(self, index: int, high: float, low: float) -> float:
        """假设第 index 根 K 线的 high/low 被替换（之前 K 线不变）时的 ATR。"""
        p = self.period
        if index < p or index < 1:
            return 0.0
        tr = true_range(high, low, float(self.closes[index - 1]))
        if index == p:
            return (float(self.true_ranges[1:p].sum()) + tr) / p
        return (float(self.values[index - 1]) * (p - 1) + tr) / p


def wilder_atr_state(df: pd.DataFrame, period: int, *, high_col: str = "high", low_col: str = "low",
                     close_col: str = "close") -> ATRState:
    """计算整段 ATR：首个值为前 period 个真实波幅均值，前 period 根填 0。"""
    if period <= 0:
        raise ValueError("ATR period must be > 0")
    high = df[high_col].astype(float).reset_index(drop=True)
    low = df[low_col].astype(float).reset_index(drop=True)
    close = df[close_col].astype(float).reset_index(drop=True)
    n = len(close)

    prev_close = close.shift(1)
    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()
    # 第 0 根没有前收盘，真实波幅无定义
    tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).to_numpy(dtype=float, copy=True)
    if n:
        tr[0] = np.nan

    values = np.zeros(n)
    if n > period:
        atr = float(np.mean(tr[1 : period + 1]))
        values[period] = atr
        for j in range(period + 1, n):
            atr = (atr * (period - 1) + float(tr[j])) / period
            values[j] = atr

    return ATRState(period=period, closes=close.to_numpy(dtype=float, copy=True), true_ranges=tr, values=values)


@dataclass(frozen=True)
class ATRFactor:
    """平均真实波幅（ATR，Wilder 版本）。"""

    period: int = 14
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    out_col: str | None = None
    name: str = "atr"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("ATR period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "high_col": self.high_col,
                "low_col": self.low_col,
                "close_col": self.close_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        for col in (self.high_col, self.low_col, self.close_col):
            if col not in df.columns:
                raise ValueError(f"ATRFactor requires column: {col}")
        out = self.out_col or f"atr_{self.period}"
        state = wilder_atr_state(
            df, self.period, high_col=self.high_col, low_col=self.low_col, close_col=self.close_col
        )
        df[out] = state.values
        return df
