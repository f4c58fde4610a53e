"""平均 ATR 因子：ATR 列的简单移动平均。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd


@dataclass(frozen=True)
class AverageATRFactor:
    """ATR 的 SMA；窗口未满的位置填 0。"""

    period: int = 14
    atr_col: str = "atr"
    out_col: str | None = None
    name: str = "avg_atr"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("Average ATR period must be > 0")
        object.__setattr__(
            self,
            "params",
            {"period": self.period, "atr_col": self.atr_col, "out_col": self.out_col},
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.atr_col not in df.columns:
            raise ValueError(f"AverageATRFactor requires column: {self.atr_col}")
        out = self.out_col or f"avg_atr_{self.period}"
        sma = df[self.atr_col].astype(float).rolling(self.period, min_periods=self.period).mean()
        df[out] = sma.fillna(0.0)
        return df
