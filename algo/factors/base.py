"""K 线指标因子协议。

约定：
- 输入 df 至少包含 ts/open/high/low/close，按时间升序；
- `compute` 只新增（或覆盖）自己的输出列，长度与 df 一致；
- 回看窗口不足的位置用固定占位值填充（RSI=50，ATR/平均 ATR=0），不留 NaN，
  这样下游逐笔模拟不用再处理缺失值。
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

import pandas as pd


class Factor(Protocol):
    """因子协议：`compute(df) -> df`，`params` 用于日志与结果回显。"""

    name: str
    params: Mapping[str, Any]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        ...
