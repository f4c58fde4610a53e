"""模拟核心的异常类型。

全部继承 `ValueError`，与配置/因子层已有的 `raise ValueError(...)` 保持兼容：
调用方既可以精确捕获，也可以统一按 ValueError 处理。
"""

from __future__ import annotations


class TickSimError(ValueError):
    """所有模拟核心异常的基类。"""


class InvalidInput(TickSimError):
    """K 线不满足 OHLC 约束、成交笔数越界、成交量为负等输入错误。"""


class InsufficientData(TickSimError):
    """K 线数量不足以覆盖指标回看窗口。"""


class ConfigurationError(TickSimError):
    """交易配置非法（未知平仓策略、hybrid 缺少切换名义价值等）。"""
