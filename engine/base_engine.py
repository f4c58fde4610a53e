"""执行引擎基类（模板模式）。

目标：
- 把“加载配置/数据”与“成交合成/指标/模拟/统计”解耦；
- 调用方只依赖 `run() -> EngineResult`，数据来源可替换。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EngineResult:
    """引擎运行结果（统一出口）。"""

    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class BaseEngine(ABC):
    """引擎抽象基类。"""

    @abstractmethod
    def run(self) -> EngineResult:
        raise NotImplementedError
