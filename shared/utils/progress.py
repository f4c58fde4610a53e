"""进度回调协议。

模拟核心本身不做异步/取消；需要进度的调用方传入 `(stage, completed, total)` 回调，
核心只在固定检查点（每根 K 线）调用它，不影响计算结果。
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

ProgressCallback = Callable[[str, int, int], None]

STAGE_TRADES = "trades"
STAGE_INDICATORS = "indicators"
STAGE_SIMULATION = "simulation"


def report(progress: Optional[ProgressCallback], stage: str, completed: int, total: int) -> None:
    if progress is not None:
        progress(stage, completed, total)


def log_progress(logger: logging.Logger, every: int = 500) -> ProgressCallback:
    """构造一个按固定步长写日志的进度回调。"""
    if every <= 0:
        raise ValueError("every must be > 0")

    def _callback(stage: str, completed: int, total: int) -> None:
        if completed == total or completed % every == 0:
            pct = completed / total * 100 if total else 100.0
            logger.info("[%s] %d/%d (%.1f%%)", stage, completed, total, pct)

    return _callback
