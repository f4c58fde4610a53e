"""历史 K 线加载。

K 线的真实来源（交易所 REST、分页、缓存）在模拟核心之外；这里只定义
`CandleSource` 协议，并提供读取本地 CSV 的实现。
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from shared.errors import InvalidInput
from shared.models.models import Candle
from shared.utils.logging import setup_logger

_LOGGER = setup_logger("market-data")

_UNIT_MINUTES = {"m": 1, "h": 60, "d": 24 * 60, "w": 7 * 24 * 60}
DEFAULT_TIMEFRAME_MINUTES = 15


def timeframe_to_minutes(timeframe: str) -> int:
    """'15m' / '1h' / '1d' / '1w' -> 分钟数；无法识别时回退为 15 分钟。"""
    tf = (timeframe or "").strip()
    unit = tf[-1:].lower()
    try:
        value = int(tf[:-1])
    except ValueError:
        value = 0
    if unit not in _UNIT_MINUTES or value <= 0:
        _LOGGER.warning("无法识别的周期 %r，按 %d 分钟处理", timeframe, DEFAULT_TIMEFRAME_MINUTES)
        return DEFAULT_TIMEFRAME_MINUTES
    return value * _UNIT_MINUTES[unit]


def timeframe_to_ms(timeframe: str) -> int:
    return timeframe_to_minutes(timeframe) * 60 * 1000


def _parse_ts_ms(val: str) -> int:
    val = str(val).strip()
    try:
        if val.lstrip("-").isdigit():
            ts_int = int(val)
            # 秒级时间戳转毫秒
            return ts_int if ts_int > 1e12 else ts_int * 1000
        dt = datetime.fromisoformat(val.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    except ValueError as exc:
        raise InvalidInput(f"Invalid datetime value: {val}") from exc


def _parse_row(row: dict[str, str]) -> Candle:
    try:
        return Candle(
            timestamp=_parse_ts_ms(row.get("ts") or row.get("timestamp") or ""),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0) or 0),
            volume_quote=float(row.get("volume_quote", 0) or 0),
        )
    except (KeyError, ValueError) as exc:
        raise InvalidInput(f"Invalid candle row: {row}") from exc


def load_candles_from_csv(path: str | Path) -> list[Candle]:
    """从 CSV 读取 K 线（列：ts/open/high/low/close/volume[/volume_quote]），按时间升序返回。"""
    with Path(path).open("r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        candles = [_parse_row(row) for row in reader]
    candles.sort(key=lambda c: c.timestamp)
    return candles


class CandleSource(Protocol):
    """K 线来源协议：给定 symbol/timeframe/数量返回按时间升序的 K 线。"""

    def fetch(self, symbol: str, timeframe: str, limit: int | None = None) -> list[Candle]:
        ...


class CsvCandleSource:
    """本地 CSV K 线来源（单文件单品种）。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def fetch(self, symbol: str, timeframe: str, limit: int | None = None) -> list[Candle]:
        if not self.path.exists():
            raise FileNotFoundError(f"Candle file not found: {self.path}")
        candles = load_candles_from_csv(self.path)
        if limit is not None and limit > 0:
            candles = candles[-limit:]
        _LOGGER.info("读取 %s %s K 线 %d 根：%s", symbol, timeframe, len(candles), self.path)
        return candles
