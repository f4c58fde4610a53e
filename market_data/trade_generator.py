"""合成逐笔成交生成器。

没有真实 tick 数据时，用一根 K 线推演出一串“看起来合理”的成交：
- 第一笔价格 = open，最后一笔价格 = close；
- 所有价格落在 [low, high]；至少 4 笔成交时路径一定触达 high 与 low；
- 时间戳按泊松到达过程生成并落在 K 线时间跨度内。

随机源由调用方注入（`numpy.random.Generator` 或 seed），便于测试复现。
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from shared.errors import InvalidInput
from shared.models.models import Candle, SyntheticTrade
from shared.utils.logging import setup_logger
from shared.utils.progress import STAGE_TRADES, ProgressCallback, report

_LOGGER = setup_logger("trade-gen")

MIN_TRADES = 2
MAX_TRADES = 100_000
NOISE_RATIO = 0.1
VOLUME_JITTER = 0.5


def _resolve_rng(rng: Optional[np.random.Generator], seed: Optional[int]) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def _validate(candle: Candle, trade_count: int, candle_duration_ms: int) -> None:
    if candle.low > candle.high:
        raise InvalidInput(f"Invalid candle at {candle.timestamp}: low > high")
    for name, px in (("open", candle.open), ("close", candle.close)):
        if px < candle.low or px > candle.high:
            raise InvalidInput(f"Invalid candle at {candle.timestamp}: {name} out of [low, high]")
    if trade_count < MIN_TRADES or trade_count > MAX_TRADES:
        raise InvalidInput(f"Invalid trade count {trade_count}: must be between {MIN_TRADES} and {MAX_TRADES}")
    if candle.volume < 0 or candle.volume_quote < 0:
        raise InvalidInput(f"Invalid candle at {candle.timestamp}: volume must be non-negative")
    if candle_duration_ms <= 0:
        raise InvalidInput("candle_duration_ms must be > 0")


def _poisson_timestamps(start: int, count: int, duration_ms: int, rng: np.random.Generator) -> list[int]:
    """泊松到达时间戳；越界后用均匀分布补齐，排序后首尾钉在 K 线起止。"""
    lam = count / duration_ms
    offsets: list[float] = []
    t = 0.0
    for _ in range(count):
        t += -math.log(1.0 - rng.random()) / lam
        if t >= duration_ms:
            break
        offsets.append(t)
    while len(offsets) < count:
        offsets.append(float(rng.random()) * duration_ms)
    offsets.sort()
    offsets[0] = 0.0
    offsets[-1] = float(duration_ms)
    return [start + int(math.floor(o)) for o in offsets]


def _price_path(candle: Candle, count: int, rng: np.random.Generator) -> list[float]:
    o, h, l, c = candle.open, candle.high, candle.low, candle.close
    noise_amp = (h - l) * NOISE_RATIO
    is_bullish = c > o
    is_bearish = c < o
    mid = count // 2

    high_idx = int(math.floor(count * 0.25 + rng.random() * count * 0.25))
    low_idx = int(math.floor(count * 0.5 + rng.random() * count * 0.25))

    prices: list[float] = []
    p = o
    for i in range(count):
        noise = (rng.random() - 0.5) * noise_amp
        if i == high_idx:
            p = h
        elif i == low_idx:
            p = l
        else:
            if i < mid and (is_bullish or is_bearish):
                target = h if is_bullish else l
                p += (target - p) / (mid - i + 1)
            else:
                p += (c - p) / (count - i + 1)
            p = max(l, min(h, p + noise))

        if i == 0:
            p = o
        elif i == count - 1:
            p = c
        prices.append(p)

    _ensure_extremes(prices, h, l)
    return prices


def _ensure_extremes(prices: list[float], high: float, low: float) -> None:
    """把缺失的 high/low 补写到中间位置，首尾的 open/close 不动。

    至少 4 笔成交时中间有两个以上位置，high 与 low 一定都能写入；
    2 或 3 笔时只有在 open/close 本身就是极值的情况下才能同时覆盖。
    """
    n = len(prices)
    for extreme in (high, low):
        if extreme in prices:
            continue
        other = low if extreme == high else high
        # 不能覆盖另一个极值的唯一出现位置
        other_seen = prices.count(other)
        for i in range(1, n - 1):
            if prices[i] != other or other_seen > 1:
                prices[i] = extreme
                break
    if high not in prices or low not in prices:
        _LOGGER.debug("%d 笔成交无法同时覆盖 open/close/high/low", n)


def generate_synthetic_trades(
    candle: Candle,
    trade_count: int,
    candle_duration_ms: int = 15 * 60 * 1000,
    *,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> list[SyntheticTrade]:
    """把一根 K 线展开为按时间升序排列的合成成交。

    Parameters
    ----------
    candle:
        源 K 线。
    trade_count:
        成交笔数，范围 [2, 100000]。
    candle_duration_ms:
        K 线时间跨度（毫秒）。
    rng / seed:
        随机源；都不传时每次调用使用新的系统熵。

    Raises
    ------
    InvalidInput
        K 线不满足 low <= open/close <= high、笔数越界或成交量为负。
    """
    _validate(candle, trade_count, candle_duration_ms)
    gen = _resolve_rng(rng, seed)

    timestamps = _poisson_timestamps(candle.timestamp, trade_count, candle_duration_ms, gen)
    prices = _price_path(candle, trade_count, gen)

    avg_volume = candle.volume / trade_count
    jitter = avg_volume * VOLUME_JITTER
    trades: list[SyntheticTrade] = []
    for px, ts in zip(prices, timestamps):
        vol = max(0.0, avg_volume + (float(gen.random()) - 0.5) * jitter)
        trades.append(SyntheticTrade(price=px, timestamp=ts, volume=vol))
    return trades


def attach_synthetic_trades(
    candles: Sequence[Candle] | Iterable[Candle],
    trade_count: int,
    candle_duration_ms: int,
    *,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> list[list[SyntheticTrade]]:
    """为整段 K 线生成合成成交，返回与 candles 一一对应的列表。"""
    candles = list(candles)
    gen = _resolve_rng(rng, seed)
    total = len(candles)
    _LOGGER.info("开始生成合成成交：%d 根 K 线 x %d 笔", total, trade_count)
    report(progress, STAGE_TRADES, 0, total)

    out: list[list[SyntheticTrade]] = []
    for i, candle in enumerate(candles, start=1):
        out.append(generate_synthetic_trades(candle, trade_count, candle_duration_ms, rng=gen))
        report(progress, STAGE_TRADES, i, total)
    return out
