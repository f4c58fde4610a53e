from __future__ import annotations

import math

import pytest

from engine.indicator_engine import enrich_candles
from market_data.trade_generator import attach_synthetic_trades
from shared.config.schema import IndicatorPeriods
from shared.errors import InsufficientData, InvalidInput
from shared.models.models import Candle

FIFTEEN_MIN = 15 * 60 * 1000


def _candles(n: int) -> list[Candle]:
    out = []
    px = 100.0
    for i in range(n):
        o = px
        c = o * (1 + 0.01 * math.sin(i / 3.0))
        out.append(
            Candle(
                timestamp=1_700_000_000_000 + i * FIFTEEN_MIN,
                open=o,
                high=max(o, c) + 0.5,
                low=min(o, c) - 0.5,
                close=c,
                volume=100.0,
            )
        )
        px = c
    return out


def test_requires_rsi_period_plus_one_candles():
    with pytest.raises(InsufficientData):
        enrich_candles(_candles(14), None, IndicatorPeriods())


def test_misaligned_trades_are_rejected():
    candles = _candles(20)
    with pytest.raises(InvalidInput):
        enrich_candles(candles, [[]] * 19, IndicatorPeriods())


def test_candle_level_indicators_have_warmup_and_bounds():
    out = enrich_candles(_candles(40), None, IndicatorPeriods())

    assert len(out) == 40
    assert all(c.trades == () for c in out)
    assert [c.rsi for c in out[:14]] == [50.0] * 14
    assert [c.atr for c in out[:14]] == [0.0] * 14
    assert all(0.0 <= c.rsi <= 100.0 for c in out)
    assert all(c.atr >= 0.0 for c in out)
    assert all(c.avg_atr >= 0.0 for c in out)
    assert out[-1].avg_atr > 0.0


def test_trade_level_indicators_are_bounded_and_converge_to_candle_values():
    candles = _candles(30)
    trades = attach_synthetic_trades(candles, 40, FIFTEEN_MIN, seed=11)
    out = enrich_candles(candles, trades, IndicatorPeriods())

    for enriched in out:
        assert len(enriched.trades) == 40
        for t in enriched.trades:
            assert 0.0 <= t.rsi <= 100.0
            assert t.atr >= 0.0
            assert t.avg_atr == enriched.avg_atr
        # 最后一笔成交价 = 收盘价，且此时已触达 high/low
        last = enriched.trades[-1]
        assert last.rsi == pytest.approx(enriched.rsi)
        assert last.atr == pytest.approx(enriched.atr)


def test_enrichment_is_idempotent():
    candles = _candles(30)
    trades = attach_synthetic_trades(candles, 20, FIFTEEN_MIN, seed=5)
    a = enrich_candles(candles, trades, IndicatorPeriods())
    b = enrich_candles(candles, trades, IndicatorPeriods())
    assert a == b


def test_accepts_trade_config_periods():
    from shared.config.schema import TradeConfig

    cfg = TradeConfig(
        leverage=1,
        long_entry_rsi=30,
        long_exit_rsi=70,
        short_entry_rsi=70,
        short_exit_rsi=30,
        break_even_threshold=1,
        fixed_position_size=100,
        rsi_period=5,
        atr_period=5,
        avg_atr_period=3,
    )
    out = enrich_candles(_candles(10), None, cfg)
    assert [c.rsi for c in out[:5]] == [50.0] * 5
    assert out[5].rsi != 50.0
