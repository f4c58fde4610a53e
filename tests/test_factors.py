from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from algo.factors.atr import ATRFactor, wilder_atr_state
from algo.factors.avg_atr import AverageATRFactor
from algo.factors.registry import apply_factors, build_factors
from algo.factors.rsi import NEUTRAL_RSI, RSIFactor, wilder_rsi_state
from shared.errors import InsufficientData


def _df(prices: list[float]) -> pd.DataFrame:
    ts0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    rows = []
    for i, p in enumerate(prices):
        rows.append(
            {
                "ts": ts0 + timedelta(hours=i),
                "open": p,
                "high": p + 1,
                "low": p - 1,
                "close": p,
                "volume": 1.0,
            }
        )
    return pd.DataFrame(rows)


def test_rsi_factor_outputs_in_0_100():
    df = _df([1, 2, 3, 2, 1, 2, 3, 4, 3, 2, 3, 4, 5, 6, 7])
    out = RSIFactor(period=5, price_col="close", out_col="rsi5").compute(df)
    s = out["rsi5"]
    assert not s.isna().any()
    assert (s >= 0).all()
    assert (s <= 100).all()


def test_rsi_on_rising_series_has_neutral_warmup_and_approaches_100():
    closes = [float(x) for x in range(1, 31)]
    state = wilder_rsi_state(closes, 14)

    assert list(state.values[:14]) == [NEUTRAL_RSI] * 14
    assert all(v > 99.0 for v in state.values[14:])
    assert all(v <= 100.0 for v in state.values)


def test_rsi_on_falling_series_approaches_0():
    closes = [float(x) for x in range(30, 0, -1)]
    state = wilder_rsi_state(closes, 14)
    assert all(0.0 <= v < 1.0 for v in state.values[14:])


def test_rsi_requires_period_plus_one_closes():
    with pytest.raises(InsufficientData):
        wilder_rsi_state([1.0] * 14, 14)


def test_rsi_with_replaced_close_matches_full_series():
    rng = np.random.default_rng(0)
    closes = list(100 + np.cumsum(rng.normal(0, 1, 40)))
    state = wilder_rsi_state(closes, 14)
    for i in range(40):
        assert state.value_with_close(i, closes[i]) == pytest.approx(state.values[i])

    # 把最后一根收盘价换掉，应等于整段重算
    replaced = closes[:-1] + [closes[-1] + 3.0]
    expected = wilder_rsi_state(replaced, 14).values[-1]
    assert state.value_with_close(39, closes[-1] + 3.0) == pytest.approx(expected)


def test_atr_factor_zero_during_warmup_then_positive():
    df = _df([10, 11, 12, 11, 9, 10, 11])
    out = ATRFactor(period=3, out_col="atr3").compute(df)
    assert "atr3" in out.columns
    assert list(out["atr3"].iloc[:3]) == [0.0, 0.0, 0.0]
    assert (out["atr3"].iloc[3:] > 0).all()


def test_atr_of_constant_range_equals_range():
    df = _df([100.0] * 20)
    state = wilder_atr_state(df, 14)
    assert state.values[14:] == pytest.approx([2.0] * 6)


def test_atr_with_replaced_bar_matches_full_series():
    df = _df([10, 11, 12, 11, 9, 10, 11, 13, 12, 10])
    state = wilder_atr_state(df, 3)
    for i in range(len(df)):
        assert state.value_with_bar(i, df["high"].iloc[i], df["low"].iloc[i]) == pytest.approx(state.values[i])


def test_average_atr_is_sma_with_zero_warmup():
    df = pd.DataFrame({"atr": [0.0, 0.0, 1.0, 2.0, 3.0, 4.0]})
    out = AverageATRFactor(period=2, atr_col="atr", out_col="avg").compute(df)
    assert list(out["avg"]) == [0.0, 0.0, 0.5, 1.5, 2.5, 3.5]


def test_registry_builds_factors_from_flat_and_nested_specs():
    factors = build_factors(
        [
            {"type": "rsi", "period": 5, "out_col": "r"},
            {"name": "atr", "params": {"period": 3, "out_col": "a"}},
            {"type": "avg_atr", "period": 2, "atr_col": "a", "out_col": "aa", "unused": 1},
        ]
    )
    out = apply_factors(_df([10, 11, 12, 11, 9, 10, 11]), factors)
    assert {"r", "a", "aa"} <= set(out.columns)


def test_registry_rejects_unknown_factor():
    with pytest.raises(ValueError):
        build_factors([{"type": "macd"}])


def test_registry_rejects_non_list_specs_and_bad_params():
    with pytest.raises(ValueError):
        build_factors({"factors": [{"type": "rsi"}]})
    with pytest.raises(ValueError):
        build_factors([{"type": "rsi", "params": [14]}])
    with pytest.raises(ValueError):
        build_factors([{"period": 14}])


def test_registry_nested_params_take_precedence():
    (factor,) = build_factors([{"type": "rsi", "period": 3, "params": {"period": 5}}])
    assert factor.period == 5


def test_atr_state_owns_its_buffers():
    df = _df([10, 11, 12, 11, 9, 10, 11])
    state = wilder_atr_state(df, 3)
    assert np.isnan(state.true_ranges[0])
    assert state.true_ranges.flags.writeable
    assert state.closes.flags.writeable
    # 输入帧不被改写
    assert not df.isna().any().any()


def test_atr_accepts_frame_backed_by_read_only_arrays():
    prices = np.array([10, 11, 12, 11, 9, 10, 11, 13], dtype=float)
    cols = {"high": prices + 1, "low": prices - 1, "close": prices}
    for arr in cols.values():
        arr.setflags(write=False)
    df = pd.DataFrame(cols, copy=False)

    state = wilder_atr_state(df, 3)
    out = ATRFactor(period=3, out_col="atr3").compute(df)
    assert list(out["atr3"]) == pytest.approx(list(state.values))
    assert state.values[3] == pytest.approx(2.0)
