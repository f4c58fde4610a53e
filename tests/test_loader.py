from __future__ import annotations

from pathlib import Path

import pytest

from market_data.loader import CsvCandleSource, load_candles_from_csv, timeframe_to_minutes, timeframe_to_ms
from shared.errors import InvalidInput


def _write_csv(tmp_path: Path, rows: list[str]) -> Path:
    p = tmp_path / "candles.csv"
    p.write_text("\n".join(["ts,open,high,low,close,volume"] + rows) + "\n", encoding="utf-8")
    return p


@pytest.mark.parametrize(
    "tf,minutes",
    [("1m", 1), ("15m", 15), ("1h", 60), ("4h", 240), ("1d", 1440), ("1w", 10080)],
)
def test_timeframe_to_minutes(tf, minutes):
    assert timeframe_to_minutes(tf) == minutes


def test_unknown_timeframe_falls_back_to_15m():
    assert timeframe_to_minutes("weird") == 15
    assert timeframe_to_ms("") == 15 * 60 * 1000


def test_load_candles_sorts_and_parses_timestamps(tmp_path: Path):
    path = _write_csv(
        tmp_path,
        [
            "2024-01-01T00:15:00Z,101,103,100,102,5",
            "1704067200000,100,102,99,101,4",
            "1704068100,102,104,101,103,6",
        ],
    )
    candles = load_candles_from_csv(path)

    assert [c.timestamp for c in candles] == [1704067200000, 1704068100000, 1704068100000]
    assert candles[0].open == 100.0
    assert candles[0].volume_quote == 0.0


def test_load_candles_rejects_bad_rows(tmp_path: Path):
    path = _write_csv(tmp_path, ["not-a-date,1,2,0,1,1"])
    with pytest.raises(InvalidInput):
        load_candles_from_csv(path)


def test_csv_source_applies_limit(tmp_path: Path):
    rows = [f"{1704067200000 + i * 900000},100,101,99,100,1" for i in range(10)]
    source = CsvCandleSource(_write_csv(tmp_path, rows))

    candles = source.fetch("BTC-USDT-SWAP", "15m", limit=3)
    assert len(candles) == 3
    assert candles[-1].timestamp == 1704067200000 + 9 * 900000


def test_csv_source_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        CsvCandleSource(tmp_path / "missing.csv").fetch("BTC-USDT-SWAP", "15m")
