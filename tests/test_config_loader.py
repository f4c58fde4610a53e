import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from shared.config.config_loader import MainConfig, load_config, load_config_dict
from shared.config.schema import CloseStrategy, TradeConfig, build_trade_config
from shared.errors import ConfigurationError

BASE_TRADE = {
    "leverage": 10,
    "long_entry_rsi": 30,
    "long_exit_rsi": 70,
    "short_entry_rsi": 70,
    "short_exit_rsi": 30,
    "break_even_threshold": 1.0,
    "fixed_position_size": 100,
}


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yml"
    p.write_text(text, encoding="utf-8")
    return p


def test_example_config_loads():
    cfg_path = Path(__file__).resolve().parents[1] / "config" / "config.yml"
    assert cfg_path.exists(), "示例配置缺失"

    cfg = load_config(str(cfg_path), load_env=False)
    assert isinstance(cfg, MainConfig)
    assert cfg.symbol == cfg.trade.symbol
    assert cfg.trade.close_strategy == CloseStrategy.RSI
    assert cfg.backtest.trades_per_candle == 60


def test_trade_config_defaults():
    cfg = build_trade_config(BASE_TRADE)
    assert cfg.add_position_size == 50
    assert cfg.min_profit_percent == 1.0
    assert cfg.max_loss_entries == 0
    assert cfg.close_strategy == CloseStrategy.RSI
    assert cfg.position_add_delay == 0
    assert cfg.atr_trade_multiplier == 0
    assert cfg.switch_close_strategy_notional is None
    assert (cfg.rsi_period, cfg.atr_period, cfg.avg_atr_period) == (14, 14, 14)


@pytest.mark.parametrize("missing", sorted(BASE_TRADE))
def test_trade_config_requires_core_fields(missing):
    raw = {k: v for k, v in BASE_TRADE.items() if k != missing}
    with pytest.raises(ConfigurationError):
        build_trade_config(raw)


def test_trade_config_accepts_camel_case_aliases():
    cfg = build_trade_config(
        {
            "leverage": 5,
            "longEntryRsi": 25,
            "longExitRsi": 75,
            "shortEntryRsi": 75,
            "shortExitRsi": 25,
            "breakEvenThreshold": 0.5,
            "fixedPositionSize": 200,
            "addPositionSize": 80,
            "closeStrategy": "hybrid",
            "switchCloseStrategyNotional": 500,
        }
    )
    assert cfg.long_entry_rsi == 25
    assert cfg.add_position_size == 80
    assert cfg.close_strategy == CloseStrategy.HYBRID
    assert cfg.switch_close_strategy_notional == 500


@pytest.mark.parametrize(
    "override",
    [
        {"close_strategy": "hybrid"},
        {"close_strategy": "martingale"},
        {"long_exit_rsi": 20},
        {"short_exit_rsi": 80},
        {"leverage": 0},
        {"long_entry_rsi": 120, "long_exit_rsi": 130},
        {"fixed_position_size": -1},
    ],
)
def test_trade_config_rejects_invalid_combinations(override):
    with pytest.raises(ConfigurationError):
        build_trade_config({**BASE_TRADE, **override})


def test_trade_config_is_immutable():
    cfg = build_trade_config(BASE_TRADE)
    with pytest.raises(ValidationError):
        cfg.leverage = 20  # type: ignore[misc]
    assert isinstance(cfg, TradeConfig)


def test_load_config_expands_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TICKSIM_SYMBOL", "ETH-USDT-SWAP")
    path = _write(
        tmp_path,
        """
symbol: ${TICKSIM_SYMBOL}
timeframe: 1h
trade:
  leverage: 3
  long_entry_rsi: 30
  long_exit_rsi: 70
  short_entry_rsi: 70
  short_exit_rsi: 30
  break_even_threshold: 1
  fixed_position_size: 100
backtest:
  initial_capital: 5000
""",
    )
    cfg = load_config(str(path), load_env=False)
    assert cfg.symbol == "ETH-USDT-SWAP"
    assert cfg.trade.symbol == "ETH-USDT-SWAP"
    assert cfg.trade.timeframe == "1h"
    assert cfg.backtest.initial_capital == 5000


def test_load_config_missing_env_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("TICKSIM_MISSING", raising=False)
    path = _write(tmp_path, "symbol: ${TICKSIM_MISSING}\ntrade: {}\n")
    with pytest.raises(ValueError) as exc:
        load_config(str(path), load_env=False)
    assert "Missing environment variable" in str(exc.value)


def test_load_config_reads_dotenv_next_to_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("TICKSIM_DOTENV_SYMBOL", raising=False)
    (tmp_path / ".env").write_text("TICKSIM_DOTENV_SYMBOL=SOL-USDT-SWAP\n", encoding="utf-8")
    trade = "\n".join(f"  {k}: {v}" for k, v in BASE_TRADE.items())
    path = _write(tmp_path, f"symbol: ${{TICKSIM_DOTENV_SYMBOL}}\ntrade:\n{trade}\n")
    try:
        cfg = load_config(str(path))
    finally:
        os.environ.pop("TICKSIM_DOTENV_SYMBOL", None)
    assert cfg.symbol == "SOL-USDT-SWAP"


def test_unknown_key_gets_suggestion():
    with pytest.raises(ConfigurationError) as exc:
        load_config_dict({"symbol": "BTC-USDT-SWAP", "trade": {**BASE_TRADE, "leverge": 3}})
    assert "did you mean 'leverage'" in str(exc.value)


def test_missing_trade_block_raises():
    with pytest.raises(ConfigurationError):
        load_config_dict({"symbol": "BTC-USDT-SWAP"})


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yml"))
