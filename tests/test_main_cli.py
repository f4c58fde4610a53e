from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import main as app_main


@dataclass
class _Res:
    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class _FakeEngine:
    def __init__(self, *, cfg_path: str, seed: int | None = None, **_kwargs):
        self.cfg_path = cfg_path
        self.seed = seed

    def run(self):
        return _Res(summary={"cfg_path": self.cfg_path, "seed": self.seed})


def test_main_backtest_delegates_to_engine(monkeypatch):
    monkeypatch.setattr(app_main, "BacktestEngine", _FakeEngine)
    res = app_main.main(["--config", "config/other.yml", "backtest", "--seed", "5"])
    assert res == {"cfg_path": "config/other.yml", "seed": 5}


def test_main_backtest_accepts_config_after_subcommand(monkeypatch):
    monkeypatch.setattr(app_main, "BacktestEngine", _FakeEngine)
    res = app_main.main(["backtest", "--config", "config/other.yml"])
    assert res == {"cfg_path": "config/other.yml", "seed": None}


def test_main_defaults_to_backtest(monkeypatch):
    monkeypatch.setattr(app_main, "BacktestEngine", _FakeEngine)
    res = app_main.main([])
    assert res == {"cfg_path": "config/config.yml", "seed": None}


def test_main_prints_report_or_json(monkeypatch, capsys):
    class _Result:
        def to_dict(self):
            return {"ok": True}

    class _Engine(_FakeEngine):
        def run(self):
            return _Res(summary={}, artifacts={"result": _Result()})

    monkeypatch.setattr(app_main, "BacktestEngine", _Engine)
    monkeypatch.setattr(app_main, "format_report", lambda result: "# report")

    app_main.main(["backtest"])
    assert "# report" in capsys.readouterr().out

    app_main.main(["backtest", "--json"])
    assert '"ok": true' in capsys.readouterr().out


def test_parse_args_fields():
    args = app_main.parse_args(["backtest", "--seed", "3", "--json"])
    assert args.task == "backtest"
    assert args.seed == 3
    assert args.as_json is True
