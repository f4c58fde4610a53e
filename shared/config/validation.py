"""配置原始 dict 校验（在 pydantic 之前）。

目标：
- 启动阶段尽早失败；
- 对拼写错误给出“did you mean”提示，而不是只抛一个 extra_forbidden。
"""

from __future__ import annotations

import difflib
from typing import Any, Iterable

from pydantic.alias_generators import to_camel

from shared.config.schema import BacktestConfig, TradeConfig
from shared.errors import ConfigurationError

TOP_LEVEL_KEYS = {"symbol", "timeframe", "trade", "backtest"}


def _suggest_key(key: str, allowed: Iterable[str]) -> str | None:
    matches = difflib.get_close_matches(key, list(allowed), n=1, cutoff=0.75)
    return matches[0] if matches else None


def _ensure_allowed_keys(block: dict[str, Any], *, allowed: set[str], ctx: str) -> None:
    unknown = [k for k in block.keys() if k not in allowed]
    if not unknown:
        return
    parts = []
    for k in sorted(unknown):
        suggestion = _suggest_key(k, allowed)
        if suggestion:
            parts.append(f"{k} (did you mean '{suggestion}'?)")
        else:
            parts.append(k)
    raise ConfigurationError(f"{ctx} contains unknown keys: {', '.join(parts)}")


def _require(block: dict[str, Any], key: str, *, ctx: str) -> Any:
    if key not in block:
        raise ConfigurationError(f"Missing required config key: {ctx}.{key}")
    return block[key]


def _expect_dict(val: Any, *, ctx: str) -> dict[str, Any]:
    if not isinstance(val, dict):
        raise ConfigurationError(f"{ctx} must be a dict")
    return val


def _expect_str(val: Any, *, ctx: str) -> str:
    if not isinstance(val, str) or not val.strip():
        raise ConfigurationError(f"{ctx} must be a non-empty string")
    return val


def _model_keys(model: type) -> set[str]:
    keys: set[str] = set()
    for name, info in model.model_fields.items():
        keys.add(name)
        if model.model_config.get("alias_generator") is not None:
            keys.add(to_camel(name))
        if info.alias:
            keys.add(info.alias)
    return keys


def validate_raw_config(cfg: dict[str, Any]) -> None:
    """校验 raw config dict（来自 YAML + env 展开后）。"""
    if not isinstance(cfg, dict):
        raise ConfigurationError("Config root must be a dict")

    _ensure_allowed_keys(cfg, allowed=TOP_LEVEL_KEYS, ctx="config")
    _expect_str(_require(cfg, "symbol", ctx="config"), ctx="config.symbol")
    if "timeframe" in cfg:
        _expect_str(cfg["timeframe"], ctx="config.timeframe")

    trade = _expect_dict(_require(cfg, "trade", ctx="config"), ctx="config.trade")
    _ensure_allowed_keys(trade, allowed=_model_keys(TradeConfig), ctx="config.trade")
    if "close_strategy" in trade or "closeStrategy" in trade:
        _expect_str(trade.get("close_strategy", trade.get("closeStrategy")), ctx="config.trade.close_strategy")

    backtest = cfg.get("backtest")
    if backtest is not None:
        backtest = _expect_dict(backtest, ctx="config.backtest")
        _ensure_allowed_keys(backtest, allowed=_model_keys(BacktestConfig), ctx="config.backtest")
