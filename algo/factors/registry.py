"""指标注册表：按名字构建 K 线指标。

指标规格是一个 dict，`type`（或 `name`）选择实现，其余键作为构造参数：

    {"type": "atr", "period": 14, "out_col": "atr"}
    {"name": "avg_atr", "params": {"period": 14, "atr_col": "atr"}}

两种写法可以混用，`params` 里的值优先。实现类不认识的键会被忽略。
"""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Sequence

import pandas as pd

from algo.factors.atr import ATRFactor
from algo.factors.avg_atr import AverageATRFactor
from algo.factors.base import Factor
from algo.factors.rsi import RSIFactor

_REGISTRY: dict[str, type] = {}
_SELECTOR_KEYS = frozenset({"type", "name", "params"})


def register_factor(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_factor_cls(name: str) -> type:
    try:
        return _REGISTRY[name]
    except KeyError:
        known = ", ".join(sorted(_REGISTRY))
        raise ValueError(f"Unknown factor: {name} (known: {known})") from None


def _spec_params(spec: Mapping[str, Any]) -> dict[str, Any]:
    nested = spec.get("params")
    if nested is not None and not isinstance(nested, Mapping):
        raise ValueError("factor params must be a mapping")
    params = {k: v for k, v in spec.items() if k not in _SELECTOR_KEYS}
    params.update(nested or {})
    return params


def _accepted_params(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    # 指标实现都是 dataclass，name/params 由实现自己决定
    if not dataclasses.is_dataclass(cls):
        return dict(params)
    accepted = {f.name for f in dataclasses.fields(cls) if f.init and f.name not in ("name", "params")}
    return {k: v for k, v in params.items() if k in accepted}


def build_factors(specs: Sequence[Mapping[str, Any]]) -> list[Factor]:
    if isinstance(specs, (str, bytes, Mapping)) or not isinstance(specs, Sequence):
        raise ValueError("factor specs must be a list")
    factors: list[Factor] = []
    for spec in specs:
        if not isinstance(spec, Mapping):
            raise ValueError("factor spec must be a mapping")
        kind = str(spec.get("type") or spec.get("name") or "")
        if not kind:
            raise ValueError("factor spec missing type")
        cls = get_factor_cls(kind)
        params = _spec_params(spec)
        try:
            factors.append(cls(**_accepted_params(cls, params)))
        except TypeError as exc:
            raise ValueError(f"Invalid params for factor '{kind}': {params}") from exc
    return factors


def apply_factors(df: pd.DataFrame, factors: Sequence[Factor]) -> pd.DataFrame:
    """按顺序计算指标；后面的指标可以读取前面写入的列。"""
    for factor in factors:
        df = factor.compute(df)
    return df


register_factor("rsi", RSIFactor)
register_factor("atr", ATRFactor)
register_factor("avg_atr", AverageATRFactor)
