"""配置架构定义（Pydantic Schema）。

目标：
- 交易参数在进入模拟引擎前一次性校验，非法组合（例如出场 RSI 在入场 RSI 错误一侧）
  在构造阶段就失败，而不是跑出一段“退化”的回测；
- 字段统一 snake_case，同时接受 camelCase 别名（兼容前端导出的配置）。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from shared.errors import ConfigurationError


class CloseStrategy(str, Enum):
    RSI = "rsi"
    PROFIT = "profit"
    HYBRID = "hybrid"


class IndicatorPeriods(BaseModel):
    """指标周期。"""
    rsi_period: int = Field(default=14, gt=0)
    atr_period: int = Field(default=14, gt=0)
    avg_atr_period: int = Field(default=14, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class TradeConfig(BaseModel):
    """RSI 加仓策略的交易配置。

    说明：
    - 仓位大小均为计价货币名义价值（USDT）；保证金 = size / leverage；
    - `add_position_size` 缺省为 `fixed_position_size` 的一半；
    - `max_loss_entries == 0` 表示亏损加仓不设上限；
    - `atr_trade_multiplier == 0` 表示关闭波动率闸门。
    """
    symbol: str = "BTC-USDT-SWAP"
    timeframe: str = "15m"

    leverage: float = Field(gt=0)
    long_entry_rsi: float = Field(ge=0, le=100)
    long_exit_rsi: float = Field(ge=0, le=100)
    short_entry_rsi: float = Field(ge=0, le=100)
    short_exit_rsi: float = Field(ge=0, le=100)
    break_even_threshold: float = Field(ge=0)
    min_profit_percent: float = Field(default=1.0, ge=0)
    fixed_position_size: float = Field(gt=0)
    add_position_size: float = Field(gt=0)
    max_loss_entries: int = Field(default=0, ge=0)
    position_add_delay: int = Field(default=0, ge=0)
    close_strategy: CloseStrategy = CloseStrategy.RSI
    switch_close_strategy_notional: Optional[float] = Field(default=None, gt=0)
    atr_trade_multiplier: float = Field(default=0.0, ge=0)

    rsi_period: int = Field(default=14, gt=0)
    atr_period: int = Field(default=14, gt=0)
    avg_atr_period: int = Field(default=14, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_error("trade config", exc)) from exc

    @model_validator(mode="before")
    @classmethod
    def _default_add_size(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        add = data.pop("addPositionSize", None)
        if add is None:
            add = data.get("add_position_size")
        if add is None:
            fixed = data.get("fixed_position_size", data.get("fixedPositionSize"))
            if isinstance(fixed, (int, float)) and not isinstance(fixed, bool):
                add = fixed / 2
        if add is not None:
            data["add_position_size"] = add
        else:
            data.pop("add_position_size", None)
        return data

    @model_validator(mode="after")
    def _check_combinations(self) -> "TradeConfig":
        if self.long_entry_rsi >= self.long_exit_rsi:
            raise ValueError(
                f"long_entry_rsi ({self.long_entry_rsi}) must be below long_exit_rsi ({self.long_exit_rsi})"
            )
        if self.short_exit_rsi >= self.short_entry_rsi:
            raise ValueError(
                f"short_exit_rsi ({self.short_exit_rsi}) must be below short_entry_rsi ({self.short_entry_rsi})"
            )
        if self.close_strategy == CloseStrategy.HYBRID and self.switch_close_strategy_notional is None:
            raise ValueError("close_strategy 'hybrid' requires switch_close_strategy_notional")
        return self

    def indicator_periods(self) -> IndicatorPeriods:
        return IndicatorPeriods(
            rsi_period=self.rsi_period,
            atr_period=self.atr_period,
            avg_atr_period=self.avg_atr_period,
        )


class BacktestConfig(BaseModel):
    """回测运行参数（数据源/初始资金/合成成交数量）。"""
    data_path: str = "dataset/candles.csv"
    initial_capital: float = Field(default=10_000.0, gt=0)
    trades_per_candle: int = Field(default=60, ge=2, le=100_000)
    seed: Optional[int] = None
    limit: Optional[int] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。

    symbol/timeframe 为顶层元数据，会同步进 `trade`，便于结果里原样回显。
    """
    symbol: str
    timeframe: str = "15m"
    trade: TradeConfig
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _propagate_series_identity(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        trade = data.get("trade")
        if isinstance(trade, dict):
            trade = dict(trade)
            if "symbol" in data:
                trade.setdefault("symbol", data["symbol"])
            if "timeframe" in data:
                trade.setdefault("timeframe", data["timeframe"])
            data = {**data, "trade": trade}
        return data


# 兼容命名
AppConfig = MainConfig


def _format_validation_error(ctx: str, exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        msg = err.get("msg", "")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return f"Invalid {ctx}: " + "; ".join(parts)


def build_trade_config(raw: TradeConfig | dict[str, Any]) -> TradeConfig:
    """把 dict 转换为 TradeConfig；任何校验失败都以 ConfigurationError 抛出。"""
    if isinstance(raw, TradeConfig):
        return raw
    if not isinstance(raw, dict):
        raise ConfigurationError("trade config must be a dict")
    return TradeConfig(**raw)


def build_main_config(raw: dict[str, Any]) -> MainConfig:
    try:
        return MainConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_error("config", exc)) from exc
