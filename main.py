"""ticksim 统一命令行入口。

该模块提供单一入口 `main.py`，通过子命令驱动不同任务：

- `backtest`：单次回测。读取配置与历史 K 线，合成逐笔成交后运行 RSI 加仓策略模拟。
- `test`：运行单元测试。
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from typing import Any

from engine.backtest_engine import BacktestEngine
from research.report import format_report


@dataclass
class CliArgs:
    """定义命令行参数结构。

    config: 配置文件路径
    task: 要运行的任务类型 (backtest/test)
    """
    config: str
    task: str
    seed: int | None = None   # 覆盖配置中的随机种子
    as_json: bool = False     # 输出完整 JSON 结果而不是 Markdown 报告


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="ticksim", description="ticksim 合成成交回测")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `python main.py --config ... backtest`（全局）与 `python main.py backtest --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_backtest = sub.add_parser("backtest", help="单次回测")
    _add_config_arg(p_backtest, default=argparse.SUPPRESS)
    p_backtest.add_argument("--seed", type=int, default=None, help="合成成交随机种子")
    p_backtest.add_argument("--json", action="store_true", help="输出 JSON 结果")

    p_test = sub.add_parser("test", help="运行 pytest")
    _add_config_arg(p_test, default=argparse.SUPPRESS)

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """解析命令行参数。

    Parameters
    ----------
    argv:
        传入的参数列表；为 None 时读取 sys.argv。
    """
    parser = build_parser()
    ns = parser.parse_args(argv)
    task = ns.task or "backtest"
    config = getattr(ns, "config", "config/config.yml")
    return CliArgs(
        config=str(config),
        task=task,
        seed=getattr(ns, "seed", None),
        as_json=bool(getattr(ns, "json", False)),
    )


def main(argv: list[str] | None = None) -> Any:
    """程序主入口。

    Returns
    -------
    Any
        对应子命令的返回结果（backtest 为 summary dict）。
    """
    args = parse_args(argv)

    if args.task == "backtest":
        engine = BacktestEngine(cfg_path=args.config, seed=args.seed)
        res = engine.run()
        result = res.artifacts["result"] if res.artifacts else None
        if result is not None:
            if args.as_json:
                print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
            else:
                print(format_report(result))
        return res.summary

    if args.task == "test":
        import pytest

        return pytest.main(["-q"])

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    main()
