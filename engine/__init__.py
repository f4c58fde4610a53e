"""执行引擎层（engine）。

- `indicator_engine`：K 线级/成交级指标；
- `simulation`：单持仓状态机；
- `backtest_engine`：串联合成成交 → 指标 → 模拟 → 统计，`BacktestEngine.run() -> EngineResult`。

命令行入口由仓库根目录 `main.py` 统一承载。
"""
