"""行情数据模块（market_data）。

该包聚合：
- 历史 K 线加载（`CandleSource` 协议 + CSV 实现）
- 合成逐笔成交生成
"""

from market_data.loader import CandleSource, CsvCandleSource, load_candles_from_csv, timeframe_to_ms
from market_data.trade_generator import attach_synthetic_trades, generate_synthetic_trades

__all__ = [
    "CandleSource",
    "CsvCandleSource",
    "load_candles_from_csv",
    "timeframe_to_ms",
    "generate_synthetic_trades",
    "attach_synthetic_trades",
]
