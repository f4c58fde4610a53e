"""回测报告生成（Markdown）。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from shared.models.models import BacktestResult, DirectionStats, PositionStatus

MAX_TRADE_ROWS = 20


def _md_kv(d: dict[str, Any]) -> str:
    parts = []
    for k, v in d.items():
        parts.append(f"- **{k}**: {v}")
    return "\n".join(parts)


def _fmt_ts(ts: int | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _fmt_num(val: float | None, digits: int = 2) -> str:
    if val is None:
        return "-"
    return f"{val:.{digits}f}"


def _direction_row(name: str, stats: DirectionStats) -> str:
    return f"| {name} | {stats.total_trades} | {stats.winning_trades} | {stats.win_rate:.2f}% | {stats.total_profit:.4f} |"


def format_report(result: BacktestResult, *, max_trades: int = MAX_TRADE_ROWS) -> str:
    """把回测结果渲染为 Markdown 文本（配置、统计、多空拆分、交易明细）。"""
    cfg = result.config
    stats = result.stats

    lines: list[str] = []
    lines.append(f"# Backtest Report: {cfg.symbol} ({cfg.timeframe})")
    lines.append("")
    lines.append(f"Period: {_fmt_ts(result.start_time)} ~ {_fmt_ts(result.end_time)} UTC")
    lines.append("")

    lines.append("## Configuration")
    lines.append(
        _md_kv(
            {
                "leverage": cfg.leverage,
                "long_entry_rsi / long_exit_rsi": f"{cfg.long_entry_rsi} / {cfg.long_exit_rsi}",
                "short_entry_rsi / short_exit_rsi": f"{cfg.short_entry_rsi} / {cfg.short_exit_rsi}",
                "close_strategy": cfg.close_strategy.value,
                "switch_close_strategy_notional": cfg.switch_close_strategy_notional,
                "fixed_position_size": cfg.fixed_position_size,
                "add_position_size": cfg.add_position_size,
                "break_even_threshold": f"{cfg.break_even_threshold}%",
                "min_profit_percent": f"{cfg.min_profit_percent}%",
                "max_loss_entries": cfg.max_loss_entries or "unlimited",
                "position_add_delay": f"{cfg.position_add_delay} ms",
                "atr_trade_multiplier": cfg.atr_trade_multiplier,
                "periods (rsi/atr/avg_atr)": f"{cfg.rsi_period}/{cfg.atr_period}/{cfg.avg_atr_period}",
            }
        )
    )
    lines.append("")

    lines.append("## Statistics")
    lines.append(
        _md_kv(
            {
                "total_trades": stats.total_trades,
                "winning / losing": f"{stats.winning_trades} / {stats.losing_trades}",
                "win_rate": f"{stats.win_rate:.2f}%",
                "total_profit": f"{stats.total_profit:.4f}",
                "average_profit": f"{stats.average_profit:.4f}",
                "average_loss": f"{stats.average_loss:.4f}",
                "profit_loss_ratio": f"{stats.profit_loss_ratio:.2f}",
                "max_drawdown": f"{stats.max_drawdown:.2f}%",
                "sharpe_ratio": f"{stats.sharpe_ratio:.2f}",
                "max_consecutive_wins / losses": f"{stats.max_consecutive_wins} / {stats.max_consecutive_losses}",
                "average_trade_length": f"{stats.average_trade_length:.2f} h",
                "final_equity": f"{stats.final_equity:.2f}",
                "total_return": f"{stats.total_return_pct:.2f}%",
            }
        )
    )
    lines.append("")

    lines.append("## Direction Breakdown")
    lines.append("| side | trades | wins | win rate | profit |")
    lines.append("|---|---|---|---|---|")
    lines.append(_direction_row("LONG", stats.long_trade_stats))
    lines.append(_direction_row("SHORT", stats.short_trade_stats))
    lines.append("")

    lines.append("## Trades")
    if not result.trades:
        lines.append("No trades.")
    else:
        lines.append("| # | side | status | open | close | entries | avg entry | close px | profit | profit % |")
        lines.append("|---|---|---|---|---|---|---|---|---|---|")
        for i, pos in enumerate(result.trades[:max_trades], start=1):
            lines.append(
                "| {i} | {side} | {status} | {open} | {close} | {n} | {avg} | {px} | {profit} | {pct} |".format(
                    i=i,
                    side=pos.side.value,
                    status=pos.status.value,
                    open=_fmt_ts(pos.open_timestamp),
                    close=_fmt_ts(pos.close_timestamp),
                    n=len(pos.entries),
                    avg=_fmt_num(pos.average_entry_price, 6),
                    px=_fmt_num(pos.close_price, 6),
                    profit=_fmt_num(pos.profit, 4),
                    pct=_fmt_num(pos.profit_percent),
                )
            )
        hidden = len(result.trades) - max_trades
        if hidden > 0:
            lines.append("")
            lines.append(f"... {hidden} more trades omitted")
        pending = sum(1 for p in result.trades if p.status == PositionStatus.NOT_COMPLETED)
        if pending:
            lines.append("")
            lines.append(f"Not completed at end of data: {pending}")
    lines.append("")
    return "\n".join(lines)
