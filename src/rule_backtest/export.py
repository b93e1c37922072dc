"""Tabular views of a BacktestResult for CSV export and execution logs."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import pandas as pd

from src.rule_backtest.models import BacktestResult, TradeSide

TRADE_COLUMNS = [
    "timestamp",
    "side",
    "market_id",
    "slug",
    "outcome",
    "price",
    "quantity",
    "fee",
    "total",
    "pnl",
    "rule_id",
    "rule_name",
    "time_to_close",
]


def trades_frame(result: BacktestResult) -> pd.DataFrame:
    """One row per ledger entry, enums flattened to their string values."""
    rows = [{**asdict(t), "side": t.side.value, "outcome": t.outcome.value} for t in result.trades]
    return pd.DataFrame(rows, columns=TRADE_COLUMNS)


def equity_frame(result: BacktestResult) -> pd.DataFrame:
    return pd.DataFrame(
        {"equity": [p.equity for p in result.equity_curve]},
        index=pd.Index([p.timestamp for p in result.equity_curve], name="timestamp"),
    )


def write_trades_csv(result: BacktestResult, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    trades_frame(result).to_csv(path, index=False)
    return path


def execution_log(result: BacktestResult) -> list[str]:
    """BUY fills newest first, e.g. ``"[Momentum] btc-updown-5m-1 BUY YES qty:80 @ 0.620"``."""
    return [
        f"[{t.rule_name}] {t.slug} BUY {t.outcome.value} qty:{t.quantity} @ {t.price:.3f}"
        for t in reversed(result.trades)
        if t.side == TradeSide.BUY
    ]
