"""NautilusTrader-style event log for replay runs.

Every line has the form ``"YYYY-MM-DD HH:MM:SS  Component        message"``
using simulation time, not wall-clock time. Lines are always kept in
``lines``; with ``print_live`` they are also echoed through ``write_fn``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from src.rule_backtest.models import MarketRecord, MarketResult, Trade

_NO_TIME = "-" * 19


class BacktestLogger:
    def __init__(self, print_live: bool = False, write_fn: Callable[[str], None] = print):
        self.print_live = print_live
        self.write_fn = write_fn
        self.lines: list[str] = []

    def _emit(self, ts: datetime | None, component: str, message: str) -> None:
        stamp = ts.strftime("%Y-%m-%d %H:%M:%S") if ts is not None else _NO_TIME
        line = f"{stamp}  {component:<15}  {message}"
        self.lines.append(line)
        if self.print_live:
            self.write_fn(line)

    # -- Run lifecycle --

    def start(self, ts: datetime | None, num_rules: int, num_markets: int, balance: float, mode: str) -> None:
        self._emit(
            ts,
            "BacktestEngine",
            f"Backtest start: {num_rules} rules, {num_markets} markets, mode={mode}, balance=${balance:,.2f}",
        )

    def end(self, ts: datetime | None, balance: float, markets: int, elapsed: float) -> None:
        self._emit(
            ts,
            "BacktestEngine",
            f"Backtest complete: {markets} markets, final balance=${balance:,.2f} ({elapsed:.2f}s)",
        )

    # -- Market lifecycle --

    def market_open(self, market: MarketRecord, aoi: float, num_snapshots: int) -> None:
        self._emit(market.start_time, "Market", f"OPEN: {market.slug} aoi={aoi:.3f} snapshots={num_snapshots}")

    def market_resolve(self, market: MarketRecord, result: MarketResult, pnl: float, balance: float) -> None:
        self._emit(
            market.end_time,
            "Market",
            f"RESOLVE {result.value}: {market.slug} pnl=${pnl:+,.4f} balance=${balance:,.2f}",
        )

    # -- Orders and positions --

    def order_filled(self, trade: Trade, balance: float) -> None:
        self._emit(
            trade.timestamp,
            "RuleMatcher",
            f"FILL: [{trade.rule_name}] BUY {trade.outcome.value} {trade.quantity} @ {trade.price:.3f} "
            f"fee=${trade.fee:.4f} ttc={trade.time_to_close or 0.0:.0f}s balance=${balance:,.2f}",
        )

    def fallback_fired(self, trade: Trade) -> None:
        self._emit(trade.timestamp, "RuleMatcher", f"FALLBACK: {trade.rule_name} on {trade.slug}")

    def position_settled(self, trade: Trade) -> None:
        self._emit(
            trade.timestamp,
            "Portfolio",
            f"SETTLE: {trade.slug} {trade.outcome.value} x{trade.quantity} payout=${trade.total:,.2f} "
            f"pnl=${trade.pnl:+,.4f}",
        )
