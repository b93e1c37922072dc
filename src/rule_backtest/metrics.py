"""Summary statistics over a finished replay.

Computed once from the full ledger and equity curve; nothing here is
updated incrementally during the run.
"""

from __future__ import annotations

import math

import numpy as np

from src.rule_backtest.models import BacktestStats, EquityPoint, Trade, TradeSide

# 288 five-minute markets per day, every day of the year.
PERIODS_PER_YEAR = 288 * 365


def max_drawdown(equity: np.ndarray, starting_balance: float) -> tuple[float, float]:
    """Largest peak-to-trough drop, as (absolute, fraction of that peak).

    The running peak starts at ``starting_balance``.
    """
    if equity.size == 0:
        return 0.0, 0.0
    peaks = np.maximum.accumulate(np.concatenate(([starting_balance], equity)))[1:]
    drawdowns = peaks - equity
    worst = int(np.argmax(drawdowns))
    dd = float(drawdowns[worst])
    if dd <= 0.0:
        return 0.0, 0.0
    peak = float(peaks[worst])
    return dd, (dd / peak if peak > 0 else 0.0)


def sharpe_ratio(equity: np.ndarray, periods_per_year: int = PERIODS_PER_YEAR) -> float:
    """Annualized Sharpe of step returns (population stddev, zero risk-free rate).

    Steps whose previous equity is zero are skipped.
    """
    if equity.size < 2:
        return 0.0
    prev, curr = equity[:-1], equity[1:]
    valid = prev != 0
    if not valid.any():
        return 0.0
    returns = (curr[valid] - prev[valid]) / prev[valid]
    std = float(np.std(returns))
    if std == 0.0:
        return 0.0
    return float(np.mean(returns)) / std * math.sqrt(periods_per_year)


def compute_stats(
    trades: list[Trade],
    starting_balance: float,
    equity_curve: list[EquityPoint],
) -> BacktestStats:
    """Aggregate win/loss, P&L, drawdown and Sharpe figures.

    Win/loss figures use SETTLE rows only: a settlement with pnl > 0 is a
    win, anything else a loss. ``avg_loss`` is reported as a positive
    magnitude. ``profit_factor`` is +inf with wins and no losses, and 0
    with neither.
    """
    settlements = [t for t in trades if t.side == TradeSide.SETTLE]
    win_pnls = [t.pnl for t in settlements if t.pnl > 0]
    loss_pnls = [t.pnl for t in settlements if t.pnl <= 0]

    total_pnl = sum(t.pnl for t in settlements)
    gross_win = sum(win_pnls)
    gross_loss = abs(sum(loss_pnls))

    if gross_loss > 0:
        profit_factor = gross_win / gross_loss
    elif gross_win > 0:
        profit_factor = float("inf")
    else:
        profit_factor = 0.0

    equity = np.array([p.equity for p in equity_curve], dtype=float)
    dd, dd_pct = max_drawdown(equity, starting_balance)

    return BacktestStats(
        total_trades=len(settlements),
        wins=len(win_pnls),
        losses=len(loss_pnls),
        win_rate=len(win_pnls) / len(settlements) if settlements else 0.0,
        total_pnl=total_pnl,
        total_pnl_pct=total_pnl / starting_balance if starting_balance > 0 else 0.0,
        max_drawdown=dd,
        max_drawdown_pct=dd_pct,
        sharpe_ratio=sharpe_ratio(equity),
        profit_factor=profit_factor,
        avg_win=gross_win / len(win_pnls) if win_pnls else 0.0,
        avg_loss=gross_loss / len(loss_pnls) if loss_pnls else 0.0,
        final_balance=float(equity[-1]) if equity.size else starting_balance,
        total_fees=sum(t.fee for t in trades if t.side == TradeSide.BUY),
    )
