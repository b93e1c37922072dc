"""Exceptions that abort a backtest run.

Expected runtime non-events (unfunded signals, unusable prices, markets
without snapshots) are never raised; they are skipped by the engine.
"""

from __future__ import annotations


class BacktestError(Exception):
    """Base class for failures that abort a whole run."""


class ConfigError(BacktestError):
    """The rule set or run configuration is malformed."""


class DataError(BacktestError):
    """Market, snapshot or outcome input is malformed."""


class BacktestCancelled(BacktestError):
    """The host asked the run to stop at a market boundary."""
