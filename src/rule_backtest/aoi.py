"""AOI: rolling average of the last N binary market outcomes (1 = Up, 0 = Down).

The replay engine evaluates AOI once per market, strictly from outcomes of
markets that resolved earlier. A market's own outcome is appended only
after it has been settled.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import pandas as pd

from src.rule_backtest.models import OutcomeRecord

AOI_WINDOWS = (1, 6, 12, 144, 288)
NEUTRAL_AOI = 0.5


def compute_aoi(outcome_binaries: Sequence[int], n: int) -> float:
    """Mean of the last ``n`` outcomes, or 0.5 until ``n`` outcomes exist."""
    if n <= 0 or len(outcome_binaries) < n:
        return NEUTRAL_AOI
    window = outcome_binaries[-n:]
    return sum(window) / n


def aoi_series(
    outcomes: Iterable[OutcomeRecord],
    windows: Sequence[int] = AOI_WINDOWS,
) -> pd.DataFrame:
    """Rolling AOI for several windows, indexed by market start time.

    Each ``aoi{n}`` column is NaN until ``n`` outcomes are available. Unlike
    :func:`compute_aoi`, row ``i`` includes outcome ``i`` itself; this is the
    analytics view, not the causal feature fed to rules.
    """
    ordered = sorted(outcomes, key=lambda o: o.start_time)
    binaries = pd.Series(
        [o.outcome_binary for o in ordered],
        index=pd.DatetimeIndex([o.start_time for o in ordered], name="start_time"),
        dtype="float64",
    )
    return pd.DataFrame({f"aoi{n}": binaries.rolling(window=n, min_periods=n).mean() for n in windows})
