"""Shared fixtures for rule-backtest tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pandas as pd
import pytest

# ---------------------------------------------------------------------------
# Parquet dataset helpers (used by feed and end-to-end tests)
# ---------------------------------------------------------------------------

BASE = pd.Timestamp("2024-01-15 10:00:00")


def _make_markets_df(outcomes: list[str | None], volume: float = 1000.0) -> pd.DataFrame:
    """One 5-minute market per entry in ``outcomes``, back to back from BASE."""
    rows = []
    for i, outcome in enumerate(outcomes):
        start = BASE + pd.Timedelta(minutes=5 * i)
        rows.append(
            {
                "id": i + 1,
                "slug": f"btc-updown-5m-{i + 1}",
                "start_time": start,
                "end_time": start + pd.Timedelta(minutes=5),
                "outcome": outcome,
                "volume": volume,
            }
        )
    return pd.DataFrame(rows)


def _make_snapshots_df(prices: dict[int, list[tuple[int, float | None]]]) -> pd.DataFrame:
    """Snapshots keyed by market id.

    Args:
        prices: ``{market_id: [(seconds_after_start, mid_price_yes), ...]}``.
            Bid and ask are set one cent either side of the mid.
    """
    rows = []
    for market_id, points in prices.items():
        start = BASE + pd.Timedelta(minutes=5 * (market_id - 1))
        for offset, mid in points:
            rows.append(
                {
                    "market_id": market_id,
                    "recorded_at": start + pd.Timedelta(seconds=offset),
                    "mid_price_yes": mid,
                    "best_bid_yes": None if mid is None else round(mid - 0.01, 4),
                    "best_ask_yes": None if mid is None else round(mid + 0.01, 4),
                }
            )
    return pd.DataFrame(
        rows,
        columns=["market_id", "recorded_at", "mid_price_yes", "best_bid_yes", "best_ask_yes"],
    ).astype({"mid_price_yes": "float64", "best_bid_yes": "float64", "best_ask_yes": "float64"})


@pytest.fixture()
def make_dataset(
    tmp_path: Path,
) -> Callable[[list[str | None], dict[int, list[tuple[int, float | None]]]], Path]:
    """Factory fixture: write a markets + snapshots parquet dataset.

    Returns a callable ``_make(outcomes, prices)`` that returns the data
    directory, laid out as ``<dir>/markets`` and ``<dir>/snapshots``.

    Example::

        def test_something(make_dataset):
            data_dir = make_dataset(["Up", "Down"], {
                1: [(0, 0.55), (60, 0.62)],   # market 1: seconds after start, mid
                2: [(0, 0.40)],
            })
    """
    _counter = [0]

    def _make(
        outcomes: list[str | None],
        prices: dict[int, list[tuple[int, float | None]]],
        volume: float = 1000.0,
    ) -> Path:
        _counter[0] += 1
        data_dir = tmp_path / f"data{_counter[0]}"
        (data_dir / "markets").mkdir(parents=True)
        (data_dir / "snapshots").mkdir()
        _make_markets_df(outcomes, volume).to_parquet(data_dir / "markets" / "markets.parquet")
        _make_snapshots_df(prices).to_parquet(data_dir / "snapshots" / "snapshots.parquet")
        return data_dir

    return _make


@pytest.fixture()
def sample_data_dir(make_dataset: Callable) -> Path:
    """Four markets (Up, Down, Up, unresolved) with a short price path each."""
    return make_dataset(
        ["Up", "Down", "Up", None],
        {
            1: [(0, 0.55), (60, 0.62), (120, 0.70)],
            2: [(0, 0.45), (150, 0.38), (270, 0.30)],
            3: [(30, None), (90, 0.64), (250, 0.66)],
            4: [(0, 0.50)],
        },
    )


@pytest.fixture()
def configs_dir(tmp_path: Path) -> Path:
    d = tmp_path / "configs"
    d.mkdir()
    (d / "momentum.json").write_text('{"rules": []}')
    (d / "fade.json").write_text('{"rules": []}')
    (d / "_draft.json").write_text('{"rules": []}')
    (d / "notes.txt").write_text("not a config")
    return d
