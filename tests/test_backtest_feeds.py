"""Tests for the parquet data feed."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from src.rule_backtest.errors import DataError
from src.rule_backtest.feeds.parquet import ParquetFeed
from src.rule_backtest.models import MarketResult


class TestParquetFeedMarkets:
    def test_loads_all_markets_in_order(self, sample_data_dir: Path) -> None:
        markets = ParquetFeed(data_dir=sample_data_dir).markets()
        assert [m.id for m in markets] == [1, 2, 3, 4]
        assert [m.start_time for m in markets] == sorted(m.start_time for m in markets)
        assert isinstance(markets[0].start_time, datetime)

    def test_outcome_mapping(self, sample_data_dir: Path) -> None:
        markets = ParquetFeed(data_dir=sample_data_dir).markets()
        assert [m.outcome for m in markets] == [MarketResult.UP, MarketResult.DOWN, MarketResult.UP, None]
        assert [m.resolved for m in markets] == [True, True, True, False]
        assert markets[0].volume == pytest.approx(1000.0)

    def test_window_filter(self, sample_data_dir: Path) -> None:
        feed = ParquetFeed(data_dir=sample_data_dir, start_time=datetime(2024, 1, 15, 10, 5))
        assert [m.id for m in feed.markets()] == [2, 3, 4]

    def test_cached(self, sample_data_dir: Path) -> None:
        feed = ParquetFeed(data_dir=sample_data_dir)
        assert feed.markets() is feed.markets()

    def test_unknown_outcome_rejected(self, make_dataset) -> None:
        data_dir = make_dataset(["Sideways"], {1: [(0, 0.5)]})
        with pytest.raises(DataError, match="unknown outcome"):
            ParquetFeed(data_dir=data_dir).markets()

    def test_missing_files_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(DataError):
            ParquetFeed(data_dir=tmp_path / "nowhere").markets()


class TestParquetFeedSnapshots:
    def test_all_snapshots(self, sample_data_dir: Path) -> None:
        feed = ParquetFeed(data_dir=sample_data_dir)
        snaps = feed.snapshots()
        assert len(snaps) == 10
        assert feed.snapshot_count() == 10

    def test_filtered_by_market(self, sample_data_dir: Path) -> None:
        feed = ParquetFeed(data_dir=sample_data_dir)
        snaps = feed.snapshots(market_ids=[1])
        assert [s.mid_price_yes for s in snaps] == pytest.approx([0.55, 0.62, 0.70])
        assert [s.recorded_at for s in snaps] == sorted(s.recorded_at for s in snaps)
        assert feed.snapshot_count(market_ids=[1, 2]) == 6

    def test_null_prices_fall_back(self, sample_data_dir: Path) -> None:
        snaps = ParquetFeed(data_dir=sample_data_dir).snapshots(market_ids=[3])
        first = snaps[0]
        assert first.mid_price_yes is None
        assert first.best_bid_yes is None
        assert first.price_yes == 0.5

    def test_bid_ask_loaded(self, sample_data_dir: Path) -> None:
        snap = ParquetFeed(data_dir=sample_data_dir).snapshots(market_ids=[2])[0]
        assert snap.best_bid_yes == pytest.approx(0.44)
        assert snap.best_ask_yes == pytest.approx(0.46)


class TestOutcomes:
    def test_derived_from_resolved_markets(self, sample_data_dir: Path) -> None:
        outcomes = ParquetFeed(data_dir=sample_data_dir).outcomes()
        assert [o.outcome_binary for o in outcomes] == [1, 0, 1]
        assert [o.slug for o in outcomes] == ["btc-updown-5m-1", "btc-updown-5m-2", "btc-updown-5m-3"]
