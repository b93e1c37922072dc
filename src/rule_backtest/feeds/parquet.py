"""Parquet data feed for 5-minute up/down markets, queried through DuckDB.

Expected layout::

    <data_dir>/markets/*.parquet    id, slug, start_time, end_time, outcome, volume
    <data_dir>/snapshots/*.parquet  market_id, recorded_at, mid_price_yes,
                                    best_bid_yes, best_ask_yes

``outcome`` is "Up", "Down" or NULL for unresolved markets.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import duckdb

from src.rule_backtest.errors import DataError
from src.rule_backtest.feeds.base import BaseFeed
from src.rule_backtest.models import MarketRecord, MarketResult, PriceSnapshot


def _opt_float(value: object) -> float | None:
    return None if value is None else float(value)  # type: ignore[arg-type]


class ParquetFeed(BaseFeed):
    """Loads markets and snapshots from parquet files.

    ``start_time`` / ``end_time`` restrict the feed to markets starting
    inside that window.
    """

    def __init__(
        self,
        data_dir: Path | str | None = None,
        markets_dir: Path | str | None = None,
        snapshots_dir: Path | str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ):
        base_dir = Path(data_dir) if data_dir is not None else Path(__file__).parent.parent.parent.parent / "data"
        self.markets_dir = Path(markets_dir or base_dir / "markets")
        self.snapshots_dir = Path(snapshots_dir or base_dir / "snapshots")
        self.start_time = start_time
        self.end_time = end_time
        self._markets: list[MarketRecord] | None = None
        self._con: duckdb.DuckDBPyConnection | None = None

    def _get_con(self) -> duckdb.DuckDBPyConnection:
        """Return a shared DuckDB connection."""
        if self._con is None:
            self._con = duckdb.connect()
        return self._con

    def _query(self, sql: str, params: list | None = None) -> list[tuple]:
        try:
            return self._get_con().execute(sql, params or []).fetchall()
        except duckdb.Error as exc:
            raise DataError(f"parquet query failed: {exc}") from exc

    def _window_sql(self) -> tuple[str, list]:
        parts: list[str] = []
        params: list = []
        if self.start_time:
            parts.append("start_time >= ?")
            params.append(self.start_time)
        if self.end_time:
            parts.append("start_time <= ?")
            params.append(self.end_time)
        return (" AND ".join(parts) if parts else "1=1"), params

    def markets(self) -> list[MarketRecord]:
        """Load market metadata, ordered by start time."""
        if self._markets is not None:
            return self._markets

        where, params = self._window_sql()
        rows = self._query(
            f"""
            SELECT id, slug, start_time, end_time, outcome, volume
            FROM '{self.markets_dir}/*.parquet'
            WHERE {where}
            ORDER BY start_time, id
            """,
            params,
        )

        markets: list[MarketRecord] = []
        for market_id, slug, start_time, end_time, outcome, volume in rows:
            if slug is None or start_time is None or end_time is None:
                raise DataError(f"market {market_id!r}: slug, start_time and end_time are required")
            try:
                result = MarketResult(outcome) if outcome is not None else None
            except ValueError:
                raise DataError(f"market '{slug}': unknown outcome {outcome!r}") from None
            markets.append(
                MarketRecord(
                    id=market_id,
                    slug=slug,
                    start_time=start_time,
                    end_time=end_time,
                    outcome=result,
                    volume=_opt_float(volume),
                )
            )

        self._markets = markets
        return markets

    def _market_filter_sql(self, market_ids: list[int | str] | None) -> tuple[str, list]:
        if not market_ids:
            return "1=1", []
        placeholders = ", ".join("?" for _ in market_ids)
        return f"market_id IN ({placeholders})", list(market_ids)

    def snapshot_count(self, market_ids: list[int | str] | None = None) -> int:
        where, params = self._market_filter_sql(market_ids)
        rows = self._query(f"SELECT COUNT(*) FROM '{self.snapshots_dir}/*.parquet' WHERE {where}", params)
        return int(rows[0][0]) if rows else 0

    def snapshots(self, market_ids: list[int | str] | None = None) -> list[PriceSnapshot]:
        """Load price snapshots ordered by market, then recorded time."""
        where, params = self._market_filter_sql(market_ids)
        rows = self._query(
            f"""
            SELECT market_id, recorded_at, mid_price_yes, best_bid_yes, best_ask_yes
            FROM '{self.snapshots_dir}/*.parquet'
            WHERE {where}
            ORDER BY market_id, recorded_at
            """,
            params,
        )

        snapshots: list[PriceSnapshot] = []
        for market_id, recorded_at, mid, bid, ask in rows:
            if market_id is None or recorded_at is None:
                raise DataError("snapshot rows need market_id and recorded_at")
            snapshots.append(
                PriceSnapshot(
                    market_id=market_id,
                    recorded_at=recorded_at,
                    mid_price_yes=_opt_float(mid),
                    best_bid_yes=_opt_float(bid),
                    best_ask_yes=_opt_float(ask),
                )
            )
        return snapshots
