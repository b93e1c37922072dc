"""Abstract interface for historical market data feeds."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.rule_backtest.models import MarketRecord, OutcomeRecord, PriceSnapshot


class BaseFeed(ABC):
    """Read-only source of markets, price snapshots and outcomes.

    Implementations normalize their storage format into the record types
    the engine consumes. The engine never writes back through a feed.
    """

    @abstractmethod
    def markets(self) -> list[MarketRecord]:
        """Return market metadata ordered by start time."""
        ...

    @abstractmethod
    def snapshots(self, market_ids: list[int | str] | None = None) -> list[PriceSnapshot]:
        """Return price snapshots ordered by market, then recorded time.

        Args:
            market_ids: Restrict to these markets. None means all.
        """
        ...

    @abstractmethod
    def snapshot_count(self, market_ids: list[int | str] | None = None) -> int:
        """Return the number of snapshots matching the filter."""
        ...

    def outcomes(self) -> list[OutcomeRecord]:
        """Binary outcomes of the resolved markets, ordered by start time."""
        return [
            OutcomeRecord(
                slug=m.slug,
                start_time=m.start_time,
                outcome=m.outcome,
                outcome_binary=m.outcome.binary,
            )
            for m in self.markets()
            if m.outcome is not None
        ]
