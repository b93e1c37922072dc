"""Replay loop for rule-driven backtests over 5-minute up/down markets.

Markets are replayed one at a time in start-time order. Within a market,
snapshots are replayed in recorded-time order; rules fire BUY orders that
are held to resolution and settled when the market ends. Cooldowns never
span markets.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Generator, Iterable, Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from src.rule_backtest.aoi import compute_aoi
from src.rule_backtest.conditions import MarketContext
from src.rule_backtest.config import validate_config
from src.rule_backtest.errors import BacktestCancelled, DataError
from src.rule_backtest.logger import BacktestLogger
from src.rule_backtest.metrics import compute_stats
from src.rule_backtest.models import (
    ActionType,
    BacktestConfig,
    BacktestResult,
    DoneEvent,
    ErrorEvent,
    MarketRecord,
    OutcomeRecord,
    PriceSnapshot,
    ProgressEvent,
    RuleMode,
)
from src.rule_backtest.rules import evaluate_rules, resolve_outcome
from src.rule_backtest.session import ReplaySession

if TYPE_CHECKING:
    from src.rule_backtest.feeds.base import BaseFeed

FALLBACK_PREFIX = "[FB] "


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


class Engine:
    """Replays resolved markets through a BacktestConfig.

    Deterministic for a given config, data and seed. Random-decision rules
    draw from ``rng`` (or ``random.Random(config.seed)``), never from the
    global generator.

    Usage::

        engine = Engine(config, markets, snapshots, outcomes)
        result = engine.run()

        for event in Engine(config, markets, snapshots, outcomes).events():
            ...  # ProgressEvent..., then DoneEvent or ErrorEvent
    """

    def __init__(
        self,
        config: BacktestConfig,
        markets: Iterable[MarketRecord],
        snapshots: Iterable[PriceSnapshot],
        outcomes: Iterable[OutcomeRecord] | None = None,
        rng: random.Random | None = None,
        progress_every: int = 20,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        cancel: CancelToken | None = None,
        logger: BacktestLogger | None = None,
        verbose: bool = False,
    ):
        self.config = config
        self.markets = list(markets)
        self.snapshots = list(snapshots)
        self.outcomes = list(outcomes) if outcomes is not None else None
        self.rng = rng
        self.progress_every = max(1, progress_every)
        self.on_progress = on_progress
        self.cancel = cancel
        self.logger = logger
        self.verbose = verbose

    @classmethod
    def from_feed(cls, feed: BaseFeed, config: BacktestConfig, **kwargs) -> Engine:
        """Build an engine from a data feed's markets, snapshots and outcomes."""
        markets = feed.markets()
        return cls(
            config,
            markets,
            feed.snapshots(market_ids=[m.id for m in markets]) if markets else [],
            feed.outcomes(),
            **kwargs,
        )

    def run(self) -> BacktestResult:
        """Execute the full replay and return results.

        Raises BacktestError subclasses for malformed input or cancellation.
        """
        replay = self._replay()
        while True:
            try:
                event = next(replay)
            except StopIteration as stop:
                return stop.value
            if self.on_progress is not None:
                self.on_progress(event)

    def events(self) -> Iterator[ProgressEvent | DoneEvent | ErrorEvent]:
        """Progress stream terminated by exactly one DoneEvent or ErrorEvent."""
        try:
            result = yield from self._replay()
        except Exception as exc:  # noqa: BLE001
            yield ErrorEvent(message=str(exc) or type(exc).__name__)
            return
        yield DoneEvent(result=result)

    # -- Replay --

    def _replay(self) -> Generator[ProgressEvent, None, BacktestResult]:
        wall_start = time.monotonic()
        config = self.config
        validate_config(config)
        self._validate_markets()

        logger = self.logger if self.logger is not None else BacktestLogger(print_live=self.verbose)
        rng = self.rng if self.rng is not None else random.Random(config.seed)

        markets = sorted((m for m in self.markets if m.resolved), key=lambda m: m.start_time)
        snaps_by_market = self._group_snapshots()
        outcomes_by_slug = self._index_outcomes(markets)

        session = ReplaySession.start(config.starting_balance, config.rule_mode, rng, config.fee_rate)
        first_time = markets[0].start_time if markets else None
        session.mark(first_time)
        logger.start(first_time, len(config.rules), len(markets), config.starting_balance, config.rule_mode.value)

        total = len(markets)
        for index, market in enumerate(markets):
            if self.cancel is not None and self.cancel.is_set():
                raise BacktestCancelled(f"cancelled after {index} of {total} markets")

            self._replay_market(session, market, snaps_by_market.get(market.id, []), logger)

            outcome = outcomes_by_slug.get(market.slug)
            if outcome is not None:
                session.outcome_history.append(outcome.outcome_binary)
            session.mark(market.end_time)
            session.cooldowns.reset()

            if index % self.progress_every == 0:
                yield ProgressEvent(percent=round(index / total * 100), processed=index + 1, total=total)

        stats = compute_stats(session.trades, config.starting_balance, session.equity_curve)
        last_time = markets[-1].end_time if markets else None
        logger.end(last_time, session.balance, total, time.monotonic() - wall_start)

        return BacktestResult(
            config=config,
            stats=stats,
            trades=session.trades,
            equity_curve=session.equity_curve,
            markets_processed=total,
            event_log=logger.lines,
        )

    def _replay_market(
        self,
        session: ReplaySession,
        market: MarketRecord,
        snapshots: list[PriceSnapshot],
        logger: BacktestLogger,
    ) -> None:
        """Replay one market's snapshots, run the fallback, then settle."""
        config = self.config
        aoi = compute_aoi(session.outcome_history, config.aoi_window)
        logger.market_open(market, aoi, len(snapshots))

        fired_any = False
        fallback_snap: PriceSnapshot | None = None

        for snap in snapshots:
            if not snap.usable:
                continue
            now = snap.recorded_at
            price_yes = snap.price_yes
            ttc = self._time_to_close(market, now)

            if config.fallback_rule is not None and fallback_snap is None and ttc <= config.fallback_trigger_ttc:
                fallback_snap = snap

            if session.cooldowns.is_blocked(now):
                continue

            ctx = self._context(market, snap, ttc, aoi)
            for match in evaluate_rules(config.rules, ctx, session.cooldowns, now, session.rng):
                if match.rule.action.type != ActionType.BUY:
                    continue
                # In EXCLUSIVE mode an earlier match at this same instant may have set the block
                if config.rule_mode == RuleMode.EXCLUSIVE and session.cooldowns.is_blocked(now):
                    break
                trade = session.buy(match.rule, match.outcome, market, price_yes, now, ttc)
                if trade is None:
                    continue
                fired_any = True
                session.cooldowns.record(match.rule, now)
                logger.order_filled(trade, session.balance)

        fallback = config.fallback_rule
        if (
            fallback is not None
            and not fired_any
            and fallback_snap is not None
            and not session.cooldowns.is_blocked(fallback_snap.recorded_at)
        ):
            now = fallback_snap.recorded_at
            outcome = resolve_outcome(fallback, session.rng)
            trade = session.buy(
                fallback,
                outcome,
                market,
                fallback_snap.price_yes,
                now,
                self._time_to_close(market, now),
                rule_name=FALLBACK_PREFIX + fallback.name,
            )
            # The fallback's cooldown blocks every rule, in both modes
            session.cooldowns.block(now, fallback.cooldown)
            if trade is not None:
                logger.fallback_fired(trade)
                logger.order_filled(trade, session.balance)

        assert market.outcome is not None
        settled = session.settle(market)
        for trade in settled:
            logger.position_settled(trade)
        logger.market_resolve(market, market.outcome, sum(t.pnl for t in settled), session.balance)

    # -- Helpers --

    @staticmethod
    def _time_to_close(market: MarketRecord, now: datetime) -> float:
        return max(0.0, (market.end_time - now).total_seconds())

    @staticmethod
    def _context(market: MarketRecord, snap: PriceSnapshot, ttc: float, aoi: float) -> MarketContext:
        price_yes = snap.price_yes
        ask = snap.best_ask_yes if snap.best_ask_yes is not None else price_yes
        bid = snap.best_bid_yes if snap.best_bid_yes is not None else price_yes
        return MarketContext(
            slug=market.slug,
            price_yes=price_yes,
            price_no=1.0 - price_yes,
            spread=max(0.0, ask - bid),
            volume=market.volume if market.volume is not None else 0.0,
            time_to_close=ttc,
            aoi=aoi,
        )

    def _validate_markets(self) -> None:
        for market in self.markets:
            if not isinstance(market.start_time, datetime) or not isinstance(market.end_time, datetime):
                raise DataError(f"market '{market.slug}': start_time and end_time must be datetimes")
        for snap in self.snapshots:
            if not isinstance(snap.recorded_at, datetime):
                raise DataError(f"snapshot for market {snap.market_id!r}: recorded_at must be a datetime")

    def _group_snapshots(self) -> dict[int | str, list[PriceSnapshot]]:
        """Bucket snapshots per market, each bucket in recorded-time order."""
        grouped: dict[int | str, list[PriceSnapshot]] = {}
        for snap in self.snapshots:
            grouped.setdefault(snap.market_id, []).append(snap)
        for snaps in grouped.values():
            snaps.sort(key=lambda s: s.recorded_at)
        return grouped

    def _index_outcomes(self, markets: list[MarketRecord]) -> dict[str, OutcomeRecord]:
        """First outcome per slug by start time.

        Without explicit outcome records, each resolved market stands in for
        its own.
        """
        if self.outcomes is None:
            source = [
                OutcomeRecord(m.slug, m.start_time, m.outcome, m.outcome.binary)
                for m in markets
                if m.outcome is not None
            ]
        else:
            source = sorted(self.outcomes, key=lambda o: o.start_time)
        index: dict[str, OutcomeRecord] = {}
        for outcome in source:
            index.setdefault(outcome.slug, outcome)
        return index
