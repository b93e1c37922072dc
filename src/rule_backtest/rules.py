"""Rule matching with slug filters and cooldown gating.

Cooldown semantics depend on the run's RuleMode:

    INDEPENDENT: each rule has its own "last fired" time and is suppressed
                 while ``now - last_fired < rule.cooldown``.
    EXCLUSIVE:   one shared ``blocked_until`` time. Any fired rule pushes it
                 to ``now + rule.cooldown``; while blocked nothing fires.

A fallback firing extends the shared block in either mode. All state is
cleared at every market boundary.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.rule_backtest.conditions import MarketContext, evaluate_condition
from src.rule_backtest.models import ConditionMode, Outcome, RuleMode, TradingRule


@dataclass(frozen=True)
class RuleMatch:
    rule: TradingRule
    outcome: Outcome
    context: MarketContext


def matches_filter(slug: str, pattern: str) -> bool:
    """Glob match supporting ``*`` alone or a single trailing ``*``."""
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return slug.startswith(pattern[:-1])
    return slug == pattern


class CooldownTracker:
    """Per-market cooldown state for one replay session."""

    def __init__(self, mode: RuleMode = RuleMode.INDEPENDENT):
        self.mode = mode
        self.blocked_until: datetime | None = None
        self._last_fired: dict[str, datetime] = {}

    def is_blocked(self, now: datetime) -> bool:
        """True while the shared block covers ``now``."""
        return self.blocked_until is not None and now < self.blocked_until

    def allows(self, rule: TradingRule, now: datetime) -> bool:
        if self.mode == RuleMode.EXCLUSIVE:
            return not self.is_blocked(now)
        last = self._last_fired.get(rule.id)
        if last is None:
            return True
        return (now - last).total_seconds() >= rule.cooldown

    def record(self, rule: TradingRule, now: datetime) -> None:
        """Register that ``rule`` fired at ``now``."""
        if self.mode == RuleMode.EXCLUSIVE:
            self.block(now, rule.cooldown)
        else:
            self._last_fired[rule.id] = now

    def block(self, now: datetime, seconds: float) -> None:
        """Extend the shared block to at least ``now + seconds``."""
        until = now + timedelta(seconds=seconds)
        if self.blocked_until is None or until > self.blocked_until:
            self.blocked_until = until

    def last_fired(self, rule_id: str) -> datetime | None:
        return self._last_fired.get(rule_id)

    def reset(self) -> None:
        self.blocked_until = None
        self._last_fired.clear()


def conditions_met(rule: TradingRule, ctx: MarketContext) -> bool:
    if rule.condition_mode == ConditionMode.ANY:
        return any(evaluate_condition(c, ctx) for c in rule.conditions)
    return all(evaluate_condition(c, ctx) for c in rule.conditions)


def resolve_outcome(rule: TradingRule, rng: random.Random) -> Outcome:
    """Pick the side to buy: a weighted draw for random rules, else the static side."""
    if rule.random_config is not None:
        return Outcome.YES if rng.random() < rule.random_config.up_ratio else Outcome.NO
    return rule.action.outcome


def evaluate_rules(
    rules: list[TradingRule],
    ctx: MarketContext,
    cooldowns: CooldownTracker,
    now: datetime,
    rng: random.Random,
) -> list[RuleMatch]:
    """Return every rule that fires on ``ctx``, in rule order.

    Random-decision rules fire once ``ctx.time_to_close`` reaches their
    trigger and ignore their conditions. The random draw happens only for
    rules that passed the filter and cooldown gates.
    """
    matches: list[RuleMatch] = []
    for rule in rules:
        if not rule.enabled:
            continue
        if not matches_filter(ctx.slug, rule.market_filter):
            continue
        if not cooldowns.allows(rule, now):
            continue

        if rule.random_config is not None:
            if ctx.time_to_close <= rule.random_config.trigger_at_time_to_close:
                matches.append(RuleMatch(rule, resolve_outcome(rule, rng), ctx))
        elif conditions_met(rule, ctx):
            matches.append(RuleMatch(rule, rule.action.outcome, ctx))
    return matches
