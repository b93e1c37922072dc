"""Condition evaluation against a single market observation.

Pure predicates: no state, no side effects, never raise. A condition that
names a field or operator outside the closed sets evaluates to False.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.rule_backtest.models import Condition, ConditionField, Operator

EQ_TOLERANCE = 1e-4


@dataclass(frozen=True)
class MarketContext:
    """Features visible to rule conditions at one snapshot."""

    slug: str
    price_yes: float
    price_no: float
    spread: float
    volume: float
    time_to_close: float
    aoi: float


def field_value(field: ConditionField | str, ctx: MarketContext) -> float | None:
    """Project ``ctx`` onto a condition field. None for unknown fields."""
    if field == ConditionField.PRICE_YES:
        return ctx.price_yes
    if field == ConditionField.PRICE_NO:
        return ctx.price_no
    if field == ConditionField.SPREAD:
        return ctx.spread
    if field == ConditionField.VOLUME:
        return ctx.volume
    if field == ConditionField.TIME_TO_CLOSE:
        return ctx.time_to_close
    if field == ConditionField.AOI:
        return ctx.aoi
    return None


def _is_scalar(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_pair(value: object) -> bool:
    return isinstance(value, (tuple, list)) and len(value) == 2 and all(_is_scalar(v) for v in value)


def evaluate_condition(condition: Condition, ctx: MarketContext) -> bool:
    """Return True if ``ctx`` satisfies ``condition``.

    lt/gt are strict, eq matches within ``EQ_TOLERANCE``, between is
    inclusive on both ends.
    """
    actual = field_value(condition.field, ctx)
    if actual is None:
        return False

    target = condition.value
    op = condition.operator
    if op == Operator.LT:
        return _is_scalar(target) and actual < target  # type: ignore[operator]
    if op == Operator.GT:
        return _is_scalar(target) and actual > target  # type: ignore[operator]
    if op == Operator.EQ:
        return _is_scalar(target) and abs(actual - target) < EQ_TOLERANCE  # type: ignore[operator]
    if op == Operator.BETWEEN:
        if not _is_pair(target):
            return False
        low, high = target  # type: ignore[misc]
        return low <= actual <= high
    return False
