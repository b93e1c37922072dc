"""Parse and validate rule sets and run configuration.

Accepts plain dicts (typically loaded from JSON) with camelCase or
snake_case keys, and both the canonical operator names (lt, gt, eq,
between / ALL, ANY) and the rule-editor spellings (<, >, ==, between /
AND, OR). Anything malformed raises ConfigError naming the offending rule
and field; a run never starts from a half-parsed config.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from src.rule_backtest.errors import ConfigError
from src.rule_backtest.fees import DEFAULT_FEE_RATE
from src.rule_backtest.models import (
    ActionType,
    BacktestConfig,
    Condition,
    ConditionField,
    ConditionMode,
    Operator,
    Outcome,
    RandomDecision,
    RuleAction,
    RuleMode,
    TradingRule,
)

_MISSING = object()

_FIELDS: dict[str, ConditionField] = {f.value: f for f in ConditionField}
_FIELDS.update(
    {
        "price_yes": ConditionField.PRICE_YES,
        "price_no": ConditionField.PRICE_NO,
        "time_to_close": ConditionField.TIME_TO_CLOSE,
    }
)

_OPERATORS: dict[str, Operator] = {
    "lt": Operator.LT,
    "<": Operator.LT,
    "gt": Operator.GT,
    ">": Operator.GT,
    "eq": Operator.EQ,
    "==": Operator.EQ,
    "between": Operator.BETWEEN,
}

_CONDITION_MODES: dict[str, ConditionMode] = {
    "ALL": ConditionMode.ALL,
    "AND": ConditionMode.ALL,
    "ANY": ConditionMode.ANY,
    "OR": ConditionMode.ANY,
}


def _get(data: Mapping[str, Any], *keys: str, default: Any = _MISSING, where: str = "") -> Any:
    """Return the first present key among ``keys``."""
    for key in keys:
        if key in data:
            return data[key]
    if default is _MISSING:
        raise ConfigError(f"{where}: missing required field '{keys[0]}'")
    return default


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: expected a number, got {value!r}")
    return float(value)


def _non_negative(value: Any, where: str) -> float:
    number = _number(value, where)
    if number < 0:
        raise ConfigError(f"{where}: must be >= 0, got {number}")
    return number


def _enum(value: Any, enum_cls: type, where: str) -> Any:
    try:
        return enum_cls(value.upper() if isinstance(value, str) else value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{where}: {value!r} is not one of {allowed}") from None


def parse_condition(data: Mapping[str, Any], where: str = "condition") -> Condition:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where}: expected an object, got {type(data).__name__}")

    raw_field = _get(data, "field", where=where)
    field = _FIELDS.get(raw_field) if isinstance(raw_field, str) else None
    if field is None:
        raise ConfigError(f"{where}: unknown field {raw_field!r}")

    raw_op = _get(data, "operator", "op", where=where)
    operator = _OPERATORS.get(raw_op.lower()) if isinstance(raw_op, str) else None
    if operator is None:
        raise ConfigError(f"{where}: unknown operator {raw_op!r}")

    raw_value = _get(data, "value", where=where)
    value: float | tuple[float, float]
    if operator == Operator.BETWEEN:
        if not isinstance(raw_value, (list, tuple)) or len(raw_value) != 2:
            raise ConfigError(f"{where}: 'between' needs a [low, high] pair, got {raw_value!r}")
        low = _number(raw_value[0], f"{where}.value[0]")
        high = _number(raw_value[1], f"{where}.value[1]")
        if low > high:
            raise ConfigError(f"{where}: 'between' bounds out of order ({low} > {high})")
        value = (low, high)
    else:
        value = _number(raw_value, f"{where}.value")

    return Condition(field=field, operator=operator, value=value)


def parse_rule(data: Mapping[str, Any], where: str = "rule") -> TradingRule:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{where}: expected an object, got {type(data).__name__}")

    rule_id = str(_get(data, "id", where=where))
    where = f"rule '{rule_id}'"
    name = str(_get(data, "name", default=rule_id))

    raw_action = _get(data, "action", where=where)
    if not isinstance(raw_action, Mapping):
        raise ConfigError(f"{where}.action: expected an object")
    action = RuleAction(
        type=_enum(_get(raw_action, "type", default="BUY"), ActionType, f"{where}.action.type"),
        outcome=_enum(_get(raw_action, "outcome", where=f"{where}.action"), Outcome, f"{where}.action.outcome"),
        amount=_non_negative(_get(raw_action, "amount", where=f"{where}.action"), f"{where}.action.amount"),
    )

    random_config = None
    raw_random = _get(data, "randomConfig", "random_config", default=None)
    if raw_random is not None:
        if not isinstance(raw_random, Mapping):
            raise ConfigError(f"{where}.randomConfig: expected an object")
        up_ratio = _number(_get(raw_random, "upRatio", "up_ratio", where=f"{where}.randomConfig"), f"{where}.upRatio")
        if not 0.0 <= up_ratio <= 1.0:
            raise ConfigError(f"{where}.upRatio: must be within [0, 1], got {up_ratio}")
        trigger = _non_negative(
            _get(raw_random, "triggerAtTimeToClose", "trigger_at_time_to_close", where=f"{where}.randomConfig"),
            f"{where}.triggerAtTimeToClose",
        )
        random_config = RandomDecision(up_ratio=up_ratio, trigger_at_time_to_close=trigger)

    raw_conditions = _get(data, "conditions", default=[])
    if not isinstance(raw_conditions, list):
        raise ConfigError(f"{where}.conditions: expected a list")
    conditions = [parse_condition(c, f"{where}.conditions[{i}]") for i, c in enumerate(raw_conditions)]

    raw_mode = _get(data, "conditionMode", "condition_mode", default="ALL")
    condition_mode = _CONDITION_MODES.get(raw_mode.upper()) if isinstance(raw_mode, str) else None
    if condition_mode is None:
        raise ConfigError(f"{where}.conditionMode: {raw_mode!r} is not one of ALL, ANY")

    market_filter = _get(data, "marketFilter", "market_filter", default="*")
    if not isinstance(market_filter, str) or not market_filter:
        raise ConfigError(f"{where}.marketFilter: expected a non-empty string")

    enabled = _get(data, "enabled", default=True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"{where}.enabled: expected true or false")

    return TradingRule(
        id=rule_id,
        name=name,
        action=action,
        conditions=conditions,
        market_filter=market_filter,
        condition_mode=condition_mode,
        cooldown=_non_negative(_get(data, "cooldown", default=0), f"{where}.cooldown"),
        enabled=enabled,
        random_config=random_config,
    )


def parse_config(data: Mapping[str, Any]) -> BacktestConfig:
    """Build a validated BacktestConfig from a plain dict.

    ``fallbackRule`` may be an inline rule object or the id of one of the
    listed rules.
    """
    if not isinstance(data, Mapping):
        raise ConfigError(f"config: expected an object, got {type(data).__name__}")

    raw_rules = _get(data, "rules", default=[])
    if not isinstance(raw_rules, list):
        raise ConfigError("config.rules: expected a list")
    rules = [parse_rule(r, f"rules[{i}]") for i, r in enumerate(raw_rules)]

    fallback_rule = None
    raw_fallback = _get(data, "fallbackRule", "fallback_rule", default=None)
    if isinstance(raw_fallback, str):
        fallback_rule = next((r for r in rules if r.id == raw_fallback), None)
        if fallback_rule is None:
            raise ConfigError(f"config.fallbackRule: no rule with id '{raw_fallback}'")
    elif raw_fallback is not None:
        fallback_rule = parse_rule(raw_fallback, "fallbackRule")

    raw_window = _get(data, "aoiWindow", "aoi_window", default=12)
    if isinstance(raw_window, bool) or not isinstance(raw_window, int):
        raise ConfigError(f"config.aoiWindow: expected an integer, got {raw_window!r}")

    raw_seed = _get(data, "seed", default=None)
    if raw_seed is not None and (isinstance(raw_seed, bool) or not isinstance(raw_seed, int)):
        raise ConfigError(f"config.seed: expected an integer, got {raw_seed!r}")

    config = BacktestConfig(
        rules=rules,
        starting_balance=_number(
            _get(data, "startingBalance", "starting_balance", default=1000.0), "config.startingBalance"
        ),
        aoi_window=raw_window,
        rule_mode=_enum(_get(data, "ruleMode", "rule_mode", default="INDEPENDENT"), RuleMode, "config.ruleMode"),
        fallback_rule=fallback_rule,
        fallback_trigger_ttc=_number(
            _get(data, "fallbackTriggerTTC", "fallback_trigger_ttc", default=60.0), "config.fallbackTriggerTTC"
        ),
        fee_rate=_number(_get(data, "feeRate", "fee_rate", default=DEFAULT_FEE_RATE), "config.feeRate"),
        seed=raw_seed,
    )
    validate_config(config)
    return config


def validate_config(config: BacktestConfig) -> None:
    """Check invariants of a config, including ones built in code."""
    if config.starting_balance < 0:
        raise ConfigError(f"config.startingBalance: must be >= 0, got {config.starting_balance}")
    if config.aoi_window < 1:
        raise ConfigError(f"config.aoiWindow: must be >= 1, got {config.aoi_window}")
    if config.fallback_trigger_ttc < 0:
        raise ConfigError(f"config.fallbackTriggerTTC: must be >= 0, got {config.fallback_trigger_ttc}")
    if config.fee_rate < 0:
        raise ConfigError(f"config.feeRate: must be >= 0, got {config.fee_rate}")
    if not isinstance(config.rule_mode, RuleMode):
        allowed = ", ".join(m.value for m in RuleMode)
        raise ConfigError(f"config.ruleMode: {config.rule_mode!r} is not one of {allowed}")

    seen: set[str] = set()
    for rule in config.rules:
        if rule.id in seen:
            raise ConfigError(f"config.rules: duplicate rule id '{rule.id}'")
        seen.add(rule.id)
        _validate_rule(rule)
    if config.fallback_rule is not None:
        _validate_rule(config.fallback_rule)


def _validate_rule(rule: TradingRule) -> None:
    where = f"rule '{rule.id}'"
    if rule.cooldown < 0:
        raise ConfigError(f"{where}.cooldown: must be >= 0, got {rule.cooldown}")
    if rule.action.amount < 0:
        raise ConfigError(f"{where}.action.amount: must be >= 0, got {rule.action.amount}")
    if rule.random_config is not None and not 0.0 <= rule.random_config.up_ratio <= 1.0:
        raise ConfigError(f"{where}.upRatio: must be within [0, 1], got {rule.random_config.up_ratio}")
    for i, cond in enumerate(rule.conditions):
        if not isinstance(cond.field, ConditionField):
            raise ConfigError(f"{where}.conditions[{i}]: unknown field {cond.field!r}")
        if not isinstance(cond.operator, Operator):
            raise ConfigError(f"{where}.conditions[{i}]: unknown operator {cond.operator!r}")


def load_config(path: Path | str) -> BacktestConfig:
    """Read a JSON rule set from disk."""
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        raise ConfigError(f"{path}: file not found") from None
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON ({exc})") from exc
    return parse_config(data)


def discover_configs(directory: Path | str | None = None) -> list[Path]:
    """List JSON rule sets in ``directory`` (default: ``configs/`` at the repo root)."""
    if directory is None:
        directory = Path(__file__).parent.parent.parent / "configs"
    directory = Path(directory)
    if not directory.exists():
        return []
    return sorted(p for p in directory.glob("*.json") if not p.name.startswith("_"))
