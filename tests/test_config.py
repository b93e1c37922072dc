"""Tests for rule-set parsing, validation and discovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.rule_backtest.config import discover_configs, load_config, parse_config, parse_rule, validate_config
from src.rule_backtest.errors import ConfigError
from src.rule_backtest.models import (
    BacktestConfig,
    ConditionField,
    ConditionMode,
    Operator,
    Outcome,
    RuleAction,
    RuleMode,
    TradingRule,
)


def _rule_dict(**overrides) -> dict:
    data = {
        "id": "momentum",
        "name": "Momentum",
        "conditions": [{"field": "priceYes", "operator": "gt", "value": 0.6}],
        "action": {"type": "BUY", "outcome": "YES", "amount": 50},
        "cooldown": 0,
    }
    data.update(overrides)
    return data


class TestParseRule:
    def test_canonical_rule(self) -> None:
        rule = parse_rule(_rule_dict())
        assert rule.id == "momentum"
        assert rule.action.outcome == Outcome.YES
        assert rule.action.amount == 50.0
        assert rule.conditions[0].field == ConditionField.PRICE_YES
        assert rule.conditions[0].operator == Operator.GT
        assert rule.market_filter == "*"
        assert rule.condition_mode == ConditionMode.ALL
        assert rule.enabled is True

    def test_editor_spellings(self) -> None:
        rule = parse_rule(
            _rule_dict(
                conditionMode="OR",
                conditions=[
                    {"field": "timeToClose", "operator": "<", "value": 60},
                    {"field": "aoi", "operator": "==", "value": 0.5},
                ],
            )
        )
        assert rule.condition_mode == ConditionMode.ANY
        assert [c.operator for c in rule.conditions] == [Operator.LT, Operator.EQ]

    def test_snake_case_keys(self) -> None:
        rule = parse_rule(
            _rule_dict(market_filter="btc-*", condition_mode="ANY", random_config={"up_ratio": 0.7, "trigger_at_time_to_close": 30})
        )
        assert rule.market_filter == "btc-*"
        assert rule.random_config is not None
        assert rule.random_config.up_ratio == pytest.approx(0.7)
        assert rule.random_config.trigger_at_time_to_close == 30.0

    def test_between_pair(self) -> None:
        rule = parse_rule(_rule_dict(conditions=[{"field": "spread", "operator": "between", "value": [0.0, 0.05]}]))
        assert rule.conditions[0].value == (0.0, 0.05)

    def test_name_defaults_to_id(self) -> None:
        data = _rule_dict()
        del data["name"]
        assert parse_rule(data).name == "momentum"

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"conditions": [{"field": "openInterest", "operator": "gt", "value": 1}]}, "unknown field"),
            ({"conditions": [{"field": "priceYes", "operator": ">=", "value": 1}]}, "unknown operator"),
            ({"conditions": [{"field": "priceYes", "operator": "between", "value": 0.5}]}, "pair"),
            ({"conditions": [{"field": "priceYes", "operator": "between", "value": [0.8, 0.2]}]}, "out of order"),
            ({"action": {"outcome": "MAYBE", "amount": 5}}, "not one of"),
            ({"action": {"outcome": "YES", "amount": -5}}, ">= 0"),
            ({"cooldown": -1}, ">= 0"),
            ({"enabled": "yes"}, "true or false"),
            ({"marketFilter": ""}, "non-empty"),
            ({"randomConfig": {"upRatio": 1.5, "triggerAtTimeToClose": 30}}, "upRatio"),
        ],
    )
    def test_malformed_rules_rejected(self, overrides: dict, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            parse_rule(_rule_dict(**overrides))

    def test_missing_action_rejected(self) -> None:
        data = _rule_dict()
        del data["action"]
        with pytest.raises(ConfigError, match="missing required field 'action'"):
            parse_rule(data)


class TestParseConfig:
    def test_defaults(self) -> None:
        config = parse_config({"rules": [_rule_dict()]})
        assert config.starting_balance == 1000.0
        assert config.aoi_window == 12
        assert config.rule_mode == RuleMode.INDEPENDENT
        assert config.fallback_rule is None
        assert config.fallback_trigger_ttc == 60.0
        assert config.seed is None

    def test_fallback_by_id(self) -> None:
        config = parse_config(
            {
                "rules": [_rule_dict(), _rule_dict(id="coin", randomConfig={"upRatio": 0.5, "triggerAtTimeToClose": 30})],
                "fallbackRule": "coin",
                "fallbackTriggerTTC": 30,
                "ruleMode": "exclusive",
                "seed": 7,
            }
        )
        assert config.fallback_rule is config.rules[1]
        assert config.fallback_trigger_ttc == 30.0
        assert config.rule_mode == RuleMode.EXCLUSIVE
        assert config.seed == 7

    def test_inline_fallback(self) -> None:
        config = parse_config({"rules": [], "fallbackRule": _rule_dict(id="fb", action={"outcome": "NO", "amount": 10})})
        assert config.fallback_rule is not None
        assert config.fallback_rule.action.outcome == Outcome.NO

    def test_unknown_fallback_id(self) -> None:
        with pytest.raises(ConfigError, match="no rule with id 'ghost'"):
            parse_config({"rules": [_rule_dict()], "fallbackRule": "ghost"})

    def test_duplicate_ids(self) -> None:
        with pytest.raises(ConfigError, match="duplicate rule id"):
            parse_config({"rules": [_rule_dict(), _rule_dict()]})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"startingBalance": -1},
            {"aoiWindow": 0},
            {"aoiWindow": 1.5},
            {"fallbackTriggerTTC": -5},
            {"feeRate": -0.1},
            {"ruleMode": "ROUND_ROBIN"},
            {"seed": "abc"},
        ],
    )
    def test_bad_run_settings(self, overrides: dict) -> None:
        with pytest.raises(ConfigError):
            parse_config({"rules": [_rule_dict()], **overrides})

    def test_rejects_non_object(self) -> None:
        with pytest.raises(ConfigError):
            parse_config([])  # type: ignore[arg-type]


class TestValidateConfig:
    def test_code_built_config_with_bad_field(self) -> None:
        rule = TradingRule(id="r", name="r", action=RuleAction(amount=10.0))
        rule.conditions.append(parse_rule(_rule_dict()).conditions[0])
        validate_config(BacktestConfig(rules=[rule]))

        rule.conditions[0].field = "bogus"  # type: ignore[assignment]
        with pytest.raises(ConfigError, match="unknown field"):
            validate_config(BacktestConfig(rules=[rule]))

    def test_code_built_config_with_string_rule_mode(self) -> None:
        with pytest.raises(ConfigError, match="ruleMode"):
            validate_config(BacktestConfig(rule_mode="EXCLUSIVE"))  # type: ignore[arg-type]


class TestLoadConfig:
    def test_round_trip_from_disk(self, tmp_path: Path) -> None:
        path = tmp_path / "momentum.json"
        path.write_text(json.dumps({"rules": [_rule_dict()], "startingBalance": 250}))
        config = load_config(path)
        assert config.starting_balance == 250.0
        assert len(config.rules) == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="file not found"):
            load_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{rules: ")
        with pytest.raises(ConfigError, match="invalid JSON"):
            load_config(path)


class TestDiscoverConfigs:
    def test_lists_json_sorted_skipping_underscored(self, configs_dir: Path) -> None:
        assert [p.name for p in discover_configs(configs_dir)] == ["fade.json", "momentum.json"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert discover_configs(tmp_path / "absent") == []

    def test_bundled_configs_parse(self) -> None:
        paths = discover_configs()
        assert paths, "expected example rule sets in configs/"
        for path in paths:
            load_config(path)
