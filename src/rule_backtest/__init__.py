"""Rule-replay backtester for 5-minute up/down prediction markets.

Replays historical price snapshots through user-defined trading rules,
settles positions at each market's resolution, and reports performance
statistics.
"""

from src.rule_backtest.config import load_config, parse_config
from src.rule_backtest.engine import Engine
from src.rule_backtest.errors import BacktestCancelled, BacktestError, ConfigError, DataError
from src.rule_backtest.logger import BacktestLogger
from src.rule_backtest.models import (
    BacktestConfig,
    BacktestResult,
    BacktestStats,
    Condition,
    ConditionField,
    ConditionMode,
    EquityPoint,
    MarketRecord,
    MarketResult,
    Operator,
    Outcome,
    OutcomeRecord,
    PriceSnapshot,
    RuleAction,
    RuleMode,
    Trade,
    TradeSide,
    TradingRule,
)

__all__ = [
    "BacktestCancelled",
    "BacktestConfig",
    "BacktestError",
    "BacktestLogger",
    "BacktestResult",
    "BacktestStats",
    "Condition",
    "ConditionField",
    "ConditionMode",
    "ConfigError",
    "DataError",
    "Engine",
    "EquityPoint",
    "MarketRecord",
    "MarketResult",
    "Operator",
    "Outcome",
    "OutcomeRecord",
    "PriceSnapshot",
    "RuleAction",
    "RuleMode",
    "Trade",
    "TradeSide",
    "TradingRule",
    "load_config",
    "parse_config",
]
