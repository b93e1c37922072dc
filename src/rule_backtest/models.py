"""Data types for the rule-replay backtester.

All prices are YES-side probabilities in [0.0, 1.0]. Times are datetimes;
durations (cooldowns, time-to-close) are seconds as float.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from src.rule_backtest.fees import DEFAULT_FEE_RATE


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"


class ActionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeSide(str, Enum):
    BUY = "BUY"
    SETTLE = "SETTLE"


class MarketResult(str, Enum):
    UP = "Up"
    DOWN = "Down"

    @property
    def winning_outcome(self) -> Outcome:
        """Up resolves the YES token, Down resolves the NO token."""
        return Outcome.YES if self is MarketResult.UP else Outcome.NO

    @property
    def binary(self) -> int:
        return 1 if self is MarketResult.UP else 0


class ConditionField(str, Enum):
    PRICE_YES = "priceYes"
    PRICE_NO = "priceNo"
    SPREAD = "spread"
    VOLUME = "volume"
    TIME_TO_CLOSE = "timeToClose"
    AOI = "aoi"


class Operator(str, Enum):
    LT = "lt"
    GT = "gt"
    EQ = "eq"
    BETWEEN = "between"


class ConditionMode(str, Enum):
    ALL = "ALL"
    ANY = "ANY"


class RuleMode(str, Enum):
    INDEPENDENT = "INDEPENDENT"
    EXCLUSIVE = "EXCLUSIVE"


# -- Rules --


@dataclass
class Condition:
    """One predicate over a market observation.

    ``value`` is a scalar for lt/gt/eq and a ``(low, high)`` pair for between.
    """

    field: ConditionField
    operator: Operator
    value: float | tuple[float, float]


@dataclass
class RuleAction:
    type: ActionType = ActionType.BUY
    outcome: Outcome = Outcome.YES
    amount: float = 0.0


@dataclass
class RandomDecision:
    """Coin-flip payload: pick YES with probability ``up_ratio`` once TTC is low enough."""

    up_ratio: float
    trigger_at_time_to_close: float


@dataclass
class TradingRule:
    id: str
    name: str
    action: RuleAction
    conditions: list[Condition] = field(default_factory=list)
    market_filter: str = "*"
    condition_mode: ConditionMode = ConditionMode.ALL
    cooldown: float = 0.0
    enabled: bool = True
    random_config: RandomDecision | None = None

    @property
    def is_random(self) -> bool:
        return self.random_config is not None


# -- Market data --


@dataclass
class MarketRecord:
    """A single 5-minute up/down market."""

    id: int | str
    slug: str
    start_time: datetime
    end_time: datetime
    outcome: MarketResult | None = None
    volume: float | None = None

    @property
    def resolved(self) -> bool:
        return self.outcome is not None


@dataclass
class PriceSnapshot:
    """Order-book observation for one market at one instant."""

    market_id: int | str
    recorded_at: datetime
    mid_price_yes: float | None = None
    best_bid_yes: float | None = None
    best_ask_yes: float | None = None

    @property
    def price_yes(self) -> float:
        """Mid price, falling back to the best bid, then to an even 0.5."""
        if self.mid_price_yes is not None:
            return self.mid_price_yes
        if self.best_bid_yes is not None:
            return self.best_bid_yes
        return 0.5

    @property
    def usable(self) -> bool:
        return 0.0 < self.price_yes < 1.0


@dataclass
class OutcomeRecord:
    slug: str
    start_time: datetime
    outcome: MarketResult
    outcome_binary: int


# -- Run configuration --


@dataclass
class BacktestConfig:
    rules: list[TradingRule] = field(default_factory=list)
    starting_balance: float = 1000.0
    aoi_window: int = 12
    rule_mode: RuleMode = RuleMode.INDEPENDENT
    fallback_rule: TradingRule | None = None
    fallback_trigger_ttc: float = 60.0
    fee_rate: float = DEFAULT_FEE_RATE
    seed: int | None = None


# -- Replay state and ledger --


@dataclass
class OpenPosition:
    """Shares held in one market until that market settles."""

    market_id: int | str
    slug: str
    outcome: Outcome
    quantity: int
    entry_price: float
    rule_id: str
    rule_name: str


@dataclass(frozen=True)
class Trade:
    """Immutable ledger entry. ``pnl`` is realized only on SETTLE rows."""

    side: TradeSide
    market_id: int | str
    slug: str
    outcome: Outcome
    price: float
    quantity: int
    fee: float
    total: float
    pnl: float
    rule_id: str
    rule_name: str
    timestamp: datetime
    time_to_close: float | None = None


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime | None
    equity: float


@dataclass
class BacktestStats:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0
    profit_factor: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    final_balance: float = 0.0
    total_fees: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class BacktestResult:
    """Complete results from a backtest run."""

    config: BacktestConfig
    stats: BacktestStats
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    markets_processed: int
    event_log: list[str] = field(default_factory=list)

    @property
    def final_balance(self) -> float:
        if not self.equity_curve:
            return self.config.starting_balance
        return self.equity_curve[-1].equity


# -- Progress channel --


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    processed: int
    total: int


@dataclass(frozen=True)
class DoneEvent:
    result: BacktestResult


@dataclass(frozen=True)
class ErrorEvent:
    message: str
