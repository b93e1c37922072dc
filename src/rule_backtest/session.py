"""Mutable state of one replay run: cash, open positions, cooldowns, ledger.

A ReplaySession is created per run and owned by the Engine for its
duration, so concurrent runs never share state.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import datetime

from src.rule_backtest.fees import DEFAULT_FEE_RATE, buy_cost, order_fee
from src.rule_backtest.models import (
    EquityPoint,
    MarketRecord,
    OpenPosition,
    Outcome,
    RuleMode,
    Trade,
    TradeSide,
    TradingRule,
)
from src.rule_backtest.rules import CooldownTracker


@dataclass
class ReplaySession:
    balance: float
    rng: random.Random
    fee_rate: float = DEFAULT_FEE_RATE
    cooldowns: CooldownTracker = field(default_factory=CooldownTracker)
    open_positions: list[OpenPosition] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    outcome_history: list[int] = field(default_factory=list)

    @classmethod
    def start(
        cls,
        balance: float,
        mode: RuleMode,
        rng: random.Random,
        fee_rate: float = DEFAULT_FEE_RATE,
    ) -> ReplaySession:
        return cls(balance=balance, rng=rng, fee_rate=fee_rate, cooldowns=CooldownTracker(mode))

    def buy(
        self,
        rule: TradingRule,
        outcome: Outcome,
        market: MarketRecord,
        price_yes: float,
        now: datetime,
        time_to_close: float,
        rule_name: str | None = None,
    ) -> Trade | None:
        """Open a position sized from the rule's USDC amount.

        Returns None, without touching any state, when the amount buys zero
        shares or the cost (fee included) exceeds the balance.
        """
        entry_price = price_yes if outcome == Outcome.YES else 1.0 - price_yes
        if entry_price <= 0.0:
            return None
        quantity = math.floor(rule.action.amount / entry_price)
        if quantity <= 0:
            return None

        cost = buy_cost(entry_price, quantity, self.fee_rate)
        if cost > self.balance:
            return None

        name = rule_name if rule_name is not None else rule.name
        self.balance -= cost
        self.open_positions.append(
            OpenPosition(
                market_id=market.id,
                slug=market.slug,
                outcome=outcome,
                quantity=quantity,
                entry_price=entry_price,
                rule_id=rule.id,
                rule_name=name,
            )
        )
        trade = Trade(
            side=TradeSide.BUY,
            market_id=market.id,
            slug=market.slug,
            outcome=outcome,
            price=entry_price,
            quantity=quantity,
            fee=order_fee(entry_price, quantity, self.fee_rate),
            total=cost,
            pnl=0.0,
            rule_id=rule.id,
            rule_name=name,
            timestamp=now,
            time_to_close=time_to_close,
        )
        self.trades.append(trade)
        return trade

    def settle(self, market: MarketRecord) -> list[Trade]:
        """Pay out every open position at the market's resolution.

        Winning shares pay 1.0 each, losing shares nothing. The entry fee is
        charged against realized P&L; settlement itself is free.
        """
        assert market.outcome is not None
        winner = market.outcome.winning_outcome
        settled: list[Trade] = []
        for pos in self.open_positions:
            settle_price = 1.0 if pos.outcome == winner else 0.0
            payout = settle_price * pos.quantity
            pnl = payout - pos.entry_price * pos.quantity - order_fee(pos.entry_price, pos.quantity, self.fee_rate)
            self.balance += payout
            trade = Trade(
                side=TradeSide.SETTLE,
                market_id=pos.market_id,
                slug=pos.slug,
                outcome=pos.outcome,
                price=settle_price,
                quantity=pos.quantity,
                fee=0.0,
                total=payout,
                pnl=pnl,
                rule_id=pos.rule_id,
                rule_name=pos.rule_name,
                timestamp=market.end_time,
            )
            self.trades.append(trade)
            settled.append(trade)
        self.open_positions.clear()
        return settled

    def mark(self, timestamp: datetime | None) -> EquityPoint:
        """Append the current balance to the equity curve."""
        point = EquityPoint(timestamp=timestamp, equity=self.balance)
        self.equity_curve.append(point)
        return point
