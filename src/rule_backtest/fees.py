"""Parabolic fee curve for probability-priced binary contracts.

fee_per_share = price * (1 - price) * fee_rate

At the default rate the fee peaks at ~1.56% of notional at p=0.50 and
falls towards zero at the extremes. Prices of exactly 0 or 1 carry no fee.
"""

from __future__ import annotations

DEFAULT_FEE_RATE = 0.0625


def fee_per_share(price: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    return price * (1.0 - price) * fee_rate


def order_fee(price: float, quantity: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    """Total fee for an order of ``quantity`` shares."""
    return fee_per_share(price, fee_rate) * quantity


def buy_cost(price: float, quantity: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    """Cash needed to buy ``quantity`` shares, fee included."""
    return price * quantity + order_fee(price, quantity, fee_rate)


def sell_proceeds(price: float, quantity: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    """Cash received for selling ``quantity`` shares, net of fee."""
    return price * quantity - order_fee(price, quantity, fee_rate)


def fee_percentage(price: float, fee_rate: float = DEFAULT_FEE_RATE) -> float:
    """Fee as a fraction of the share price (0.0 when the price is 0)."""
    if price <= 0.0:
        return 0.0
    return fee_per_share(price, fee_rate) / price
