"""
Trade settlement calculations.

Pure functions with no I/O. Amounts are whole domestic currency units and
every rounding step is half-up to the nearest unit, so identical inputs
always produce identical results. Invalid numeric inputs fail closed with
zero results instead of raising; the trade path validates requests before
calling in here.
"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from ..models.instrument import Instrument, ProductType
from ..utils.money import round_half_up
from ..utils.time import utc_now

COMMISSION_RATE = 0.003
STOCK_TAX_RATE = 0.22
BOND_TAX_RATE = 0.154
HOLDING_LOCK_PERIOD = timedelta(hours=1)
BASE_INDEX = 1000

INSUFFICIENT_CASH = "insufficient cash"
INVALID_PRICE = "invalid price"
INVALID_QUANTITY = "invalid quantity"

__all__ = [
    "COMMISSION_RATE",
    "STOCK_TAX_RATE",
    "BOND_TAX_RATE",
    "HOLDING_LOCK_PERIOD",
    "BuyCost",
    "SellResult",
    "BuyValidation",
    "SellLockStatus",
    "calculate_buy_cost",
    "calculate_sell_result",
    "calculate_stock_tax",
    "validate_buy",
    "validate_sell_lock",
    "calculate_new_avg_price",
    "calculate_return_rate",
    "calculate_market_index",
    "round_half_up",
]


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _commission_rate(rate: Any) -> float:
    """Missing or non-numeric rates fall back to the standard commission."""
    return rate if _is_number(rate) and rate >= 0 else COMMISSION_RATE


@dataclass(frozen=True)
class BuyCost:
    total_price: int
    commission: int
    total_cost: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SellResult:
    gross_proceeds: int
    commission: int
    profit: int
    tax: int
    net_proceeds: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BuyValidation:
    can_buy: bool
    error: Optional[str]
    max_quantity: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SellLockStatus:
    can_sell: bool
    remaining_time: timedelta

    def to_dict(self) -> dict[str, Any]:
        return {"can_sell": self.can_sell,
                "remaining_seconds": self.remaining_time.total_seconds()}


_ZERO_BUY = BuyCost(total_price=0, commission=0, total_cost=0)
_ZERO_SELL = SellResult(gross_proceeds=0, commission=0, profit=0, tax=0, net_proceeds=0)


def tax_rate_for(product_type: Any) -> float:
    """Bonds are taxed at the lower rate; stocks, ETFs and unknown kinds at the standard one."""
    return BOND_TAX_RATE if ProductType.parse(product_type) == ProductType.BOND else STOCK_TAX_RATE


def calculate_buy_cost(price: Any, quantity: Any, commission_rate: Any = COMMISSION_RATE) -> BuyCost:
    """
    Cost of buying `quantity` units at `price`, commission included.

    Args:
        price: Unit price
        quantity: Units to buy
        commission_rate: Fraction of notional charged as commission

    Returns:
        BuyCost; all zero when price or quantity is not positive
    """
    if not _is_number(price) or price <= 0:
        return _ZERO_BUY
    if not _is_number(quantity) or quantity <= 0:
        return _ZERO_BUY

    total_price = price * quantity
    commission = round_half_up(total_price * _commission_rate(commission_rate))
    return BuyCost(
        total_price=total_price,
        commission=commission,
        total_cost=total_price + commission,
    )


def calculate_sell_result(
    sell_price: Any,
    buy_price: Any,
    quantity: Any,
    commission_rate: Any = COMMISSION_RATE,
    product_type: Any = ProductType.STOCK,
    tax_multiplier: Any = 1,
) -> SellResult:
    """
    Proceeds, profit and tax of selling `quantity` units.

    Only the sell-side commission reduces taxable profit. Tax is charged
    only when profit is positive. An invalid buy price is treated as equal
    to the sell price (zero gross profit).

    Args:
        sell_price: Unit sell price
        buy_price: Average unit cost of the position
        quantity: Units to sell
        commission_rate: Fraction of notional charged as commission
        product_type: Selects the tax rate
        tax_multiplier: Scale applied to the tax only, from a timed class override

    Returns:
        SellResult; all zero when sell price or quantity is not positive
    """
    if not _is_number(sell_price) or sell_price <= 0:
        return _ZERO_SELL
    if not _is_number(buy_price) or buy_price <= 0:
        buy_price = sell_price
    if not _is_number(quantity) or quantity <= 0:
        return _ZERO_SELL

    gross_proceeds = sell_price * quantity
    commission = round_half_up(gross_proceeds * _commission_rate(commission_rate))
    profit = gross_proceeds - buy_price * quantity - commission
    tax = calculate_stock_tax(profit, product_type, tax_multiplier)

    return SellResult(
        gross_proceeds=gross_proceeds,
        commission=commission,
        profit=profit,
        tax=tax,
        net_proceeds=gross_proceeds - commission - tax,
    )


def calculate_stock_tax(profit: Any, product_type: Any = ProductType.STOCK,
                        tax_multiplier: Any = 1) -> int:
    if not _is_number(profit) or profit <= 0:
        return 0
    if not _is_number(tax_multiplier) or tax_multiplier < 0:
        tax_multiplier = 1
    return round_half_up(profit * tax_rate_for(product_type) * tax_multiplier)


def validate_buy(cash: Any, price: Any, quantity: Any,
                 commission_rate: Any = COMMISSION_RATE) -> BuyValidation:
    """
    Check whether `cash` covers buying `quantity` units at `price`.

    Args:
        cash: Available cash
        price: Unit price
        quantity: Units to buy; must be a positive integer
        commission_rate: Fraction of notional charged as commission

    Returns:
        BuyValidation with the largest affordable quantity
    """
    if not _is_number(cash) or cash <= 0:
        return BuyValidation(can_buy=False, error=INSUFFICIENT_CASH, max_quantity=0)
    if not _is_number(price) or price <= 0:
        return BuyValidation(can_buy=False, error=INVALID_PRICE, max_quantity=0)
    if not _is_number(quantity) or quantity <= 0 or quantity != int(quantity):
        return BuyValidation(can_buy=False, error=INVALID_QUANTITY, max_quantity=0)

    rate = _commission_rate(commission_rate)
    total_cost = calculate_buy_cost(price, quantity, rate).total_cost
    max_quantity = math.floor(cash / (price * (1 + rate)))

    if total_cost > cash:
        return BuyValidation(can_buy=False, error=INSUFFICIENT_CASH, max_quantity=max_quantity)
    return BuyValidation(can_buy=True, error=None, max_quantity=max_quantity)


def validate_sell_lock(
    last_buy_time: Optional[datetime],
    lock_period: timedelta = HOLDING_LOCK_PERIOD,
    now: Optional[datetime] = None,
) -> SellLockStatus:
    """
    Check the post-purchase holding lock.

    Args:
        last_buy_time: Time of the most recent purchase, or None
        lock_period: Minimum holding time
        now: Evaluation time, defaults to the wall clock

    Returns:
        SellLockStatus; unlocked when there was no purchase
    """
    if last_buy_time is None:
        return SellLockStatus(can_sell=True, remaining_time=timedelta(0))

    held_for = utc_now(now) - utc_now(last_buy_time)
    remaining = max(timedelta(0), lock_period - held_for)
    return SellLockStatus(can_sell=remaining == timedelta(0), remaining_time=remaining)


def calculate_new_avg_price(current_quantity: Any, current_avg_price: Any,
                            added_quantity: Any, added_price: Any) -> int:
    """Weighted average cost after adding a lot; unchanged when nothing is added."""
    if not _is_number(current_quantity) or current_quantity < 0:
        current_quantity = 0
    if not _is_number(current_avg_price) or current_avg_price < 0:
        current_avg_price = 0
    if not _is_number(added_quantity) or added_quantity <= 0:
        return current_avg_price
    if not _is_number(added_price) or added_price <= 0:
        return current_avg_price

    total_value = current_quantity * current_avg_price + added_quantity * added_price
    total_quantity = current_quantity + added_quantity
    return round_half_up(total_value / total_quantity)


def calculate_return_rate(current_price: Any, avg_buy_price: Any) -> float:
    """Unrealized return in percent."""
    if not _is_number(avg_buy_price) or avg_buy_price <= 0:
        return 0.0
    if not _is_number(current_price) or current_price <= 0:
        return 0.0
    return (current_price - avg_buy_price) / avg_buy_price * 100


def calculate_market_index(instruments: Iterable[Instrument], base: int = BASE_INDEX) -> int:
    """
    Price index of listed plain stocks relative to their initial prices.

    Args:
        instruments: Candidate instruments; ETFs, bonds and delisted ones are ignored
        base: Index value when current prices equal initial prices

    Returns:
        Rounded index, or `base` when no instrument qualifies
    """
    eligible = [i for i in instruments if i is not None and i.is_listed and i.is_plain_stock]
    if not eligible:
        return base

    total_current = sum(i.price or 0 for i in eligible)
    total_base = sum(i.initial_price or i.price or 1 for i in eligible)
    if total_base == 0:
        return base

    return round_half_up(total_current / total_base * base)
