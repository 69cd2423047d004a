"""Trade settlement: pure calculator and ledger-backed executor."""

from .calculator import (
    BOND_TAX_RATE,
    COMMISSION_RATE,
    HOLDING_LOCK_PERIOD,
    STOCK_TAX_RATE,
    BuyCost,
    BuyValidation,
    SellLockStatus,
    SellResult,
    calculate_buy_cost,
    calculate_market_index,
    calculate_new_avg_price,
    calculate_return_rate,
    calculate_sell_result,
    calculate_stock_tax,
    round_half_up,
    validate_buy,
    validate_sell_lock,
)
from .trade import TradeExecutor, TradeReceipt

__all__ = [
    "BOND_TAX_RATE",
    "COMMISSION_RATE",
    "HOLDING_LOCK_PERIOD",
    "STOCK_TAX_RATE",
    "BuyCost",
    "BuyValidation",
    "SellLockStatus",
    "SellResult",
    "calculate_buy_cost",
    "calculate_market_index",
    "calculate_new_avg_price",
    "calculate_return_rate",
    "calculate_sell_result",
    "calculate_stock_tax",
    "round_half_up",
    "validate_buy",
    "validate_sell_lock",
    "TradeExecutor",
    "TradeReceipt",
]
