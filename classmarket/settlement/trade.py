"""
Trade execution against the ledger.

Each order is validated for shape before any I/O, then settled inside one
ledger transaction that re-reads the account, instrument and position and
repeats every balance and lock check right before the write. A sell also
reads the class's event settings so a live stock tax override applies. Treasury
revenue is recorded with commit-time increments so concurrent trades in
the same class never overwrite each other.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from ..config.defaults import SettlementParams
from ..errors import (
    HoldingLockError,
    InstrumentNotListedError,
    InsufficientCashError,
    InsufficientQuantityError,
    InvalidQuantityError,
    RecordNotFoundError,
    TradeValidationError,
)
from ..logging.config import get_audit_logger
from ..models.account import Account, Position, position_key
from ..models.events import active_tax_multiplier
from ..models.instrument import Instrument
from ..persistence import ACCOUNTS, EVENT_SETTINGS, INSTRUMENTS, POSITIONS, TREASURIES
from ..persistence.base import Ledger, Transaction
from ..utils.time import format_timestamp, utc_now
from .calculator import (
    calculate_buy_cost,
    calculate_new_avg_price,
    calculate_sell_result,
    validate_buy,
    validate_sell_lock,
)

audit_logger = get_audit_logger(__name__)


@dataclass(frozen=True)
class TradeReceipt:
    """Settled trade as reported back to the requesting user."""
    side: str
    account_id: str
    instrument_id: str
    quantity: int
    price: int
    commission: int
    tax: int
    profit: int
    cash_delta: int
    cash_after: int
    position_quantity: int
    executed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["executed_at"] = format_timestamp(self.executed_at)
        return result


class TradeExecutor:
    """Settles buy and sell orders for class accounts."""

    def __init__(self, ledger: Ledger, params: Optional[SettlementParams] = None):
        self.ledger = ledger
        self.params = params or SettlementParams()

    def _check_quantity(self, quantity: Any) -> int:
        if (isinstance(quantity, bool) or not isinstance(quantity, int)
                or not 1 <= quantity <= self.params.max_trade_quantity):
            raise InvalidQuantityError(
                f"Quantity must be an integer between 1 and {self.params.max_trade_quantity}",
                reason="invalid quantity",
                quantity=quantity,
            )
        return quantity

    def _load_account(self, tx: Transaction, account_id: str) -> Account:
        doc = tx.get(ACCOUNTS, account_id)
        if doc is None:
            raise RecordNotFoundError(
                f"Account {account_id} not found",
                reason="account not found", collection=ACCOUNTS, key=account_id,
            )
        return Account.from_doc(account_id, doc)

    def _load_instrument(self, tx: Transaction, instrument_id: str) -> Instrument:
        doc = tx.get(INSTRUMENTS, instrument_id)
        if doc is None:
            raise RecordNotFoundError(
                f"Instrument {instrument_id} not found",
                reason="instrument not found", collection=INSTRUMENTS, key=instrument_id,
            )
        if not doc.get("is_listed", True):
            raise InstrumentNotListedError(
                f"Instrument {instrument_id} is not listed", reason="instrument not listed"
            )
        price = doc.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
            raise TradeValidationError(
                f"Instrument {instrument_id} has no valid price", reason="invalid price"
            )
        return Instrument.from_doc(instrument_id, doc)

    def buy(self, account_id: str, instrument_id: str, quantity: int,
            now: Optional[datetime] = None) -> TradeReceipt:
        """
        Buy `quantity` units at the instrument's current price.

        Raises:
            InvalidQuantityError: Quantity not an integer in range
            RecordNotFoundError: Unknown account or instrument
            InstrumentNotListedError: Instrument is delisted
            InsufficientCashError: Cash does not cover price plus commission
        """
        quantity = self._check_quantity(quantity)
        executed_at = utc_now(now)
        rate = self.params.commission_rate

        def settle(tx: Transaction) -> TradeReceipt:
            account = self._load_account(tx, account_id)
            instrument = self._load_instrument(tx, instrument_id)
            key = position_key(account_id, instrument_id)
            position_doc = tx.get(POSITIONS, key)

            check = validate_buy(account.cash, instrument.price, quantity, rate)
            if not check.can_buy:
                raise InsufficientCashError(
                    f"Cannot buy {quantity} x {instrument_id}: {check.error}",
                    reason=check.error,
                    required=calculate_buy_cost(instrument.price, quantity, rate).total_cost,
                    available=account.cash,
                    max_quantity=check.max_quantity,
                )
            cost = calculate_buy_cost(instrument.price, quantity, rate)

            held = Position.from_doc(position_doc) if position_doc else None
            held_quantity = held.quantity if held else 0
            held_avg = held.average_price if held else 0
            position = Position(
                account_id=account_id,
                instrument_id=instrument_id,
                instrument_name=instrument.name,
                quantity=held_quantity + quantity,
                average_price=calculate_new_avg_price(held_quantity, held_avg, quantity, instrument.price),
                product_type=instrument.product_type,
                class_code=account.class_code,
                last_buy_time=executed_at,
            )
            cash_after = account.cash - cost.total_cost

            tx.update(ACCOUNTS, account_id, {"cash": cash_after})
            tx.set(POSITIONS, key, position.to_doc())
            tx.increment(INSTRUMENTS, instrument_id, {
                "buy_volume": quantity,
                "recent_buy_volume": quantity,
                "trading_volume": quantity,
                "holder_count": 0 if held_quantity > 0 else 1,
            })
            if cost.commission and account.class_code:
                tx.increment(TREASURIES, account.class_code, {
                    "total_amount": cost.commission,
                    "stock_commission_revenue": cost.commission,
                })

            return TradeReceipt(
                side="buy",
                account_id=account_id,
                instrument_id=instrument_id,
                quantity=quantity,
                price=instrument.price,
                commission=cost.commission,
                tax=0,
                profit=0,
                cash_delta=-cost.total_cost,
                cash_after=cash_after,
                position_quantity=position.quantity,
                executed_at=executed_at,
            )

        receipt = self.ledger.run_transaction(settle)
        audit_logger.info(
            "Buy settled",
            account_id=account_id,
            instrument_id=instrument_id,
            quantity=quantity,
            price=receipt.price,
            commission=receipt.commission,
            cash_after=receipt.cash_after,
        )
        return receipt

    def sell(self, account_id: str, instrument_id: str, quantity: int,
             now: Optional[datetime] = None) -> TradeReceipt:
        """
        Sell `quantity` units at the instrument's current price.

        Raises:
            InvalidQuantityError: Quantity not an integer in range
            RecordNotFoundError: Unknown account, instrument or position
            InstrumentNotListedError: Instrument is delisted
            InsufficientQuantityError: Position holds fewer units
            HoldingLockError: Last purchase is inside the holding lock
        """
        quantity = self._check_quantity(quantity)
        executed_at = utc_now(now)
        lock_period = timedelta(seconds=self.params.holding_lock_seconds)

        def settle(tx: Transaction) -> TradeReceipt:
            account = self._load_account(tx, account_id)
            instrument = self._load_instrument(tx, instrument_id)
            key = position_key(account_id, instrument_id)
            position_doc = tx.get(POSITIONS, key)

            if position_doc is None or not position_doc.get("quantity"):
                raise RecordNotFoundError(
                    f"No position in {instrument_id} for {account_id}",
                    reason="position not found", collection=POSITIONS, key=key,
                )
            position = Position.from_doc(position_doc)
            if position.quantity < quantity:
                raise InsufficientQuantityError(
                    f"Holding {position.quantity}, cannot sell {quantity}",
                    reason="insufficient quantity",
                    held=position.quantity,
                    requested=quantity,
                )

            lock = validate_sell_lock(position.last_buy_time, lock_period, now=executed_at)
            if not lock.can_sell:
                raise HoldingLockError(
                    f"Position is locked for another {int(lock.remaining_time.total_seconds())}s",
                    reason="holding lock active",
                    remaining=lock.remaining_time,
                )

            tax_multiplier = 1.0
            if account.class_code:
                tax_multiplier = active_tax_multiplier(
                    tx.get(EVENT_SETTINGS, account.class_code), executed_at)

            result = calculate_sell_result(
                instrument.price, position.average_price, quantity,
                self.params.commission_rate, position.product_type, tax_multiplier,
            )
            remaining = position.quantity - quantity
            cash_after = account.cash + result.net_proceeds

            tx.update(ACCOUNTS, account_id, {"cash": cash_after})
            if remaining > 0:
                tx.update(POSITIONS, key, {"quantity": remaining})
            else:
                tx.delete(POSITIONS, key)
            tx.increment(INSTRUMENTS, instrument_id, {
                "sell_volume": quantity,
                "recent_sell_volume": quantity,
                "trading_volume": quantity,
                "holder_count": -1 if remaining == 0 else 0,
            })
            revenue = result.commission + result.tax
            if revenue and account.class_code:
                tx.increment(TREASURIES, account.class_code, {
                    "total_amount": revenue,
                    "stock_commission_revenue": result.commission,
                    "stock_tax_revenue": result.tax,
                })

            return TradeReceipt(
                side="sell",
                account_id=account_id,
                instrument_id=instrument_id,
                quantity=quantity,
                price=instrument.price,
                commission=result.commission,
                tax=result.tax,
                profit=result.profit,
                cash_delta=result.net_proceeds,
                cash_after=cash_after,
                position_quantity=remaining,
                executed_at=executed_at,
            )

        receipt = self.ledger.run_transaction(settle)
        audit_logger.info(
            "Sell settled",
            account_id=account_id,
            instrument_id=instrument_id,
            quantity=quantity,
            price=receipt.price,
            commission=receipt.commission,
            tax=receipt.tax,
            profit=receipt.profit,
            cash_after=receipt.cash_after,
        )
        return receipt
