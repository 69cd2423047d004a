"""Account, position and treasury records."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..utils.time import format_timestamp, parse_timestamp
from .instrument import ProductType


def position_key(account_id: str, instrument_id: str) -> str:
    """Ledger key of the position an account holds in an instrument."""
    return f"{account_id}:{instrument_id}"


@dataclass(frozen=True)
class Account:
    """A student (or admin) cash account within a class."""
    id: str
    name: str
    class_code: str
    cash: int = 0
    is_admin: bool = False
    is_super_admin: bool = False

    @property
    def is_participant(self) -> bool:
        """Regular members receive event effects; admins fund them."""
        return not (self.is_admin or self.is_super_admin)

    def to_doc(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "class_code": self.class_code,
            "cash": self.cash,
            "is_admin": self.is_admin,
            "is_super_admin": self.is_super_admin,
        }

    @classmethod
    def from_doc(cls, key: str, doc: dict[str, Any]) -> "Account":
        return cls(
            id=key,
            name=doc.get("name", key),
            class_code=doc.get("class_code", ""),
            cash=doc.get("cash", 0),
            is_admin=doc.get("is_admin", False),
            is_super_admin=doc.get("is_super_admin", False),
        )


@dataclass(frozen=True)
class Position:
    """Units of one instrument held by one account."""
    account_id: str
    instrument_id: str
    instrument_name: str
    quantity: int
    average_price: int
    product_type: ProductType = ProductType.STOCK
    class_code: str = ""
    last_buy_time: Optional[datetime] = None

    @property
    def key(self) -> str:
        return position_key(self.account_id, self.instrument_id)

    def to_doc(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "instrument_id": self.instrument_id,
            "instrument_name": self.instrument_name,
            "quantity": self.quantity,
            "average_price": self.average_price,
            "product_type": self.product_type.value,
            "class_code": self.class_code,
            "last_buy_time": format_timestamp(self.last_buy_time) if self.last_buy_time else None,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "Position":
        return cls(
            account_id=doc["account_id"],
            instrument_id=doc["instrument_id"],
            instrument_name=doc.get("instrument_name", doc["instrument_id"]),
            quantity=doc.get("quantity", 0),
            average_price=doc.get("average_price", 0),
            product_type=ProductType.parse(doc.get("product_type")),
            class_code=doc.get("class_code", ""),
            last_buy_time=parse_timestamp(doc.get("last_buy_time")),
        )


@dataclass(frozen=True)
class Treasury:
    """Per-class national treasury; every field is changed by atomic adds only."""
    class_code: str
    total_amount: int = 0
    stock_commission_revenue: int = 0
    stock_tax_revenue: int = 0
    economic_event_revenue: int = 0

    @classmethod
    def from_doc(cls, key: str, doc: dict[str, Any]) -> "Treasury":
        return cls(
            class_code=key,
            total_amount=doc.get("total_amount", 0),
            stock_commission_revenue=doc.get("stock_commission_revenue", 0),
            stock_tax_revenue=doc.get("stock_tax_revenue", 0),
            economic_event_revenue=doc.get("economic_event_revenue", 0),
        )
