"""Instrument records for the simulated market."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..utils.money import round_half_up
from ..utils.time import format_timestamp, parse_timestamp

MIN_LISTING_RATIO = 0.3
DEFAULT_HISTORY_LIMIT = 20


class ProductType(str, Enum):
    """Kind of tradable asset; selects the profit tax rate."""
    STOCK = "stock"
    ETF = "etf"
    BOND = "bond"

    @classmethod
    def parse(cls, value: Any) -> "ProductType":
        """Unknown or missing values are treated as plain stock."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.STOCK


class MarketSession(str, Enum):
    """Trading session of the external market at quote time."""
    REGULAR = "REGULAR"
    PRE = "PRE"
    POST = "POST"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value: Any) -> Optional["MarketSession"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class ExternalQuoteData:
    """Last external reference quote attached to a real-data instrument."""
    last_price: float
    previous_close: Optional[float]
    change: float
    change_percent: float
    currency: str
    market_state: MarketSession
    last_updated: datetime

    def to_doc(self) -> dict[str, Any]:
        return {
            "last_price": self.last_price,
            "previous_close": self.previous_close,
            "change": self.change,
            "change_percent": self.change_percent,
            "currency": self.currency,
            "market_state": self.market_state.value,
            "last_updated": format_timestamp(self.last_updated),
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ExternalQuoteData":
        return cls(
            last_price=doc.get("last_price", 0),
            previous_close=doc.get("previous_close"),
            change=doc.get("change", 0),
            change_percent=doc.get("change_percent", 0),
            currency=doc.get("currency", "KRW"),
            market_state=MarketSession.parse(doc.get("market_state")) or MarketSession.CLOSED,
            last_updated=parse_timestamp(doc.get("last_updated")) or datetime.fromtimestamp(0, tz=timezone.utc),
        )


@dataclass(frozen=True)
class Instrument:
    """
    A tradable stock, ETF or bond.

    Prices are whole domestic currency units. `min_listing_price` is fixed
    at creation from the initial price and carried unchanged through every
    later price update.
    """
    id: str
    name: str
    price: int
    initial_price: int
    min_listing_price: int
    is_listed: bool = True
    is_manual: bool = False
    is_real_stock: bool = False
    real_stock_symbol: Optional[str] = None
    sector: str = "TECH"
    class_code: Optional[str] = None
    product_type: ProductType = ProductType.STOCK
    volatility: float = 0.02
    price_history: tuple[int, ...] = field(default_factory=tuple)
    holder_count: int = 0
    trading_volume: int = 0
    buy_volume: int = 0
    sell_volume: int = 0
    recent_buy_volume: int = 0
    recent_sell_volume: int = 0
    real_stock_data: Optional[ExternalQuoteData] = None
    last_updated: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.is_listed and self.price <= 0:
            raise ValueError(f"Listed instrument {self.id} must have a positive price")

    @classmethod
    def create(cls, id: str, name: str, price: int, **kwargs: Any) -> "Instrument":
        """
        Create a new instrument at its initial price.

        Args:
            id: Ledger key
            name: Display name
            price: Initial price in whole currency units
            **kwargs: Any other Instrument field

        Returns:
            Instrument whose history holds the initial price
        """
        kwargs.setdefault("price_history", (price,))
        return cls(
            id=id,
            name=name,
            price=price,
            initial_price=price,
            min_listing_price=round_half_up(price * MIN_LISTING_RATIO),
            **kwargs,
        )

    def with_price(self, new_price: int, history_limit: int = DEFAULT_HISTORY_LIMIT,
                   **changes: Any) -> "Instrument":
        """Return a copy at `new_price` with the sample appended to the bounded history."""
        history = (self.price_history + (new_price,))[-history_limit:]
        return replace(self, price=new_price, price_history=history, **changes)

    @property
    def is_plain_stock(self) -> bool:
        return self.product_type == ProductType.STOCK

    def to_doc(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "initial_price": self.initial_price,
            "min_listing_price": self.min_listing_price,
            "is_listed": self.is_listed,
            "is_manual": self.is_manual,
            "is_real_stock": self.is_real_stock,
            "real_stock_symbol": self.real_stock_symbol,
            "sector": self.sector,
            "class_code": self.class_code,
            "product_type": self.product_type.value,
            "volatility": self.volatility,
            "price_history": list(self.price_history),
            "holder_count": self.holder_count,
            "trading_volume": self.trading_volume,
            "buy_volume": self.buy_volume,
            "sell_volume": self.sell_volume,
            "recent_buy_volume": self.recent_buy_volume,
            "recent_sell_volume": self.recent_sell_volume,
            "real_stock_data": self.real_stock_data.to_doc() if self.real_stock_data else None,
            "last_updated": format_timestamp(self.last_updated) if self.last_updated else None,
        }

    @classmethod
    def from_doc(cls, key: str, doc: dict[str, Any]) -> "Instrument":
        price = doc.get("price", 0)
        initial = doc.get("initial_price", price)
        real_data = doc.get("real_stock_data")
        return cls(
            id=key,
            name=doc.get("name", key),
            price=price,
            initial_price=initial,
            min_listing_price=doc.get("min_listing_price", 0),
            is_listed=doc.get("is_listed", True),
            is_manual=doc.get("is_manual", False),
            is_real_stock=doc.get("is_real_stock", False),
            real_stock_symbol=doc.get("real_stock_symbol"),
            sector=doc.get("sector", "TECH"),
            class_code=doc.get("class_code"),
            product_type=ProductType.parse(doc.get("product_type")),
            volatility=doc.get("volatility", 0.02),
            price_history=tuple(doc.get("price_history") or ()),
            holder_count=doc.get("holder_count", 0),
            trading_volume=doc.get("trading_volume", 0),
            buy_volume=doc.get("buy_volume", 0),
            sell_volume=doc.get("sell_volume", 0),
            recent_buy_volume=doc.get("recent_buy_volume", 0),
            recent_sell_volume=doc.get("recent_sell_volume", 0),
            real_stock_data=ExternalQuoteData.from_doc(real_data) if real_data else None,
            last_updated=parse_timestamp(doc.get("last_updated")),
        )
