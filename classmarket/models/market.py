"""Market-wide singleton records: exchange rate, snapshot and scheduler state."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..utils.time import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class ExchangeRate:
    """Domestic currency units per USD. Never zero or missing once stored."""
    rate: int
    last_updated: Optional[datetime] = None
    source: str = "default"

    def __post_init__(self) -> None:
        if not self.rate or self.rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {self.rate!r}")

    def to_doc(self) -> dict[str, Any]:
        return {
            "rate": self.rate,
            "last_updated": format_timestamp(self.last_updated) if self.last_updated else None,
            "source": self.source,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ExchangeRate":
        return cls(
            rate=doc["rate"],
            last_updated=parse_timestamp(doc.get("last_updated")),
            source=doc.get("source", "unknown"),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Materialized projection of every listed instrument."""
    stocks: list[dict[str, Any]] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def count(self) -> int:
        return len(self.stocks)

    def to_doc(self) -> dict[str, Any]:
        return {
            "stocks": self.stocks,
            "count": self.count,
            "updated_at": format_timestamp(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "MarketSnapshot":
        return cls(
            stocks=list(doc.get("stocks") or []),
            updated_at=parse_timestamp(doc.get("updated_at")),
        )


@dataclass(frozen=True)
class SchedulerState:
    """Operator-controlled flag that suspends costly scheduled work."""
    vacation_mode: bool
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    def to_doc(self) -> dict[str, Any]:
        return {
            "vacation_mode": self.vacation_mode,
            "updated_at": format_timestamp(self.updated_at) if self.updated_at else None,
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "SchedulerState":
        return cls(
            vacation_mode=bool(doc.get("vacation_mode", False)),
            updated_at=parse_timestamp(doc.get("updated_at")),
            updated_by=doc.get("updated_by"),
        )
