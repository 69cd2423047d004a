"""
Economic event models.

An economic effect is one of a closed set of variants. Each variant is a
frozen dataclass with typed, validated parameters and a wire tag used when
templates are stored in the ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from ..errors import InvalidEventParamsError
from ..utils.time import format_timestamp, parse_timestamp, utc_now


class EventTrigger(str, Enum):
    """How an event injection was requested."""
    SCHEDULED = "SCHEDULED"
    FORCE = "FORCE"


def _number(params: dict[str, Any], name: str, default: Any) -> float:
    value = params.get(name, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidEventParamsError(
            f"Parameter '{name}' must be a number", field=name, value=value
        )
    return value


@dataclass(frozen=True)
class RealEstateChange:
    """Scale the price of every listed instrument in a sector by a signed percentage."""
    change_percent: float
    sector: str = "REAL_ESTATE"
    price_floor: int = 1000

    TYPE = "REAL_ESTATE_PRICE_CHANGE"

    def __post_init__(self) -> None:
        if self.change_percent <= -100:
            raise InvalidEventParamsError(
                "changePercent must be greater than -100",
                field="changePercent", value=self.change_percent,
            )
        if self.price_floor <= 0:
            raise InvalidEventParamsError(
                "priceFloor must be positive", field="priceFloor", value=self.price_floor
            )

    @property
    def multiplier(self) -> float:
        return 1 + self.change_percent / 100

    def params(self) -> dict[str, Any]:
        return {
            "changePercent": self.change_percent,
            "sector": self.sector,
            "priceFloor": self.price_floor,
        }


@dataclass(frozen=True)
class TaxRefund:
    """Distribute a fraction of the class treasury equally to every member."""
    refund_rate: float = 0.3

    TYPE = "TAX_REFUND"

    def __post_init__(self) -> None:
        if not 0 < self.refund_rate <= 1:
            raise InvalidEventParamsError(
                "refundRate must be in (0, 1]", field="refundRate", value=self.refund_rate
            )

    def params(self) -> dict[str, Any]:
        return {"refundRate": self.refund_rate}


@dataclass(frozen=True)
class TaxExtra:
    """Levy a fraction of each member's cash into the class treasury."""
    tax_rate: float = 0.03

    TYPE = "TAX_EXTRA"

    def __post_init__(self) -> None:
        if not 0 < self.tax_rate <= 1:
            raise InvalidEventParamsError(
                "taxRate must be in (0, 1]", field="taxRate", value=self.tax_rate
            )

    def params(self) -> dict[str, Any]:
        return {"taxRate": self.tax_rate}


@dataclass(frozen=True)
class CashBonus:
    """Credit a flat amount to every member."""
    amount: int = 50000

    TYPE = "CASH_BONUS"

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise InvalidEventParamsError(
                "amount must be positive", field="amount", value=self.amount
            )

    def params(self) -> dict[str, Any]:
        return {"amount": self.amount}


@dataclass(frozen=True)
class Lottery:
    """Credit a fixed prize to N randomly drawn members."""
    winner_count: int = 1
    prize_amount: int = 100000

    TYPE = "LOTTERY"

    def __post_init__(self) -> None:
        if self.winner_count < 1:
            raise InvalidEventParamsError(
                "winnerCount must be at least 1", field="winnerCount", value=self.winner_count
            )
        if self.prize_amount <= 0:
            raise InvalidEventParamsError(
                "prizeAmount must be positive", field="prizeAmount", value=self.prize_amount
            )

    def params(self) -> dict[str, Any]:
        return {"winnerCount": self.winner_count, "prizeAmount": self.prize_amount}


@dataclass(frozen=True)
class CashPenalty:
    """Deduct a fraction of each member's cash into the class treasury."""
    penalty_rate: float = 0.05

    TYPE = "CASH_PENALTY"

    def __post_init__(self) -> None:
        if not 0 < self.penalty_rate <= 1:
            raise InvalidEventParamsError(
                "penaltyRate must be in (0, 1]", field="penaltyRate", value=self.penalty_rate
            )

    def params(self) -> dict[str, Any]:
        return {"penaltyRate": self.penalty_rate}


@dataclass(frozen=True)
class StockTaxChange:
    """Scale the sell-side stock tax of a class for a limited time; 0 exempts, 2 doubles."""
    multiplier: float = 1.0

    TYPE = "STOCK_TAX_CHANGE"

    def __post_init__(self) -> None:
        if self.multiplier < 0:
            raise InvalidEventParamsError(
                "multiplier must not be negative", field="multiplier", value=self.multiplier
            )

    def params(self) -> dict[str, Any]:
        return {"multiplier": self.multiplier}


EconomicEffect = Union[
    RealEstateChange, TaxRefund, TaxExtra, CashBonus, Lottery, CashPenalty, StockTaxChange,
]


def effect_from_dict(effect_type: str, params: Optional[dict[str, Any]]) -> EconomicEffect:
    """
    Build a validated effect from its wire tag and parameter mapping.

    Raises:
        InvalidEventParamsError: Unknown tag, or parameters missing or out of range
    """
    params = params or {}
    if effect_type == RealEstateChange.TYPE:
        if "changePercent" not in params:
            raise InvalidEventParamsError(
                "changePercent is required", field="changePercent", value=None
            )
        return RealEstateChange(
            change_percent=_number(params, "changePercent", None),
            sector=str(params.get("sector", "REAL_ESTATE")),
            price_floor=int(_number(params, "priceFloor", 1000)),
        )
    if effect_type == TaxRefund.TYPE:
        return TaxRefund(refund_rate=_number(params, "refundRate", 0.3))
    if effect_type == TaxExtra.TYPE:
        return TaxExtra(tax_rate=_number(params, "taxRate", 0.03))
    if effect_type == CashBonus.TYPE:
        return CashBonus(amount=int(_number(params, "amount", 50000)))
    if effect_type == Lottery.TYPE:
        return Lottery(
            winner_count=int(_number(params, "winnerCount", 1)),
            prize_amount=int(_number(params, "prizeAmount", 100000)),
        )
    if effect_type == CashPenalty.TYPE:
        return CashPenalty(penalty_rate=_number(params, "penaltyRate", 0.05))
    if effect_type == StockTaxChange.TYPE:
        return StockTaxChange(multiplier=_number(params, "multiplier", 1))
    raise InvalidEventParamsError(
        f"Unknown economic event type '{effect_type}'", field="type", value=effect_type
    )


@dataclass(frozen=True)
class EventTemplate:
    """A named, optionally disabled economic event a class may draw."""
    id: str
    title: str
    effect: EconomicEffect
    description: str = ""
    enabled: bool = True

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.effect.TYPE,
            "title": self.title,
            "description": self.description,
            "params": self.effect.params(),
            "enabled": self.enabled,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "EventTemplate":
        return cls(
            id=doc["id"],
            title=doc.get("title", doc["id"]),
            description=doc.get("description", ""),
            effect=effect_from_dict(doc.get("type", ""), doc.get("params")),
            enabled=doc.get("enabled", True) is not False,
        )


def active_tax_multiplier(doc: Optional[dict[str, Any]], now: datetime) -> float:
    """
    Stock tax multiplier in force for a class at `now`.

    A missing, malformed or expired override gives 1.
    """
    if not doc:
        return 1.0
    multiplier = doc.get("stock_tax_multiplier")
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)) or multiplier < 0:
        return 1.0
    expires_at = parse_timestamp(doc.get("stock_tax_expires_at"))
    if expires_at is not None and expires_at <= utc_now(now):
        return 1.0
    return float(multiplier)


@dataclass(frozen=True)
class EconomicEventSettings:
    """Per-class event configuration, cooldown marker and timed overrides."""
    class_code: str
    enabled: bool = False
    trigger_hour: int = 13
    events: tuple[EventTemplate, ...] = field(default_factory=tuple)
    last_event_date: Optional[str] = None
    last_event_at: Optional[datetime] = None
    stock_tax_multiplier: Optional[float] = None
    stock_tax_expires_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, key: str, doc: dict[str, Any], default_trigger_hour: int = 13) -> "EconomicEventSettings":
        trigger_hour = doc.get("trigger_hour")
        return cls(
            class_code=key,
            enabled=bool(doc.get("enabled", False)),
            trigger_hour=default_trigger_hour if trigger_hour is None else int(trigger_hour),
            events=tuple(EventTemplate.from_doc(e) for e in doc.get("events") or ()),
            last_event_date=doc.get("last_event_date"),
            last_event_at=parse_timestamp(doc.get("last_event_at")),
            stock_tax_multiplier=doc.get("stock_tax_multiplier"),
            stock_tax_expires_at=parse_timestamp(doc.get("stock_tax_expires_at")),
        )

    def to_doc(self) -> dict[str, Any]:
        doc = {
            "enabled": self.enabled,
            "trigger_hour": self.trigger_hour,
            "events": [e.to_doc() for e in self.events],
            "last_event_date": self.last_event_date,
            "last_event_at": format_timestamp(self.last_event_at) if self.last_event_at else None,
        }
        if self.stock_tax_multiplier is not None:
            doc["stock_tax_multiplier"] = self.stock_tax_multiplier
            doc["stock_tax_expires_at"] = (format_timestamp(self.stock_tax_expires_at)
                                           if self.stock_tax_expires_at else None)
        return doc

    def tax_multiplier(self, now: datetime) -> float:
        return active_tax_multiplier(self.to_doc(), now)


@dataclass(frozen=True)
class EventResult:
    """What an applied effect changed."""
    affected_count: int = 0
    total_amount: int = 0
    per_account: int = 0
    winners: tuple[str, ...] = ()
    skipped_reason: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "affected_count": self.affected_count,
            "total_amount": self.total_amount,
            "per_account": self.per_account,
        }
        if self.winners:
            result["winners"] = list(self.winners)
        if self.skipped_reason:
            result["skipped_reason"] = self.skipped_reason
        result.update(self.details)
        return result


@dataclass(frozen=True)
class EventOutcome:
    """Summary returned after an event has been applied to a class."""
    class_code: str
    event: EventTemplate
    result: EventResult
    triggered_at: datetime
    trigger: EventTrigger = EventTrigger.SCHEDULED

    def to_dict(self) -> dict[str, Any]:
        return {
            "class_code": self.class_code,
            "event": self.event.to_doc(),
            "result": self.result.to_dict(),
            "triggered_at": format_timestamp(self.triggered_at),
            "trigger": self.trigger.value,
        }
