"""Ledger record models."""

from .account import Account, Position, Treasury, position_key
from .events import (
    CashBonus,
    EconomicEffect,
    EconomicEventSettings,
    EventOutcome,
    EventResult,
    EventTemplate,
    EventTrigger,
    Lottery,
    RealEstateChange,
    TaxExtra,
    TaxRefund,
    effect_from_dict,
)
from .instrument import ExternalQuoteData, Instrument, MarketSession, ProductType
from .market import ExchangeRate, MarketSnapshot, SchedulerState

__all__ = [
    "Account",
    "Position",
    "Treasury",
    "position_key",
    "CashBonus",
    "EconomicEffect",
    "EconomicEventSettings",
    "EventOutcome",
    "EventResult",
    "EventTemplate",
    "EventTrigger",
    "Lottery",
    "RealEstateChange",
    "TaxExtra",
    "TaxRefund",
    "effect_from_dict",
    "ExternalQuoteData",
    "Instrument",
    "MarketSession",
    "ProductType",
    "ExchangeRate",
    "MarketSnapshot",
    "SchedulerState",
]
