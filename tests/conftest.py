"""Pytest configuration and shared fixtures."""

import random
from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from classmarket.models.account import Account
from classmarket.models.instrument import Instrument, ProductType
from classmarket.persistence import (
    ACCOUNTS,
    EVENT_SETTINGS,
    INSTRUMENTS,
    SETTINGS,
    TREASURIES,
    InMemoryLedger,
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def weekday_noon_kst() -> datetime:
    """Wednesday 2026-03-04 13:00 in UTC+9."""
    return datetime(2026, 3, 4, 4, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def saturday_noon_kst() -> datetime:
    """Saturday 2026-03-07 13:00 in UTC+9."""
    return datetime(2026, 3, 7, 4, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def class_ledger() -> InMemoryLedger:
    """One class with an admin, three students, a treasury and a few instruments."""
    accounts = {
        "admin": Account("admin", "Homeroom", "C1", cash=10_000_000, is_admin=True),
        "s1": Account("s1", "Alice", "C1", cash=1_000_000),
        "s2": Account("s2", "Bob", "C1", cash=500_000),
        "s3": Account("s3", "Carol", "C1", cash=0),
        "other": Account("other", "Dave", "C2", cash=700_000),
    }
    instruments = {
        "apt": Instrument.create("apt", "Apartment", 100_000, sector="REAL_ESTATE", class_code="C1"),
        "land": Instrument.create("land", "Land", 1_100, sector="REAL_ESTATE", class_code="C1"),
        "tech": Instrument.create("tech", "TechCo", 10_000, class_code="C1"),
        "bond": Instrument.create("bond", "Treasury Fund", 50_000, product_type=ProductType.BOND),
        "other_apt": Instrument.create("other_apt", "Villa", 80_000, sector="REAL_ESTATE", class_code="C2"),
    }
    return InMemoryLedger({
        ACCOUNTS: {key: account.to_doc() for key, account in accounts.items()},
        INSTRUMENTS: {key: inst.to_doc() for key, inst in instruments.items()},
        TREASURIES: {"C1": {"total_amount": 1_000_000}},
        EVENT_SETTINGS: {"C1": {"enabled": True, "trigger_hour": 13}},
        SETTINGS: {"scheduler": {"vacation_mode": False}},
    })


@pytest.fixture
def chart_payload() -> Dict[str, Any]:
    """Minimal chart API response for a USD-quoted symbol."""
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": "AAPL",
                    "currency": "USD",
                    "regularMarketPrice": 200.5,
                    "chartPreviousClose": 198.0,
                    "currentTradingPeriod": {
                        "regular": {"start": 1000, "end": 2000},
                        "pre": {"start": 500, "end": 1000},
                        "post": {"start": 2000, "end": 3000},
                    },
                },
            }],
            "error": None,
        }
    }
