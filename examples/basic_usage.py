#!/usr/bin/env python3
"""
Basic Usage Example - classmarket engine

This script runs one simulated school day against an in-memory ledger with
offline price and exchange-rate providers. It shows how to:
- Seed a class with accounts, a treasury and instruments
- Dispatch the scheduled jobs the way an external timer would
- Settle a buy and a sell
- Read the market snapshot

Run: python examples/basic_usage.py
"""

import json
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from classmarket.engine import MarketEngine
from classmarket.ingestion.providers import Quote
from classmarket.ingestion.rate_limiter import FixedDelayRateLimiter
from classmarket.logging import configure_logging
from classmarket.models.account import Account
from classmarket.models.instrument import Instrument, MarketSession
from classmarket.persistence import (
    ACCOUNTS,
    EVENT_SETTINGS,
    INSTRUMENTS,
    SETTINGS,
    TREASURIES,
    InMemoryLedger,
)


class OfflinePriceProvider:
    """Random-walk quotes so the example never touches the network."""

    name = "offline_prices"

    def __init__(self, seed: int = 7):
        self.rng = random.Random(seed)
        self.prices = {"AAPL": 200.0, "005930.KS": 71000.0}

    def fetch_quote(self, symbol: str) -> Quote:
        last = self.prices[symbol]
        price = round(last * (1 + self.rng.uniform(-0.02, 0.02)), 2)
        self.prices[symbol] = price
        return Quote(
            symbol=symbol,
            price=price,
            previous_close=last,
            change=price - last,
            change_percent=(price - last) / last * 100,
            currency="KRW" if symbol.endswith(".KS") else "USD",
            market_state=MarketSession.REGULAR,
        )


class OfflineRateProvider:
    name = "offline_rates"

    def fetch_rates(self) -> Dict[str, float]:
        return {"KRW": 1385.5}


def create_classroom() -> InMemoryLedger:
    """Create one class with a homeroom admin, three students and a few instruments."""
    accounts = [
        Account("ms_kim", "Ms. Kim", "5-1", cash=10_000_000, is_admin=True),
        Account("minji", "Minji", "5-1", cash=1_000_000),
        Account("jun", "Jun", "5-1", cash=800_000),
        Account("seo", "Seo", "5-1", cash=600_000),
    ]
    instruments = [
        Instrument.create("apple", "Apple", 270_000, is_real_stock=True),
        Instrument.create("samsung", "삼성전자", 70_000, is_real_stock=True),
        Instrument.create("bakery", "Class Bakery", 5_000, class_code="5-1"),
        Instrument.create("apartment", "Riverside Apartment", 300_000,
                          sector="REAL_ESTATE", class_code="5-1"),
    ]
    return InMemoryLedger({
        ACCOUNTS: {a.id: a.to_doc() for a in accounts},
        INSTRUMENTS: {i.id: i.to_doc() for i in instruments},
        TREASURIES: {"5-1": {"total_amount": 500_000}},
        EVENT_SETTINGS: {"5-1": {"enabled": True, "trigger_hour": 13}},
        SETTINGS: {"scheduler": {"vacation_mode": False}},
    })


def print_json(title: str, payload: Dict[str, Any]) -> None:
    print(f"\n📊 {title}")
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def main():
    """Run the example."""
    configure_logging(level="WARNING")

    print("🚀 classmarket basic usage example")
    print("=" * 50)

    engine = MarketEngine(
        create_classroom(),
        price_provider=OfflinePriceProvider(),
        rate_provider=OfflineRateProvider(),
        rate_limiter=FixedDelayRateLimiter(0.0),
        rng=random.Random(42),
    )
    print(f"✅ Engine ready with tasks: {', '.join(engine.orchestrator.task_names)}")

    # Wednesday 08:00 in UTC+9
    morning = datetime(2026, 3, 3, 23, 0, tzinfo=timezone.utc)
    print_json("08:00 dispatch", engine.dispatch(morning).to_dict())

    receipt = engine.buy("minji", "apple", 2, now=morning + timedelta(hours=1))
    print_json("Minji buys 2 Apple", receipt.to_dict())

    midday = morning + timedelta(hours=5)
    report = engine.dispatch(midday)
    print_json("13:00 dispatch", report.to_dict())

    receipt = engine.sell("minji", "apple", 2, now=midday + timedelta(hours=1))
    print_json("Minji sells 2 Apple", receipt.to_dict())

    snapshot = engine.snapshot.get()
    print(f"\n📈 Snapshot holds {snapshot.count} instruments")
    for stock in snapshot.stocks:
        print(f"   {stock['name']:<22} {stock['price']:>10,}")

    print("\n🎉 Example completed")


if __name__ == "__main__":
    main()
