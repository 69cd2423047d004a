"""Unit tests for the market engine composition root."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from classmarket.config.defaults import SchedulerParams, get_default_config
from classmarket.engine import (
    ECONOMIC_EVENTS_TASK,
    EXCHANGE_RATE_TASK,
    REAL_PRICES_TASK,
    MarketEngine,
)
from classmarket.ingestion.providers import Quote
from classmarket.ingestion.rate_limiter import FixedDelayRateLimiter
from classmarket.models.instrument import Instrument, MarketSession
from classmarket.persistence import ACCOUNTS, EVENT_SETTINGS, INSTRUMENTS, SETTINGS
from classmarket.snapshot.cache import SNAPSHOT_KEY


class StaticPriceProvider:
    name = "static_prices"

    def __init__(self, price=200.5, currency="USD"):
        self.price = price
        self.currency = currency
        self.requested = []

    def fetch_quote(self, symbol):
        self.requested.append(symbol)
        return Quote(symbol=symbol, price=self.price, previous_close=self.price, change=0.0,
                     change_percent=0.0, currency=self.currency,
                     market_state=MarketSession.REGULAR)


class StaticRateProvider:
    name = "static_rates"

    def fetch_rates(self):
        return {"KRW": 1380.4}


@pytest.fixture
def engine(class_ledger, rng, fake_clock):
    apple = Instrument.create("apple", "Apple Inc", 250_000, is_real_stock=True,
                              real_stock_symbol="AAPL")
    class_ledger.set(INSTRUMENTS, "apple", apple.to_doc())

    config = get_default_config()
    config = type(config)(
        settlement=config.settlement,
        ingestion=config.ingestion,
        snapshot=config.snapshot,
        scheduler=SchedulerParams(auth_token="token"),
        events=config.events,
    )
    return MarketEngine(
        class_ledger,
        config,
        price_provider=StaticPriceProvider(),
        rate_provider=StaticRateProvider(),
        rate_limiter=FixedDelayRateLimiter(0.0),
        rng=rng,
        clock=fake_clock,
    )


class TestMarketEngine:
    """Test suite for the engine's wiring and task table."""

    def test_task_table(self, engine):
        """Test that the three periodic tasks are registered."""
        assert engine.orchestrator.task_names == [
            REAL_PRICES_TASK, EXCHANGE_RATE_TASK, ECONOMIC_EVENTS_TASK,
        ]

    def test_dispatch_at_trigger_hour(self, engine, weekday_noon_kst):
        """Test a weekday 13:00 dispatch: prices and events run, the rate job waits."""
        engine.record_activity(weekday_noon_kst - timedelta(minutes=10))
        report = engine.dispatch(weekday_noon_kst)

        assert set(report.ran) == {REAL_PRICES_TASK, ECONOMIC_EVENTS_TASK}
        assert report.skipped == {EXCHANGE_RATE_TASK: "outside window"}
        assert report.succeeded

        prices = report.ran[REAL_PRICES_TASK]
        assert prices["updated"] == 1
        assert prices["snapshot_count"] == 6
        assert report.ran[ECONOMIC_EVENTS_TASK]["triggered"] == 1

    def test_dispatch_at_exchange_rate_hour(self, engine, class_ledger, weekday_noon_kst):
        """Test the 08:00 run that stores the exchange rate."""
        report = engine.dispatch(weekday_noon_kst - timedelta(hours=5))

        assert report.ran[EXCHANGE_RATE_TASK] == {"rate": 1380, "updated": True}
        assert class_ledger.get(SETTINGS, "exchange_rate")["rate"] == 1380
        assert ECONOMIC_EVENTS_TASK in report.ran

    def test_dispatch_outside_every_window(self, engine, weekday_noon_kst):
        """Test 03:30 local: nothing is due and the vacation flag is never read."""
        report = engine.dispatch(weekday_noon_kst.replace(hour=18, minute=30))

        assert report.ran == {}
        assert report.vacation_mode is None

    def test_vacation_mode_stops_costly_work(self, engine, class_ledger, weekday_noon_kst):
        """Test that the vacation flag skips every scheduled task."""
        engine.scheduler_state.set_vacation_mode(True)
        report = engine.dispatch(weekday_noon_kst)

        assert report.ran == {}
        assert report.skipped[REAL_PRICES_TASK] == "vacation mode"
        assert class_ledger.get(INSTRUMENTS, "apple")["price"] == 250_000

    def test_price_refresh_waits_for_activity(self, engine, class_ledger, weekday_noon_kst):
        """Test that prices are left alone when nobody traded in the last half hour."""
        engine.record_activity(weekday_noon_kst - timedelta(minutes=31))
        report = engine.dispatch(weekday_noon_kst)

        assert report.skipped[REAL_PRICES_TASK] == "no active users"
        assert ECONOMIC_EVENTS_TASK in report.ran
        assert class_ledger.get(INSTRUMENTS, "apple")["price"] == 250_000

    def test_forced_price_refresh_ignores_activity(self, engine, weekday_noon_kst):
        """Test that an operator run is not held back by the activity check."""
        report = engine.orchestrator.run_task(REAL_PRICES_TASK, weekday_noon_kst, force=True)
        assert report.ran[REAL_PRICES_TASK]["updated"] == 1

    def test_trades_record_activity(self, engine, weekday_noon_kst):
        """Test that a trade counts as user activity."""
        assert engine.require_active_users(weekday_noon_kst) == "no active users"

        engine.buy("s1", "tech", 1, now=weekday_noon_kst)

        assert engine.require_active_users(weekday_noon_kst + timedelta(minutes=30)) is None
        assert engine.require_active_users(weekday_noon_kst + timedelta(minutes=31)) is not None

    def test_weekend(self, engine, saturday_noon_kst):
        """Test that Saturday runs no price or event job."""
        report = engine.dispatch(saturday_noon_kst)
        assert report.ran == {}

    def test_trigger_event(self, engine, class_ledger, weekday_noon_kst):
        """Test the operator event trigger."""
        outcome = engine.trigger_event("C1", "cash_bonus", now=weekday_noon_kst)
        assert outcome.result.total_amount == 150_000

        assert engine.trigger_event("C1", "cash_bonus", now=weekday_noon_kst) is None
        assert engine.trigger_event("C1", "cash_bonus", force=True, now=weekday_noon_kst) is not None

    def test_price_event_refreshes_snapshot(self, engine, class_ledger, weekday_noon_kst):
        """Test that a sector repricing is visible in the snapshot right away."""
        engine.snapshot.refresh(weekday_noon_kst)
        engine.trigger_event("C1", "real_estate_up_20", now=weekday_noon_kst)

        stocks = class_ledger.get(SETTINGS, SNAPSHOT_KEY)["stocks"]
        prices = {s["id"]: s["price"] for s in stocks}
        assert prices["apt"] == 120_000
        assert prices["land"] == 1_320

    def test_cash_event_leaves_snapshot_alone(self, engine, class_ledger, weekday_noon_kst):
        """Test that events which move only cash do not rebuild the snapshot."""
        engine.snapshot.refresh(weekday_noon_kst)
        before = class_ledger.get(SETTINGS, SNAPSHOT_KEY)["updated_at"]

        engine.trigger_event("C1", "cash_bonus", now=weekday_noon_kst + timedelta(minutes=5))

        assert class_ledger.get(SETTINGS, SNAPSHOT_KEY)["updated_at"] == before

    def test_scheduled_price_event_refreshes_snapshot(self, engine, class_ledger, weekday_noon_kst):
        """Test the scheduled pass path of the snapshot refresh."""
        class_ledger.set(EVENT_SETTINGS, "C1", {"events": [
            {"id": "boom", "type": "REAL_ESTATE_PRICE_CHANGE", "params": {"changePercent": 20}},
        ]}, merge=True)
        engine.snapshot.refresh(weekday_noon_kst)

        engine.run_events(weekday_noon_kst)

        stocks = class_ledger.get(SETTINGS, SNAPSHOT_KEY)["stocks"]
        assert {s["id"]: s["price"] for s in stocks}["apt"] == 120_000

    def test_trades(self, engine, class_ledger, weekday_noon_kst):
        """Test that buy and sell go through the settlement executor."""
        receipt = engine.buy("s1", "tech", 10, now=weekday_noon_kst)
        assert receipt.position_quantity == 10

        later = weekday_noon_kst + timedelta(hours=2)
        receipt = engine.sell("s1", "tech", 10, now=later)
        assert receipt.position_quantity == 0
        assert class_ledger.get(ACCOUNTS, "s1")["cash"] == receipt.cash_after

    def test_endpoint_uses_configured_token(self, engine):
        """Test that the endpoint is bound to the configured secret."""
        client = TestClient(engine.endpoint().app())

        assert client.get("/scheduler/vacation", headers={"Authorization": "Bearer token"}).status_code == 200
        assert client.get("/scheduler/vacation", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_from_config(self, tmp_path, monkeypatch):
        """Test building an engine from a config directory and a SQLite file."""
        monkeypatch.setenv("SCHEDULER_AUTH_TOKEN", "env-token")
        (tmp_path / "market.yaml").write_text("events:\n  default_trigger_hour: 9\n")

        engine = MarketEngine.from_config(tmp_path, str(tmp_path / "ledger.db"),
                                          price_provider=StaticPriceProvider())

        assert engine.config.events.default_trigger_hour == 9
        assert engine.config.scheduler.auth_token == "env-token"
        assert engine.scheduler_state.read_vacation_mode() is None
