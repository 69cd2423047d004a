"""
Market engine composition root.

Wires the ledger, ingestion, settlement, event injection, snapshot and
scheduler components from one validated MarketConfig and registers the
periodic tasks the orchestrator dispatches.
"""

import random
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import structlog

from .config.defaults import MarketConfig, get_default_config
from .config.loader import ConfigLoader
from .events.injector import EventInjector, EventRunSummary
from .ingestion.exchange_rate import ExchangeRateService, ExchangeRateUpdate
from .ingestion.providers import ChartPriceProvider, ExchangeRateProvider
from .ingestion.rate_limiter import RateLimiter
from .ingestion.service import IngestionService
from .errors import PersistenceError
from .models.events import EventOutcome, EventTrigger, RealEstateChange
from .persistence.base import Ledger
from .persistence.sqlite_store import SqliteLedger
from .scheduler.http import SchedulerEndpoint
from .scheduler.orchestrator import DispatchReport, Orchestrator, ScheduledTask
from .scheduler.state import SchedulerStateStore
from .scheduler.windows import WEEKDAYS, daily_at, hourly, weekdays_between
from .settlement.trade import TradeExecutor, TradeReceipt
from .snapshot.cache import SnapshotCache

logger = structlog.get_logger(__name__)

REAL_PRICES_TASK = "real_prices"
EXCHANGE_RATE_TASK = "exchange_rate"
ECONOMIC_EVENTS_TASK = "economic_events"


class MarketEngine:
    """
    Coordinator for the scheduled market simulation.

    Scheduled work:
    Trigger → Orchestrator → (Ingestion | Event Injector) → Ledger → Snapshot
    Trade requests go straight to the settlement executor.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: Optional[MarketConfig] = None,
        price_provider: Optional[ChartPriceProvider] = None,
        rate_provider: Optional[ExchangeRateProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        rng: Optional[random.Random] = None,
        clock=None,
    ) -> None:
        self.config = config or get_default_config()
        self.ledger = ledger

        self.exchange_rates = ExchangeRateService(ledger, rate_provider, self.config.ingestion)
        self.ingestion = IngestionService(
            ledger,
            self.exchange_rates,
            price_provider=price_provider,
            rate_limiter=rate_limiter,
            params=self.config.ingestion,
        )
        self.snapshot = SnapshotCache(ledger, self.config.snapshot)
        self.trades = TradeExecutor(ledger, self.config.settlement)
        self.events = EventInjector(
            ledger,
            self.config.events,
            rng=rng,
            history_limit=self.config.snapshot.history_limit,
            timezone_offset_hours=self.config.scheduler.timezone_offset_hours,
        )
        self.scheduler_state = SchedulerStateStore(
            ledger,
            cache_ttl_seconds=self.config.scheduler.vacation_cache_ttl_seconds,
            clock=clock,
        )
        self.orchestrator = Orchestrator(
            self.default_tasks(),
            self.scheduler_state.gate,
            timezone_offset_hours=self.config.scheduler.timezone_offset_hours,
        )

        logger.info("Market engine initialized", tasks=self.orchestrator.task_names)

    @classmethod
    def from_config(cls, config_dir: Optional[Path] = None, db_path: str = "ledger.db",
                    overrides: Optional[dict[str, Any]] = None, **kwargs: Any) -> "MarketEngine":
        """Load configuration from disk and environment and open a SQLite ledger."""
        config = ConfigLoader.create(config_dir).load(overrides)
        return cls(SqliteLedger(db_path), config, **kwargs)

    def default_tasks(self) -> list[ScheduledTask]:
        return [
            # Weekdays 06:00 through 00:59 reporting time, covering both exchanges' sessions
            ScheduledTask(REAL_PRICES_TASK, weekdays_between(6, 1), self.refresh_prices,
                          guard=self.require_active_users),
            ScheduledTask(EXCHANGE_RATE_TASK, daily_at(8, 0, 9), self.update_exchange_rate),
            ScheduledTask(ECONOMIC_EVENTS_TASK, hourly(0, 9, weekdays=WEEKDAYS), self.run_events),
        ]

    def require_active_users(self, now: Optional[datetime] = None) -> Optional[str]:
        """Skip reason for the price refresh when nobody has traded recently."""
        window = self.config.scheduler.active_user_window_minutes
        if window <= 0 or self.scheduler_state.has_recent_activity(window, now):
            return None
        return "no active users"

    def record_activity(self, now: Optional[datetime] = None) -> None:
        self.scheduler_state.record_activity(now)

    def _touch_activity(self, now: Optional[datetime]) -> None:
        try:
            self.scheduler_state.record_activity(now)
        except PersistenceError as e:
            logger.warning("Failed to record user activity", error=str(e))

    def _refresh_after_events(self, outcomes: list[EventOutcome], now: Optional[datetime]) -> None:
        """Rebuild the snapshot when an applied event repriced instruments."""
        if any(isinstance(o.event.effect, RealEstateChange) and o.result.affected_count
               for o in outcomes):
            try:
                self.snapshot.refresh(now)
            except PersistenceError as e:
                logger.warning("Snapshot refresh after price event failed", error=str(e))

    def refresh_prices(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Ingest real prices, then rebuild the snapshot from the updated ledger."""
        result = self.ingestion.update_real_prices(now)
        snapshot = self.snapshot.refresh(now)
        return {**result.to_dict(), "snapshot_count": snapshot.count}

    def update_exchange_rate(self, now: Optional[datetime] = None) -> ExchangeRateUpdate:
        return self.exchange_rates.update_exchange_rate(now)

    def run_events(self, now: Optional[datetime] = None) -> EventRunSummary:
        summary = self.events.run_for_all_classes(now)
        self._refresh_after_events(summary.results, now)
        return summary

    def trigger_event(self, class_code: str, event_id: Optional[str] = None,
                      force: bool = False, now: Optional[datetime] = None) -> Optional[EventOutcome]:
        trigger = EventTrigger.FORCE if force else EventTrigger.SCHEDULED
        outcome = self.events.trigger_class_event(class_code, trigger, event_id, now)
        if outcome is not None:
            self._refresh_after_events([outcome], now)
        return outcome

    def buy(self, account_id: str, instrument_id: str, quantity: int,
            now: Optional[datetime] = None) -> TradeReceipt:
        receipt = self.trades.buy(account_id, instrument_id, quantity, now)
        self._touch_activity(now)
        return receipt

    def sell(self, account_id: str, instrument_id: str, quantity: int,
             now: Optional[datetime] = None) -> TradeReceipt:
        receipt = self.trades.sell(account_id, instrument_id, quantity, now)
        self._touch_activity(now)
        return receipt

    def dispatch(self, now: Optional[datetime] = None) -> DispatchReport:
        return self.orchestrator.dispatch(now)

    def endpoint(self) -> SchedulerEndpoint:
        return SchedulerEndpoint(self.orchestrator, self.scheduler_state,
                                 self.config.scheduler.auth_token)
