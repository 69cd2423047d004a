"""
Economic event injection per class.

A scheduled trigger applies at most one event per class per reporting-day.
The day is claimed in a ledger transaction before the effect runs, so two
overlapping scheduler firings cannot both apply an event. If the effect
fails before writing anything the claim is released and a later firing may
retry; once any write has committed the claim stands, so a retry cannot
apply the event twice. FORCE triggers skip the enabled flag and the
cooldown, and leave the cooldown untouched. Each scheduled pass also clears
timed overrides (the stock tax multiplier) that have expired.
"""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

import structlog

from ..config.defaults import EventParams
from ..models.events import (
    EconomicEventSettings,
    EventOutcome,
    EventResult,
    EventTemplate,
    EventTrigger,
)
from ..persistence import ACTIVE_EVENTS, EVENT_LOGS, EVENT_SETTINGS
from ..persistence.base import Ledger, Transaction
from ..errors import PersistenceError
from ..utils.time import (
    DEFAULT_REPORTING_OFFSET_HOURS,
    format_timestamp,
    parse_timestamp,
    reporting_date,
    to_reporting_time,
    utc_now,
)
from .effects import EffectContext, apply_effect
from .templates import DEFAULT_EVENT_TEMPLATES, find_template

logger = structlog.get_logger(__name__)


@dataclass
class EventRunSummary:
    """Result of one scheduled pass over every enabled class."""
    processed: int = 0
    triggered: int = 0
    results: list[EventOutcome] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "triggered": self.triggered,
            "results": [r.to_dict() for r in self.results],
            "errors": dict(self.errors),
        }


class EventInjector:
    """Selects and applies economic events for classes."""

    def __init__(
        self,
        ledger: Ledger,
        params: Optional[EventParams] = None,
        templates: Sequence[EventTemplate] = DEFAULT_EVENT_TEMPLATES,
        rng: Optional[random.Random] = None,
        history_limit: int = 20,
        timezone_offset_hours: int = DEFAULT_REPORTING_OFFSET_HOURS,
    ):
        self.ledger = ledger
        self.params = params or EventParams()
        self.templates = tuple(templates)
        self.rng = rng or random.Random()
        self.history_limit = history_limit
        self.timezone_offset_hours = timezone_offset_hours

    def load_settings(self, class_code: str) -> Optional[EconomicEventSettings]:
        doc = self.ledger.get(EVENT_SETTINGS, class_code)
        if doc is None:
            return None
        return EconomicEventSettings.from_doc(class_code, doc, self.params.default_trigger_hour)

    def _select(self, settings: EconomicEventSettings,
                event_id: Optional[str]) -> Optional[EventTemplate]:
        candidates = settings.events or self.templates
        enabled = [t for t in candidates if t.enabled]
        if not enabled:
            return None

        if event_id:
            chosen = find_template(enabled, event_id)
            if chosen is not None:
                return chosen
            logger.warning("Requested event not found, drawing at random",
                           class_code=settings.class_code, event_id=event_id)
        return self.rng.choice(enabled)

    def _claim_cooldown(self, class_code: str, today: str,
                        now: datetime) -> Optional[dict[str, Any]]:
        """
        Atomically mark `today` as used for the class.

        Returns:
            The previous cooldown fields, or None if today was already claimed
        """
        def claim(tx: Transaction) -> Optional[dict[str, Any]]:
            doc = tx.get(EVENT_SETTINGS, class_code) or {}
            if doc.get("last_event_date") == today:
                return None
            tx.merge(EVENT_SETTINGS, class_code, {
                "last_event_date": today,
                "last_event_at": format_timestamp(now),
                "updated_at": format_timestamp(now),
            })
            return {
                "last_event_date": doc.get("last_event_date"),
                "last_event_at": doc.get("last_event_at"),
            }

        return self.ledger.run_transaction(claim)

    def _release_cooldown(self, class_code: str, today: str, previous: dict[str, Any]) -> None:
        def release(tx: Transaction) -> None:
            doc = tx.get(EVENT_SETTINGS, class_code) or {}
            if doc.get("last_event_date") == today:
                tx.merge(EVENT_SETTINGS, class_code, previous)

        try:
            self.ledger.run_transaction(release)
        except PersistenceError as e:
            logger.error("Failed to release event cooldown", class_code=class_code, error=str(e))

    def restore_expired_overrides(self, class_code: str, now: Optional[datetime] = None) -> bool:
        """
        Drop a stock tax multiplier override whose lifetime has ended.

        Returns:
            True if an override was removed
        """
        now = utc_now(now)

        def restore(tx: Transaction) -> bool:
            doc = tx.get(EVENT_SETTINGS, class_code)
            if not doc or "stock_tax_multiplier" not in doc:
                return False
            expires_at = parse_timestamp(doc.get("stock_tax_expires_at"))
            if expires_at is None or expires_at > now:
                return False
            restored = {k: v for k, v in doc.items()
                        if k not in ("stock_tax_multiplier", "stock_tax_expires_at")}
            restored["updated_at"] = format_timestamp(now)
            tx.set(EVENT_SETTINGS, class_code, restored)
            return True

        removed = self.ledger.run_transaction(restore)
        if removed:
            logger.info("Expired stock tax override restored", class_code=class_code)
        return removed

    def _record(self, outcome: EventOutcome) -> None:
        """Publish the active event and append it to the class log."""
        expires_at = outcome.triggered_at + timedelta(hours=self.params.event_duration_hours)
        record = outcome.to_dict()
        try:
            self.ledger.set(ACTIVE_EVENTS, outcome.class_code, {
                **record,
                "expires_at": format_timestamp(expires_at),
            })
            self.ledger.set(EVENT_LOGS, f"{outcome.class_code}:{uuid.uuid4().hex}", record)
        except PersistenceError as e:
            logger.error("Failed to record economic event", class_code=outcome.class_code,
                         event_id=outcome.event.id, error=str(e))

    def trigger_class_event(
        self,
        class_code: str,
        trigger: EventTrigger = EventTrigger.SCHEDULED,
        event_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[EventOutcome]:
        """
        Apply one event to a class.

        Args:
            class_code: Target class
            trigger: SCHEDULED honours the enabled flag and daily cooldown; FORCE bypasses both
            event_id: Preferred template; a random enabled one is drawn if absent or unknown
            now: Evaluation time

        Returns:
            EventOutcome, or None when nothing was applied (no settings,
            disabled, cooldown active, or no enabled templates)

        Raises:
            InvalidEventParamsError: A stored template has invalid parameters
        """
        now = utc_now(now)
        forced = trigger == EventTrigger.FORCE

        settings = self.load_settings(class_code)
        if settings is None:
            logger.info("No event settings for class, skipping", class_code=class_code)
            return None

        if not settings.enabled and not forced:
            logger.info("Economic events disabled for class, skipping", class_code=class_code)
            return None

        today = reporting_date(now, self.timezone_offset_hours)
        if not forced and settings.last_event_date == today:
            logger.info("Event already applied today, skipping", class_code=class_code, date=today)
            return None

        template = self._select(settings, event_id)
        if template is None:
            logger.info("No enabled event templates, skipping", class_code=class_code)
            return None

        previous = None
        if not forced:
            previous = self._claim_cooldown(class_code, today, now)
            if previous is None:
                logger.info("Event cooldown claimed concurrently, skipping",
                            class_code=class_code, date=today)
                return None

        logger.info("Applying economic event", class_code=class_code, event_id=template.id,
                    event_type=template.effect.TYPE, trigger=trigger.value)
        ctx = EffectContext(
            ledger=self.ledger,
            class_code=class_code,
            now=now,
            batch_size=self.params.batch_size,
            history_limit=self.history_limit,
            rng=self.rng,
            tax_override_hours=self.params.tax_override_hours,
        )
        try:
            result: EventResult = apply_effect(template.effect, ctx)
        except Exception:
            if ctx.partially_applied:
                logger.error("Economic event partly applied, keeping cooldown",
                             class_code=class_code, event_id=template.id,
                             committed_writes=ctx.committed_writes)
            elif previous is not None:
                self._release_cooldown(class_code, today, previous)
            raise

        outcome = EventOutcome(
            class_code=class_code,
            event=template,
            result=result,
            triggered_at=now,
            trigger=trigger,
        )
        self._record(outcome)

        logger.info("Economic event applied", class_code=class_code, event_id=template.id,
                    **result.to_dict())
        return outcome

    def run_for_all_classes(self, now: Optional[datetime] = None) -> EventRunSummary:
        """
        Scheduled pass: trigger every enabled class whose trigger hour is near now.

        Weekends in the reporting timezone are skipped entirely. One class
        failing does not stop the others; its error is collected.
        """
        now = utc_now(now)
        local = to_reporting_time(now, self.timezone_offset_hours)
        summary = EventRunSummary()

        if local.weekday() >= 5:
            logger.info("Weekend, no economic events", local_time=local.isoformat())
            return summary

        enabled = self.ledger.query(EVENT_SETTINGS, enabled=True)
        summary.processed = len(enabled)
        current_minutes = local.hour * 60 + local.minute

        for class_code, doc in enabled:
            try:
                self.restore_expired_overrides(class_code, now)
            except PersistenceError as e:
                logger.warning("Failed to restore expired overrides", class_code=class_code,
                               error=str(e))

            trigger_hour = doc.get("trigger_hour")
            if trigger_hour is None:
                trigger_hour = self.params.default_trigger_hour
            if abs(current_minutes - int(trigger_hour) * 60) > self.params.trigger_window_minutes:
                logger.debug("Outside trigger window", class_code=class_code,
                             trigger_hour=trigger_hour, local_time=local.strftime("%H:%M"))
                continue

            try:
                outcome = self.trigger_class_event(class_code, EventTrigger.SCHEDULED, now=now)
            except Exception as e:
                logger.error("Economic event failed for class", class_code=class_code,
                             error=str(e), exc_info=True)
                summary.errors[class_code] = str(e)
                continue

            if outcome is not None:
                summary.results.append(outcome)
                summary.triggered += 1

        logger.info("Economic event pass finished", processed=summary.processed,
                    triggered=summary.triggered, failed=len(summary.errors))
        return summary
