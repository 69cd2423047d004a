"""Durable scheduler settings: the operator vacation flag and the last user activity."""

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog

from ..models.market import SchedulerState
from ..persistence import SETTINGS
from ..persistence.base import Ledger
from ..utils.time import format_timestamp, parse_timestamp, utc_now
from .cache import DEFAULT_TTL_SECONDS, TTLCache, VacationModeGate

logger = structlog.get_logger(__name__)

SCHEDULER_KEY = "scheduler"
ACTIVITY_KEY = "active_status"


class SchedulerStateStore:
    """Reads and writes `settings/scheduler` and owns the vacation gate."""

    def __init__(self, ledger: Ledger, cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        self.ledger = ledger
        cache: TTLCache[bool] = TTLCache(cache_ttl_seconds, clock or time.monotonic)
        self.gate = VacationModeGate(self.read_vacation_mode, cache)

    def read_vacation_mode(self) -> Optional[bool]:
        """Stored flag, or None if no scheduler settings exist."""
        doc = self.ledger.get(SETTINGS, SCHEDULER_KEY)
        if doc is None:
            return None
        return doc.get("vacation_mode") is True

    def set_vacation_mode(self, enabled: bool, updated_by: Optional[str] = None,
                          now: Optional[datetime] = None) -> SchedulerState:
        """Persist the flag and drop the cached value so the next dispatch sees it."""
        state = SchedulerState(vacation_mode=bool(enabled), updated_at=utc_now(now),
                               updated_by=updated_by)
        self.ledger.set(SETTINGS, SCHEDULER_KEY, state.to_doc(), merge=True)
        self.gate.invalidate()

        logger.info("Vacation mode changed", vacation_mode=state.vacation_mode,
                    updated_by=updated_by)
        return state

    def status(self) -> dict[str, Any]:
        doc = self.ledger.get(SETTINGS, SCHEDULER_KEY) or {}
        state = SchedulerState.from_doc(doc)
        result = state.to_doc()
        result["configured"] = bool(doc)
        return result

    def record_activity(self, now: Optional[datetime] = None) -> None:
        """Mark that a user acted at `now`; price refreshes run only after recent activity."""
        self.ledger.set(SETTINGS, ACTIVITY_KEY,
                        {"last_active_at": format_timestamp(utc_now(now))}, merge=True)

    def last_activity(self) -> Optional[datetime]:
        doc = self.ledger.get(SETTINGS, ACTIVITY_KEY) or {}
        return parse_timestamp(doc.get("last_active_at"))

    def has_recent_activity(self, window_minutes: float, now: Optional[datetime] = None) -> bool:
        last_active = self.last_activity()
        if last_active is None:
            return False
        return utc_now(now) - last_active <= timedelta(minutes=window_minutes)
