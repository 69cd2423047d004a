"""Time-window orchestration, vacation gating and the HTTP trigger."""

from .auth import verify_bearer_token
from .cache import TTLCache, VacationModeGate
from .http import SchedulerEndpoint
from .orchestrator import DispatchReport, Orchestrator, ScheduledTask
from .state import SchedulerStateStore
from .windows import TimeWindow, daily_at, hourly, weekdays_between

__all__ = [
    "verify_bearer_token",
    "TTLCache",
    "VacationModeGate",
    "SchedulerEndpoint",
    "DispatchReport",
    "Orchestrator",
    "ScheduledTask",
    "SchedulerStateStore",
    "TimeWindow",
    "daily_at",
    "hourly",
    "weekdays_between",
]
