"""
Time-window dispatcher for the periodic market jobs.

Each external trigger calls `dispatch()` with the current time. The
orchestrator keeps no record of earlier invocations: every task is either
idempotent by itself or guards itself (the event injector's cooldown), so
at-least-once triggering is safe. Every dispatch binds a fresh `dispatch_id`
into the structlog context, so records from the tasks it runs can be
grouped.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from structlog.contextvars import bound_contextvars

from ..logging.config import get_scheduler_logger, log_task_outcome
from ..utils.time import DEFAULT_REPORTING_OFFSET_HOURS, to_reporting_time, utc_now
from .cache import VacationModeGate
from .windows import TimeWindow

logger = get_scheduler_logger(__name__)


@dataclass(frozen=True)
class ScheduledTask:
    """A named action that runs when its window matches the local time."""
    name: str
    window: TimeWindow
    action: Callable[[datetime], Any]
    costly: bool = True                      # Subject to the vacation gate
    guard: Optional[Callable[[datetime], Optional[str]]] = None   # Returns a skip reason


@dataclass
class DispatchReport:
    """What one trigger did; errors are collected rather than raised."""
    local_time: datetime
    ran: dict[str, Any] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    vacation_mode: Optional[bool] = None

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "local_time": self.local_time.isoformat(),
            "ran": dict(self.ran),
            "skipped": dict(self.skipped),
            "errors": dict(self.errors),
            "vacation_mode": self.vacation_mode,
            "success": self.succeeded,
        }


def _summarize(result: Any) -> Any:
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


class Orchestrator:
    """Dispatches scheduled tasks behind the vacation-mode gate."""

    def __init__(self, tasks: Sequence[ScheduledTask], gate: VacationModeGate,
                 timezone_offset_hours: int = DEFAULT_REPORTING_OFFSET_HOURS):
        names = [t.name for t in tasks]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate task names: {sorted(duplicates)}")

        self.tasks = tuple(tasks)
        self.gate = gate
        self.timezone_offset_hours = timezone_offset_hours

    @property
    def task_names(self) -> list[str]:
        return [t.name for t in self.tasks]

    def get_task(self, name: str) -> ScheduledTask:
        for task in self.tasks:
            if task.name == name:
                return task
        raise KeyError(name)

    def _execute(self, task: ScheduledTask, now: datetime, report: DispatchReport) -> None:
        started = time.perf_counter()
        try:
            result = task.action(now)
        except Exception as e:
            duration = time.perf_counter() - started
            report.errors[task.name] = str(e) or type(e).__name__
            logger.error("Task raised", task_name=task.name, error=str(e), exc_info=True)
            log_task_outcome(logger, task.name, False, duration, {"error": str(e)})
            return

        duration = time.perf_counter() - started
        report.ran[task.name] = _summarize(result)
        log_task_outcome(logger, task.name, True, duration)

    def _guard_allows(self, task: ScheduledTask, now: datetime, report: DispatchReport) -> bool:
        """False when the task's guard names a skip reason or raises."""
        if task.guard is None:
            return True
        try:
            reason = task.guard(now)
        except Exception as e:
            report.errors[task.name] = str(e) or type(e).__name__
            logger.error("Task guard raised", task_name=task.name, error=str(e), exc_info=True)
            return False
        if reason:
            report.skipped[task.name] = reason
            logger.info("Task skipped", task_name=task.name, reason=reason)
            return False
        return True

    def dispatch(self, now: Optional[datetime] = None) -> DispatchReport:
        """
        Run every task whose window matches the reporting-local time.

        The vacation flag is only consulted when at least one due task is
        costly; during vacation costly tasks are skipped and the rest still run.
        """
        with bound_contextvars(dispatch_id=uuid.uuid4().hex[:12]):
            return self._dispatch(now)

    def _dispatch(self, now: Optional[datetime]) -> DispatchReport:
        now = utc_now(now)
        local = to_reporting_time(now, self.timezone_offset_hours)
        report = DispatchReport(local_time=local)

        due = []
        for task in self.tasks:
            if task.window.matches(local):
                due.append(task)
            else:
                report.skipped[task.name] = "outside window"

        if any(t.costly for t in due):
            report.vacation_mode = self.gate.is_vacation()

        for task in due:
            if task.costly and report.vacation_mode:
                report.skipped[task.name] = "vacation mode"
                continue
            if not self._guard_allows(task, now, report):
                continue
            self._execute(task, now, report)

        logger.info("Dispatch finished", local_time=local.isoformat(), ran=sorted(report.ran),
                    failed=sorted(report.errors), vacation_mode=report.vacation_mode)
        return report

    def run_task(self, name: str, now: Optional[datetime] = None,
                 force: bool = False) -> DispatchReport:
        """
        Operator entry point for a single task. `force` bypasses every gate.

        Raises:
            KeyError: No task with that name
        """
        task = self.get_task(name)
        with bound_contextvars(dispatch_id=uuid.uuid4().hex[:12]):
            return self._run_task(task, now, force)

    def _run_task(self, task: ScheduledTask, now: Optional[datetime], force: bool) -> DispatchReport:
        name = task.name
        now = utc_now(now)
        local = to_reporting_time(now, self.timezone_offset_hours)
        report = DispatchReport(local_time=local)

        if force:
            logger.info("Forced task run", task_name=name)
            self._execute(task, now, report)
            return report

        if not task.window.matches(local):
            report.skipped[name] = "outside window"
            return report

        if task.costly:
            report.vacation_mode = self.gate.is_vacation()
            if report.vacation_mode:
                report.skipped[name] = "vacation mode"
                return report

        if not self._guard_allows(task, now, report):
            return report

        self._execute(task, now, report)
        return report
