"""
Centralized logging configuration for the classmarket engine.

This module provides standardized logging configuration using structlog
for all components. Every record carries the engine subsystem it came
from, and records emitted during a scheduler dispatch carry that
dispatch's id. Scheduler tasks and balance mutations get dedicated bound
loggers so their records can be filtered into an audit trail.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, FilteringBoundLogger, WrappedLogger

PACKAGE = "classmarket"


def add_subsystem(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Default `subsystem` to the engine package the record was emitted from."""
    if "subsystem" not in event_dict:
        parts = str(event_dict.get("logger") or "").split(".")
        if len(parts) > 1 and parts[0] == PACKAGE:
            event_dict["subsystem"] = parts[1]
    return event_dict


def _renderer(format_json: bool) -> Any:
    if format_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON lines; otherwise human-readable
        include_timestamp: Include a UTC timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        stream=sys.stdout,
        format="%(message)s"
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        add_subsystem,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.MODULE,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    processors.extend(extra_processors or [])
    processors.append(_renderer(format_json))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structlog logger for module `name`."""
    return structlog.get_logger(name)


def get_scheduler_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for scheduled task execution.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structlog logger carrying the scheduler subsystem context
    """
    return get_logger(name).bind(
        subsystem="scheduler",
        audit_trail=True
    )


def get_audit_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for cash and position mutations.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structlog logger carrying the ledger subsystem context
    """
    return get_logger(name).bind(
        subsystem="ledger",
        audit_trail=True
    )


def log_task_outcome(
    logger: FilteringBoundLogger,
    task_name: str,
    succeeded: bool,
    duration_seconds: float,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log the outcome of a scheduled task run with standardized format.

    Args:
        logger: Structlog logger instance
        task_name: Name of the task that ran
        succeeded: Whether the task completed without raising
        duration_seconds: Wall-clock run time
        context: Additional context data (counts, error text)
    """
    bound_logger = logger.bind(
        task_name=task_name,
        task_result="OK" if succeeded else "FAILED",
        duration_seconds=round(duration_seconds, 3),
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if succeeded:
        bound_logger.info("Scheduled task finished")
    else:
        bound_logger.error("Scheduled task failed")


def log_balance_mutation(
    logger: FilteringBoundLogger,
    class_code: str,
    reason: str,
    account_count: int,
    total_amount: int,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a bulk balance mutation (event effect or settlement) for audit.

    Args:
        logger: Structlog logger instance
        class_code: Class whose ledger was mutated
        reason: What caused the mutation
        account_count: Number of accounts touched
        total_amount: Net amount moved
        context: Additional context data
    """
    bound_logger = logger.bind(
        class_code=class_code,
        reason=reason,
        account_count=account_count,
        total_amount=total_amount,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Balance mutation applied")
