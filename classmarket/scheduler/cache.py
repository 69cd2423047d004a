"""
Injectable TTL cache and the vacation-mode gate built on it.

The gate is passed into the orchestrator explicitly so tests control
simulated time through the clock instead of sharing module state.
"""

import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 30 * 60
VACATION_KEY = "vacation_mode"


class TTLCache(Generic[T]):
    """Small keyed cache whose entries expire `ttl_seconds` after being stored."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must not be negative, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, T]] = {}

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one entry, or every entry when `key` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


class VacationModeGate:
    """
    Cached answer to "should costly scheduled work be skipped?".

    `reader` returns the durable flag, or None when no flag has been stored.
    A missing flag counts as vacation and is cached; a failing read counts
    as vacation but is not cached, so the next call retries the read.
    """

    def __init__(self, reader: Callable[[], Optional[bool]],
                 cache: Optional[TTLCache[bool]] = None):
        self._reader = reader
        self.cache = cache if cache is not None else TTLCache()

    def is_vacation(self) -> bool:
        cached = self.cache.get(VACATION_KEY)
        if cached is not None:
            return cached

        try:
            flag = self._reader()
        except Exception as e:
            logger.error("Vacation flag read failed, treating as vacation",
                         error=str(e), exc_info=True)
            return True

        vacation = True if flag is None else bool(flag)
        if flag is None:
            logger.warning("No scheduler settings stored, treating as vacation")
        self.cache.set(VACATION_KEY, vacation)
        return vacation

    def invalidate(self) -> None:
        self.cache.invalidate(VACATION_KEY)
