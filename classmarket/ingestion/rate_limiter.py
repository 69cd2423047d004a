"""Pacing of sequential calls to external providers."""

import time
from typing import Callable, Iterable, Iterator, Protocol, TypeVar

T = TypeVar("T")


class RateLimiter(Protocol):
    """Yields work items no faster than the upstream provider tolerates."""

    def iterate(self, items: Iterable[T]) -> Iterator[T]:
        ...


class FixedDelayRateLimiter:
    """
    Sequential iterator with a fixed pause between consecutive items.

    No pause happens before the first item or after the last one. A bulk
    provider would replace this with a single call and a no-delay limiter.
    """

    def __init__(self, delay_seconds: float = 1.5,
                 sleep: Callable[[float], None] = time.sleep):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def iterate(self, items: Iterable[T]) -> Iterator[T]:
        first = True
        for item in items:
            if not first and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
            first = False
            yield item
