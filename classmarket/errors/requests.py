"""
Request-level errors surfaced synchronously to the caller.

Trade validation failures are reported to the user who initiated the trade;
authorization failures end a scheduler request before any work is done.
"""

from datetime import timedelta
from typing import Any, Optional

from .recovery import UnrecoverableError


class RequestRejectedError(UnrecoverableError):
    """Base class for rejected requests carrying a user-facing reason."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason or message


class TradeValidationError(RequestRejectedError):
    """A buy or sell request failed validation."""


class InvalidQuantityError(TradeValidationError):
    """Quantity is not a positive integer within the allowed range."""

    def __init__(self, message: str, quantity: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.quantity = quantity


class InsufficientCashError(TradeValidationError):
    """Account cash does not cover the total cost of a buy."""

    def __init__(self, message: str, required: int = 0, available: int = 0,
                 max_quantity: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available
        self.max_quantity = max_quantity


class InsufficientQuantityError(TradeValidationError):
    """Position holds fewer units than the sell request."""

    def __init__(self, message: str, held: int = 0, requested: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.held = held
        self.requested = requested


class HoldingLockError(TradeValidationError):
    """Position is still inside its post-purchase holding lock."""

    def __init__(self, message: str, remaining: timedelta = timedelta(0), **kwargs):
        super().__init__(message, **kwargs)
        self.remaining = remaining


class InstrumentNotListedError(TradeValidationError):
    """Instrument exists but is not listed."""


class RecordNotFoundError(TradeValidationError):
    """Account, instrument or position does not exist."""

    def __init__(self, message: str, collection: Optional[str] = None,
                 key: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.collection = collection
        self.key = key


class InvalidEventParamsError(RequestRejectedError):
    """Economic event template parameters are missing or out of range."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


class AuthorizationError(RequestRejectedError):
    """Scheduler trigger presented a missing or wrong bearer token."""


class SchedulerDisabledError(AuthorizationError):
    """No scheduler secret is configured, so the trigger endpoint is disabled."""
