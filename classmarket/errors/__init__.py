"""
Error classification for the market engine.

This module provides a structured exception hierarchy separating recoverable
data-quality problems, degradable external dependency failures, fatal system
failures and request validation errors that surface to the initiating user.
"""

from .data_quality import (
    DataQualityError,
    MissingDataError,
    MalformedDataError,
)
from .system_failures import (
    SystemFailureError,
    PersistenceError,
    TransactionConflictError,
    ConfigurationError,
)
from .recovery import (
    UnrecoverableError,
    GracefulDegradationError,
    ProviderUnavailableError,
)
from .requests import (
    RequestRejectedError,
    TradeValidationError,
    InvalidQuantityError,
    InsufficientCashError,
    InsufficientQuantityError,
    HoldingLockError,
    InstrumentNotListedError,
    RecordNotFoundError,
    InvalidEventParamsError,
    AuthorizationError,
    SchedulerDisabledError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "MissingDataError",
    "MalformedDataError",
    # System Failures
    "SystemFailureError",
    "PersistenceError",
    "TransactionConflictError",
    "ConfigurationError",
    # Recovery Categories
    "UnrecoverableError",
    "GracefulDegradationError",
    "ProviderUnavailableError",
    # Request Errors
    "RequestRejectedError",
    "TradeValidationError",
    "InvalidQuantityError",
    "InsufficientCashError",
    "InsufficientQuantityError",
    "HoldingLockError",
    "InstrumentNotListedError",
    "RecordNotFoundError",
    "InvalidEventParamsError",
    "AuthorizationError",
    "SchedulerDisabledError",
]
