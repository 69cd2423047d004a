"""
System failure error classifications.

These exceptions represent ledger and configuration failures that the
engine cannot repair on its own.
"""

from typing import Optional, Dict, Any


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class PersistenceError(SystemFailureError):
    """Ledger read or write failure."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class TransactionConflictError(PersistenceError):
    """Optimistic transaction kept conflicting past its retry budget."""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        kwargs.setdefault("operation", "transaction")
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ConfigurationError(SystemFailureError):
    """Configuration could not be loaded or failed validation."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
