"""
Recovery strategy classifications for error handling.

These classes group errors by how the engine recovers from them and guide
whether a failure is degraded or surfaced.
"""

from typing import Optional


class UnrecoverableError(Exception):
    """Mixin for errors that end the current request."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message)
        self.recoverable = False


class GracefulDegradationError(Exception):
    """Mixin for errors that allow continued operation with reduced functionality."""

    def __init__(self, message: str, degraded_functionality: Optional[str] = None,
                 fallback_strategy: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.degraded_functionality = degraded_functionality
        self.fallback_strategy = fallback_strategy
        self.allows_degradation = True


class ProviderUnavailableError(GracefulDegradationError):
    """External provider timed out, was unreachable or answered non-2xx."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault("fallback_strategy", "reuse_last_known_value")
        super().__init__(message, **kwargs)
        self.provider = provider
        self.status_code = status_code
