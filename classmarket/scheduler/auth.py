"""Shared-secret bearer check for the scheduler trigger."""

import hmac
from typing import Optional

from ..errors import AuthorizationError, SchedulerDisabledError

BEARER_PREFIX = "Bearer "


def verify_bearer_token(header: Optional[str], secret: Optional[str]) -> None:
    """
    Check an `Authorization` header against the configured secret.

    Raises:
        SchedulerDisabledError: No secret is configured, so the trigger is off
        AuthorizationError: Header missing, malformed or wrong
    """
    if not secret:
        raise SchedulerDisabledError("Scheduler trigger is disabled: no auth token configured",
                                     reason="disabled")

    if not header or not header.startswith(BEARER_PREFIX):
        raise AuthorizationError("Missing bearer token", reason="unauthorized")

    token = header[len(BEARER_PREFIX):].strip()
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise AuthorizationError("Invalid bearer token", reason="unauthorized")
