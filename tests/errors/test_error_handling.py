"""
Error handling tests for the market engine.

Tests cover the error classification hierarchy and how each category is
handled by the components that raise it.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from classmarket.errors import (
    AuthorizationError,
    ConfigurationError,
    DataQualityError,
    GracefulDegradationError,
    HoldingLockError,
    InsufficientCashError,
    InvalidEventParamsError,
    MalformedDataError,
    MissingDataError,
    PersistenceError,
    ProviderUnavailableError,
    RecordNotFoundError,
    RequestRejectedError,
    SchedulerDisabledError,
    SystemFailureError,
    TradeValidationError,
    TransactionConflictError,
    UnrecoverableError,
)
from classmarket.events.injector import EventInjector
from classmarket.models.events import EventOutcome, EventResult, EventTrigger
from classmarket.events.templates import DEFAULT_EVENT_TEMPLATES


class TestErrorClassification:
    """Test error classification system."""

    def test_data_quality_error_hierarchy(self):
        """Test that data quality errors are recoverable."""
        base_error = DataQualityError("base error")
        assert base_error.recoverable is True
        assert base_error.context == {}

        missing = MissingDataError("no price", data_type="price", symbol="AAPL")
        assert isinstance(missing, DataQualityError)
        assert missing.symbol == "AAPL"

        malformed = MalformedDataError("bad json", raw_data="<html>", context={"status": 200})
        assert malformed.raw_data == "<html>"
        assert malformed.context == {"status": 200}

    def test_system_failure_hierarchy(self):
        """Test that system failures are unrecoverable."""
        conflict = TransactionConflictError("gave up", attempts=5, target="accounts/s1")

        assert isinstance(conflict, PersistenceError)
        assert isinstance(conflict, SystemFailureError)
        assert conflict.recoverable is False
        assert conflict.operation == "transaction"
        assert conflict.attempts == 5

        config_error = ConfigurationError("bad", errors=["x"])
        assert config_error.errors == ["x"]

    def test_provider_unavailable_degrades(self):
        """Test that provider outages allow degraded operation."""
        error = ProviderUnavailableError("timeout", provider="chart", status_code=503)

        assert isinstance(error, GracefulDegradationError)
        assert error.allows_degradation is True
        assert error.fallback_strategy == "reuse_last_known_value"
        assert error.status_code == 503

    def test_recovery_categories_exported(self):
        """Test that only raised recovery categories are part of the package."""
        import classmarket.errors as errors

        recovery = {name for name in errors.__all__
                    if name.lower().endswith(("recoverableerror", "degradationerror",
                                              "unavailableerror"))}
        assert recovery == {"UnrecoverableError", "GracefulDegradationError",
                            "ProviderUnavailableError"}
        assert not hasattr(errors, "RecoverableError")

    def test_request_errors_carry_reason(self):
        """Test user-facing reasons on rejected requests."""
        cash = InsufficientCashError("not enough", required=100, available=50, max_quantity=2)
        assert isinstance(cash, TradeValidationError)
        assert isinstance(cash, UnrecoverableError)
        assert cash.reason == "not enough"
        assert cash.max_quantity == 2

        lock = HoldingLockError("locked", remaining=timedelta(minutes=5), reason="holding lock")
        assert lock.reason == "holding lock"
        assert lock.remaining == timedelta(minutes=5)

        missing = RecordNotFoundError("gone", collection="accounts", key="s9")
        assert (missing.collection, missing.key) == ("accounts", "s9")

    def test_event_and_auth_errors_are_requests(self):
        """Test that event and auth errors are request rejections, not trade errors."""
        params = InvalidEventParamsError("bad", field="amount", value=-1)
        assert isinstance(params, RequestRejectedError)
        assert not isinstance(params, TradeValidationError)

        disabled = SchedulerDisabledError("off", reason="disabled")
        assert isinstance(disabled, AuthorizationError)
        assert disabled.recoverable is False


class TestErrorHandlingInComponents:
    """Test where components contain rather than propagate errors."""

    def test_record_failure_does_not_undo_event(self, class_ledger, rng, weekday_noon_kst):
        """Test that a failed event log write is logged, not raised."""
        injector = EventInjector(class_ledger, rng=rng)

        with patch.object(class_ledger, "set", side_effect=PersistenceError("write failed")):
            outcome = injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)

        assert outcome is not None
        assert class_ledger.get("accounts", "s1")["cash"] == 1_050_000

    def test_release_failure_is_logged(self, class_ledger, rng):
        """Test that a failed cooldown release does not mask the original error."""
        injector = EventInjector(class_ledger, rng=rng)

        with patch.object(class_ledger, "run_transaction", side_effect=PersistenceError("down")):
            injector._release_cooldown("C1", "2026-03-04", {"last_event_date": None})

    def test_outcome_serializes_skipped_result(self, weekday_noon_kst):
        """Test that skipped effects are visible in the outcome record."""
        outcome = EventOutcome("C1", DEFAULT_EVENT_TEMPLATES[0],
                               EventResult(skipped_reason="no matching instruments"),
                               weekday_noon_kst, EventTrigger.FORCE)
        record = outcome.to_dict()

        assert record["result"]["skipped_reason"] == "no matching instruments"
        assert record["trigger"] == "FORCE"

    def test_invalid_stored_template_propagates(self, class_ledger, rng, weekday_noon_kst):
        """Test that a forced trigger surfaces invalid templates to the caller."""
        class_ledger.set("event_settings", "C1", {
            "events": [{"id": "bad", "type": "LOTTERY", "params": {"winnerCount": 0}}],
        }, merge=True)

        with pytest.raises(InvalidEventParamsError):
            EventInjector(class_ledger, rng=rng).trigger_class_event(
                "C1", EventTrigger.FORCE, now=weekday_noon_kst)
