"""Tests for per-class event injection and the scheduled pass."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from classmarket.config.defaults import EventParams
from classmarket.errors import PersistenceError
from classmarket.events.injector import EventInjector
from classmarket.events.templates import DEFAULT_EVENT_TEMPLATES
from classmarket.models.events import CashBonus, EventTemplate, EventTrigger
from classmarket.persistence import ACCOUNTS, ACTIVE_EVENTS, EVENT_LOGS, EVENT_SETTINGS


@pytest.fixture
def injector(class_ledger, rng):
    return EventInjector(class_ledger, rng=rng)


def cash(ledger, account_id):
    return ledger.get(ACCOUNTS, account_id)["cash"]


class TestTriggerClassEvent:
    """Test single-class triggers."""

    def test_scheduled_trigger_applies_and_claims_day(self, injector, class_ledger, weekday_noon_kst):
        outcome = injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)

        assert outcome.event.id == "cash_bonus"
        assert outcome.result.total_amount == 150_000
        assert cash(class_ledger, "s1") == 1_050_000

        settings = class_ledger.get(EVENT_SETTINGS, "C1")
        assert settings["last_event_date"] == "2026-03-04"
        assert settings["enabled"] is True

    def test_active_event_and_log_recorded(self, injector, class_ledger, weekday_noon_kst):
        injector.trigger_class_event("C1", event_id="tax_refund", now=weekday_noon_kst)

        active = class_ledger.get(ACTIVE_EVENTS, "C1")
        assert active["event"]["id"] == "tax_refund"
        assert active["trigger"] == "SCHEDULED"
        assert active["expires_at"].startswith("2026-03-05T04:00:00")

        logs = class_ledger.query(EVENT_LOGS)
        assert len(logs) == 1
        assert logs[0][0].startswith("C1:")
        assert logs[0][1]["result"]["per_account"] == 100_000

    def test_second_scheduled_trigger_same_day_is_skipped(self, injector, class_ledger, weekday_noon_kst):
        injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)
        second = injector.trigger_class_event("C1", event_id="cash_bonus",
                                              now=weekday_noon_kst + timedelta(hours=2))

        assert second is None
        assert cash(class_ledger, "s1") == 1_050_000

    def test_next_reporting_day_is_allowed(self, injector, weekday_noon_kst):
        injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)
        outcome = injector.trigger_class_event("C1", event_id="cash_bonus",
                                               now=weekday_noon_kst + timedelta(days=1))
        assert outcome is not None

    def test_force_bypasses_cooldown_without_advancing_it(self, injector, class_ledger, weekday_noon_kst):
        class_ledger.set(EVENT_SETTINGS, "C1", {"last_event_date": "2026-03-04"}, merge=True)

        outcome = injector.trigger_class_event("C1", EventTrigger.FORCE, "cash_bonus",
                                               now=weekday_noon_kst + timedelta(days=1))

        assert outcome.trigger == EventTrigger.FORCE
        assert class_ledger.get(EVENT_SETTINGS, "C1")["last_event_date"] == "2026-03-04"

    def test_disabled_class(self, injector, class_ledger, weekday_noon_kst):
        class_ledger.set(EVENT_SETTINGS, "C1", {"enabled": False}, merge=True)

        assert injector.trigger_class_event("C1", now=weekday_noon_kst) is None
        assert injector.trigger_class_event("C1", EventTrigger.FORCE, now=weekday_noon_kst) is not None

    def test_missing_settings(self, injector, weekday_noon_kst):
        assert injector.trigger_class_event("C9", now=weekday_noon_kst) is None

    def test_unknown_event_id_draws_at_random(self, injector, weekday_noon_kst):
        outcome = injector.trigger_class_event("C1", event_id="meteor", now=weekday_noon_kst)
        assert outcome.event in DEFAULT_EVENT_TEMPLATES

    def test_class_templates_replace_defaults(self, injector, class_ledger, weekday_noon_kst):
        bonus = EventTemplate("small_bonus", "Small bonus", CashBonus(amount=10))
        class_ledger.set(EVENT_SETTINGS, "C1", {"events": [bonus.to_doc()]}, merge=True)

        outcome = injector.trigger_class_event("C1", now=weekday_noon_kst)

        assert outcome.event == bonus
        assert cash(class_ledger, "s1") == 1_000_010

    def test_all_templates_disabled(self, injector, class_ledger, weekday_noon_kst):
        bonus = EventTemplate("off", "Off", CashBonus(amount=10), enabled=False)
        class_ledger.set(EVENT_SETTINGS, "C1", {"events": [bonus.to_doc()]}, merge=True)

        assert injector.trigger_class_event("C1", now=weekday_noon_kst) is None
        assert class_ledger.get(EVENT_SETTINGS, "C1").get("last_event_date") is None

    def test_failed_effect_releases_claim(self, injector, class_ledger, weekday_noon_kst):
        with patch("classmarket.events.injector.apply_effect", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)

        assert class_ledger.get(EVENT_SETTINGS, "C1").get("last_event_date") is None
        assert injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst) is not None

    def test_partly_applied_effect_keeps_claim(self, class_ledger, rng, weekday_noon_kst):
        injector = EventInjector(class_ledger, EventParams(batch_size=1), rng=rng)
        commit = class_ledger.commit_batch
        calls = []

        def fail_second_chunk(ops):
            calls.append(ops)
            if len(calls) == 2:
                raise PersistenceError("write failed")
            commit(ops)

        with patch.object(class_ledger, "commit_batch", side_effect=fail_second_chunk):
            with pytest.raises(PersistenceError):
                injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)

        assert cash(class_ledger, "s1") == 1_050_000
        assert class_ledger.get(EVENT_SETTINGS, "C1")["last_event_date"] == "2026-03-04"

        assert injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst) is None
        assert cash(class_ledger, "s1") == 1_050_000

    def test_concurrent_claim_wins(self, injector, class_ledger, weekday_noon_kst):
        stale = injector.load_settings("C1")
        class_ledger.set(EVENT_SETTINGS, "C1", {"last_event_date": "2026-03-04"}, merge=True)

        with patch.object(injector, "load_settings", return_value=stale):
            outcome = injector.trigger_class_event("C1", event_id="cash_bonus", now=weekday_noon_kst)

        assert outcome is None
        assert cash(class_ledger, "s1") == 1_000_000


class TestRunForAllClasses:
    """Test the scheduled pass over enabled classes."""

    def test_triggers_class_in_window(self, injector, weekday_noon_kst):
        summary = injector.run_for_all_classes(now=weekday_noon_kst)

        assert summary.processed == 1
        assert summary.triggered == 1
        assert summary.results[0].class_code == "C1"

    def test_weekend_is_skipped(self, injector, saturday_noon_kst):
        summary = injector.run_for_all_classes(now=saturday_noon_kst)

        assert summary.processed == 0
        assert summary.triggered == 0

    @pytest.mark.parametrize("offset_minutes,expected", [
        (-29, 1), (29, 1), (-30, 0), (30, 0), (120, 0),
    ])
    def test_trigger_window(self, injector, weekday_noon_kst, offset_minutes, expected):
        now = weekday_noon_kst + timedelta(minutes=offset_minutes)
        assert injector.run_for_all_classes(now=now).triggered == expected

    def test_custom_window(self, class_ledger, rng, weekday_noon_kst):
        injector = EventInjector(class_ledger, EventParams(trigger_window_minutes=60), rng=rng)
        summary = injector.run_for_all_classes(now=weekday_noon_kst + timedelta(minutes=45))
        assert summary.triggered == 1

    def test_disabled_classes_not_processed(self, injector, class_ledger, weekday_noon_kst):
        class_ledger.set(EVENT_SETTINGS, "C2", {"enabled": False, "trigger_hour": 13})
        assert injector.run_for_all_classes(now=weekday_noon_kst).processed == 1

    def test_one_failing_class_does_not_stop_others(self, injector, class_ledger, weekday_noon_kst):
        class_ledger.set(EVENT_SETTINGS, "C0", {
            "enabled": True,
            "trigger_hour": 13,
            "events": [{"id": "bad", "type": "CASH_BONUS", "params": {"amount": -1}}],
        })

        summary = injector.run_for_all_classes(now=weekday_noon_kst)

        assert summary.processed == 2
        assert summary.triggered == 1
        assert "C0" in summary.errors
        assert summary.to_dict()["results"][0]["class_code"] == "C1"

    def test_second_pass_same_day_triggers_nothing(self, injector, weekday_noon_kst):
        injector.run_for_all_classes(now=weekday_noon_kst)
        summary = injector.run_for_all_classes(now=weekday_noon_kst + timedelta(minutes=10))
        assert summary.triggered == 0


class TestExpiredOverrides:
    """Test clean-up of timed overrides."""

    def test_expired_multiplier_removed(self, injector, class_ledger, weekday_noon_kst):
        expired = (weekday_noon_kst - timedelta(minutes=1)).isoformat()
        class_ledger.set(EVENT_SETTINGS, "C1", {"stock_tax_multiplier": 2,
                                                "stock_tax_expires_at": expired}, merge=True)

        assert injector.restore_expired_overrides("C1", now=weekday_noon_kst) is True

        doc = class_ledger.get(EVENT_SETTINGS, "C1")
        assert "stock_tax_multiplier" not in doc
        assert "stock_tax_expires_at" not in doc
        assert doc["enabled"] is True
        assert doc["trigger_hour"] == 13

    def test_live_multiplier_kept(self, injector, class_ledger, weekday_noon_kst):
        live = (weekday_noon_kst + timedelta(hours=3)).isoformat()
        class_ledger.set(EVENT_SETTINGS, "C1", {"stock_tax_multiplier": 0,
                                                "stock_tax_expires_at": live}, merge=True)

        assert injector.restore_expired_overrides("C1", now=weekday_noon_kst) is False
        assert class_ledger.get(EVENT_SETTINGS, "C1")["stock_tax_multiplier"] == 0

    def test_no_override(self, injector, weekday_noon_kst):
        assert injector.restore_expired_overrides("C1", now=weekday_noon_kst) is False
        assert injector.restore_expired_overrides("C9", now=weekday_noon_kst) is False

    def test_scheduled_pass_restores_outside_trigger_window(self, injector, class_ledger,
                                                            weekday_noon_kst):
        expired = (weekday_noon_kst - timedelta(hours=5)).isoformat()
        class_ledger.set(EVENT_SETTINGS, "C1", {"stock_tax_multiplier": 2,
                                                "stock_tax_expires_at": expired}, merge=True)

        summary = injector.run_for_all_classes(now=weekday_noon_kst - timedelta(hours=3))

        assert summary.triggered == 0
        assert "stock_tax_multiplier" not in class_ledger.get(EVENT_SETTINGS, "C1")
