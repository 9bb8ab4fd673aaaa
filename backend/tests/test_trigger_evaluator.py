"""
Unit tests for trigger date math: worked example, idempotency, overdue windows, timezones.
"""
import pytest
from datetime import date, datetime

from deadline_alerts.services.trigger_evaluator import (
    already_served,
    compute_trigger_date,
    served_on,
    should_fire,
    today_for_zone,
)

DUE = date(2024, 12, 31)


@pytest.mark.unit
class TestComputeTriggerDate:
    def test_offset_is_subtracted_in_calendar_days(self):
        assert compute_trigger_date(DUE, 30) == date(2024, 12, 1)
        assert compute_trigger_date(DUE, 0) == DUE

    def test_datetime_due_dates_are_truncated(self):
        assert compute_trigger_date(datetime(2024, 12, 31, 17, 45), 1) == date(2024, 12, 30)

    def test_larger_offset_never_triggers_later(self):
        for due in (date(2024, 3, 1), date(2024, 12, 31), date(2025, 2, 28)):
            assert compute_trigger_date(due, 45) <= compute_trigger_date(due, 20)


@pytest.mark.unit
class TestShouldFire:
    def test_not_before_trigger_date(self):
        assert should_fire(DUE, 30, None, date(2024, 11, 30)) is False

    def test_fires_on_trigger_date_when_never_served(self):
        assert should_fire(DUE, 30, None, date(2024, 12, 1)) is True

    def test_same_day_rerun_does_not_fire_again(self):
        served = datetime(2024, 12, 1, 9, 0)
        assert should_fire(DUE, 30, served, date(2024, 12, 1)) is False

    def test_next_day_does_not_fire_again(self):
        served = datetime(2024, 12, 1, 9, 0)
        assert should_fire(DUE, 30, served, date(2024, 12, 2)) is False

    def test_served_before_window_fires_again(self):
        # Served for an earlier window; the 7-day window is new
        served = datetime(2024, 12, 1, 9, 0)
        assert should_fire(DUE, 7, served, date(2024, 12, 24)) is True

    def test_overdue_deadline_fires_when_never_served(self):
        assert should_fire(date(2024, 1, 31), 30, None, date(2024, 6, 1)) is True

    def test_far_future_deadline_with_small_offset_does_not_fire(self):
        assert should_fire(date(2026, 1, 1), 0, None, date(2024, 12, 1)) is False

    def test_offset_monotonicity(self):
        today = date(2024, 11, 20)
        # 45 days before is 16 Nov, 20 days before is 11 Dec
        assert should_fire(DUE, 45, None, today) is True
        assert should_fire(DUE, 20, None, today) is False


@pytest.mark.unit
class TestTimezones:
    def test_served_on_uses_reminder_zone(self):
        late_utc = datetime(2024, 11, 30, 23, 30)
        assert served_on(late_utc, "UTC") == date(2024, 11, 30)
        assert served_on(late_utc, "Asia/Tokyo") == date(2024, 12, 1)

    def test_already_served_depends_on_zone(self):
        late_utc = datetime(2024, 11, 30, 23, 30)
        assert already_served(late_utc, date(2024, 12, 1), "UTC") is False
        assert already_served(late_utc, date(2024, 12, 1), "Asia/Tokyo") is True

    def test_never_served(self):
        assert already_served(None, date(2024, 12, 1)) is False

    def test_today_for_zone_from_explicit_now(self):
        now = datetime(2024, 6, 30, 23, 0)
        assert today_for_zone("UTC", now=now) == date(2024, 6, 30)
        assert today_for_zone("Europe/London", now=now) == date(2024, 7, 1)

    def test_default_zone_comes_from_settings(self, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "REMINDER_TIMEZONE", "Asia/Tokyo")
        assert today_for_zone(now=datetime(2024, 11, 30, 23, 30)) == date(2024, 12, 1)
