"""Schedule evaluation tests."""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from cronsentry.exceptions import ConfigurationError
from cronsentry.services.schedule import (
    DEFAULT_INTERVAL_MINUTES,
    PRESET_MINUTES,
    evaluate,
    is_overdue,
    next_cron_occurrence,
    validate_schedule,
)

T = datetime(2026, 1, 1, 12, 0, 0)


def make_check(**overrides):
    fields = dict(
        id=1,
        status="up",
        schedule_type="preset",
        schedule="every 5 minutes",
        cron_expression=None,
        timezone="UTC",
        grace_period_minutes=2,
        last_ping_at=T,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestPresetSchedules:
    def test_new_check_is_never_overdue(self):
        check = make_check(status="new", last_ping_at=None)
        for elapsed in (timedelta(0), timedelta(hours=1), timedelta(days=365)):
            assert not is_overdue(check, T + elapsed)

    def test_new_status_wins_over_stale_ping(self):
        check = make_check(status="new")
        assert not is_overdue(check, T + timedelta(days=2))

    def test_overdue_boundary_is_interval_plus_grace(self):
        check = make_check()
        assert not is_overdue(check, T + timedelta(minutes=6, seconds=59))
        assert not is_overdue(check, T + timedelta(minutes=7))
        assert is_overdue(check, T + timedelta(minutes=7, milliseconds=1))
        assert is_overdue(check, T + timedelta(minutes=7, seconds=1))

    @pytest.mark.parametrize("preset,minutes", [
        ("every 1 minute", 1),
        ("every hour", 60),
        ("every day", 1440),
        ("every week", 10080),
    ])
    def test_preset_intervals(self, preset, minutes):
        check = make_check(schedule=preset, grace_period_minutes=0)
        assert PRESET_MINUTES[preset] == minutes
        assert not is_overdue(check, T + timedelta(minutes=minutes))
        assert is_overdue(check, T + timedelta(minutes=minutes, seconds=1))

    def test_unknown_preset_falls_back_to_hourly(self):
        check = make_check(schedule="every fortnight", grace_period_minutes=0)
        verdict = evaluate(check, T + timedelta(minutes=30))
        assert not verdict.overdue
        assert verdict.interval_minutes == DEFAULT_INTERVAL_MINUTES
        assert "every fortnight" in verdict.config_error

    def test_grace_period_is_clamped(self):
        check = make_check(schedule="every 1 minute", grace_period_minutes=500)
        verdict = evaluate(check, T)
        assert verdict.expected_interval_ms == (1 + 60) * 60000

        check = make_check(schedule="every 1 minute", grace_period_minutes=-10)
        assert evaluate(check, T).expected_interval_ms == 60000


class TestCronSchedules:
    def test_hourly_cron_uses_next_fire_time(self):
        check = make_check(schedule_type="cron", cron_expression="0 * * * *", grace_period_minutes=5)
        assert not is_overdue(check, T + timedelta(minutes=64))
        assert is_overdue(check, T + timedelta(minutes=65, seconds=1))

    def test_interval_is_measured_from_last_ping(self):
        # Pinged at 12:10, next fire at 13:00
        check = make_check(
            schedule_type="cron",
            cron_expression="0 * * * *",
            grace_period_minutes=0,
            last_ping_at=T + timedelta(minutes=10),
        )
        verdict = evaluate(check, T + timedelta(minutes=40))
        assert verdict.interval_minutes == 50
        assert not verdict.overdue

    def test_timezone_is_respected(self):
        # 09:00 in New York is 14:00 UTC in January
        after = datetime(2026, 1, 1, 12, 0, 0)
        fire = next_cron_occurrence("0 9 * * *", "America/New_York", after)
        assert fire == datetime(2026, 1, 1, 14, 0, 0)

    def test_next_occurrence_is_strictly_after(self):
        fire = next_cron_occurrence("0 * * * *", "UTC", T)
        assert fire == T + timedelta(hours=1)

    def test_invalid_cron_fails_closed_to_hourly(self):
        check = make_check(schedule_type="cron", cron_expression="not a cron", grace_period_minutes=0)
        verdict = evaluate(check, T + timedelta(minutes=61))
        assert verdict.overdue
        assert verdict.interval_minutes == DEFAULT_INTERVAL_MINUTES
        assert verdict.config_error


class TestValidateSchedule:
    def test_accepts_valid_descriptors(self):
        validate_schedule("preset", "every 5 minutes", None, "UTC")
        validate_schedule("cron", None, "*/15 * * * *", "Europe/Berlin")

    @pytest.mark.parametrize("schedule_type,schedule,cron,tz", [
        ("preset", "every 3 minutes", None, "UTC"),
        ("preset", "every hour", None, "Mars/Olympus"),
        ("preset", "every hour", None, None),
        ("cron", None, "* * * *", "UTC"),
        ("cron", None, "61 * * * *", "UTC"),
        ("cron", None, None, "UTC"),
        ("weekly", "every hour", None, "UTC"),
    ])
    def test_rejects_invalid_descriptors(self, schedule_type, schedule, cron, tz):
        with pytest.raises(ConfigurationError):
            validate_schedule(schedule_type, schedule, cron, tz)
