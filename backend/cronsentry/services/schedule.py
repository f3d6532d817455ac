"""Schedule evaluator - decides whether a check's last ping is overdue.

Pure functions only: no database access, no network. Cron expressions are
evaluated with APScheduler's CronTrigger in the check's own timezone.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from ..exceptions import ConfigurationError
from ..utils.clock import as_aware, as_naive

logger = logging.getLogger(__name__)

PRESET_MINUTES = {
    "every 1 minute": 1,
    "every 2 minutes": 2,
    "every 5 minutes": 5,
    "every 10 minutes": 10,
    "every 15 minutes": 15,
    "every 30 minutes": 30,
    "every hour": 60,
    "every 2 hours": 120,
    "every 6 hours": 360,
    "every 12 hours": 720,
    "every day": 1440,
    "every week": 10080,
}

DEFAULT_PRESET = "every hour"
DEFAULT_INTERVAL_MINUTES = PRESET_MINUTES[DEFAULT_PRESET]

MAX_GRACE_PERIOD_MINUTES = 60


@dataclass
class ScheduleVerdict:
    """Outcome of evaluating one check against the clock."""
    overdue: bool
    interval_minutes: Optional[float] = None
    expected_interval_ms: Optional[int] = None
    config_error: Optional[str] = None


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid timezone: {name}") from e


def build_cron_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a standard 5-field crontab expression.

    Raises:
        ConfigurationError: the expression or the timezone is invalid
    """
    if not expression or len(expression.split()) != 5:
        raise ConfigurationError(f"Invalid cron expression: {expression!r} (expected 5 fields)")
    tz = load_timezone(timezone)
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression: {expression!r} ({e})") from e


def validate_schedule(
    schedule_type: str,
    schedule: Optional[str],
    cron_expression: Optional[str],
    timezone: str,
) -> None:
    """Reject a schedule descriptor that the sweep could not evaluate."""
    if schedule_type == "preset":
        if schedule not in PRESET_MINUTES:
            raise ConfigurationError(f"Invalid schedule preset: {schedule!r}")
        load_timezone(timezone)
    elif schedule_type == "cron":
        build_cron_trigger(cron_expression or "", timezone)
    else:
        raise ConfigurationError(f"Invalid schedule type: {schedule_type!r}")


def next_cron_occurrence(expression: str, timezone: str, after: datetime) -> datetime:
    """Next fire time strictly after ``after``, as naive UTC."""
    trigger = build_cron_trigger(expression, timezone)
    start = as_aware(after) + timedelta(microseconds=1)
    fire_time = trigger.get_next_fire_time(None, start)
    if fire_time is None:
        raise ConfigurationError(f"Cron expression never fires: {expression!r}")
    return as_naive(fire_time)


def resolve_interval_minutes(check) -> Tuple[float, Optional[str]]:
    """Expected minutes between pings for this check.

    Returns (minutes, config_error). Unusable schedules fail closed to the
    default hourly preset and report why.
    """
    if check.schedule_type == "cron":
        if check.last_ping_at is None:
            return float(DEFAULT_INTERVAL_MINUTES), None
        try:
            next_fire = next_cron_occurrence(
                check.cron_expression or "", check.timezone or "UTC", check.last_ping_at
            )
        except ConfigurationError as e:
            return float(DEFAULT_INTERVAL_MINUTES), str(e)
        return (next_fire - as_naive(check.last_ping_at)).total_seconds() / 60, None

    minutes = PRESET_MINUTES.get(check.schedule)
    if minutes is None:
        return float(DEFAULT_INTERVAL_MINUTES), f"Invalid schedule preset: {check.schedule!r}"
    return float(minutes), None


def evaluate(check, now: datetime) -> ScheduleVerdict:
    """Evaluate a check against ``now``.

    A check that has never pinged has no baseline and is never overdue.
    """
    if check.status == "new" or check.last_ping_at is None:
        return ScheduleVerdict(overdue=False)

    interval_minutes, config_error = resolve_interval_minutes(check)
    if config_error:
        logger.warning(f"Check {check.id} schedule fell back to {DEFAULT_PRESET}: {config_error}")

    grace = min(max(check.grace_period_minutes or 0, 0), MAX_GRACE_PERIOD_MINUTES)
    expected_interval_ms = int(round((interval_minutes + grace) * 60000))
    since_last_ping_ms = (as_naive(now) - as_naive(check.last_ping_at)).total_seconds() * 1000

    return ScheduleVerdict(
        overdue=since_last_ping_ms > expected_interval_ms,
        interval_minutes=interval_minutes,
        expected_interval_ms=expected_interval_ms,
        config_error=config_error,
    )


def is_overdue(check, now: datetime) -> bool:
    return evaluate(check, now).overdue
