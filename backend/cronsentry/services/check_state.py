"""Check state machine - new -> up <-> down, driven by pings and the sweep.

These functions mutate the in-memory Check only; persisting the row, the
Ping and the StatusEvent is the caller's job, after the decision is made.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .schedule import ScheduleVerdict
from ..utils.clock import elapsed_ms

OUTPUT_MAX_BYTES = 10 * 1024


@dataclass
class PingMeta:
    """What a job reported with its ping."""
    start: bool = False
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None
    output: Optional[str] = None
    explicit_status: Optional[str] = None  # success, failure
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        if self.explicit_status == "failure":
            return True
        return self.exit_code is not None and self.exit_code != 0

    @property
    def kind(self) -> str:
        if self.start:
            return "start"
        return "failure" if self.is_failure else "success"


@dataclass
class CheckTransition:
    """A status change decided for one check."""
    previous: str
    new: str
    timestamp: datetime
    alert_kind: Optional[str] = None  # check.down, check.up; None for new -> up


@dataclass
class PingOutcome:
    transition: Optional[CheckTransition] = None
    duration_ms: Optional[int] = None
    slow: bool = False


def truncate_output(output: Optional[str]) -> Optional[str]:
    if output is None:
        return None
    encoded = output.encode("utf-8")
    if len(encoded) <= OUTPUT_MAX_BYTES:
        return output
    return encoded[:OUTPUT_MAX_BYTES].decode("utf-8", errors="ignore")


def _transition(check, new_status: str, now: datetime) -> Optional[CheckTransition]:
    previous = check.status
    if previous == new_status:
        return None
    check.status = new_status
    if new_status == "down":
        alert_kind = "check.down"
    elif previous == "down":
        alert_kind = "check.up"
    else:
        alert_kind = None
    return CheckTransition(previous=previous, new=new_status, timestamp=now, alert_kind=alert_kind)


def apply_ping(check, meta: PingMeta, now: datetime) -> PingOutcome:
    """Consume an inbound ping.

    A start ping only marks the job as running. A completion ping sets the
    baseline and moves the check up, or down when the job reported failure.
    """
    if meta.start:
        check.last_started_at = now
        return PingOutcome()

    duration_ms = meta.duration_ms
    if duration_ms is None and check.last_started_at is not None:
        duration_ms = elapsed_ms(check.last_started_at, now)
    check.last_started_at = None

    check.last_ping_at = now
    if duration_ms is not None:
        check.last_duration_ms = duration_ms

    slow = (
        duration_ms is not None
        and check.max_duration_seconds is not None
        and duration_ms > check.max_duration_seconds * 1000
    )

    new_status = "down" if meta.is_failure else "up"
    return PingOutcome(transition=_transition(check, new_status, now), duration_ms=duration_ms, slow=slow)


def apply_overdue(check, verdict: ScheduleVerdict, now: datetime) -> Optional[CheckTransition]:
    """Mark an overdue check down; already-down checks are left untouched."""
    if not verdict.overdue or check.status == "down":
        return None
    return _transition(check, "down", now)
