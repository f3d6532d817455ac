"""Monitor state machine - pending -> up <-> degraded <-> down with hysteresis."""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Tuple

from .checker import ProbeResult

ROLLUP_WINDOW_HOURS = 24


@dataclass
class MonitorTransition:
    """What one probe result did to a monitor."""
    previous: str
    new: str
    consecutive_failures: int
    alert_kind: Optional[str] = None  # monitor.down, monitor.up, monitor.degraded

    @property
    def changed(self) -> bool:
        return self.previous != self.new


def apply_probe_result(
    monitor,
    result: ProbeResult,
    now: datetime,
    alert_on_degraded: bool = False,
) -> MonitorTransition:
    """Fold a probe result into the monitor's status and failure counter.

    The monitor only goes down once consecutive failures reach
    alert_after_failures; below that it is degraded. Down stays down until a
    success, and the counter keeps growing while down.
    """
    previous = monitor.status

    monitor.last_checked_at = now
    monitor.last_response_time_ms = result.response_time_ms
    monitor.last_status_code = result.status_code
    monitor.last_error = result.error

    alert_kind = None
    if result.ok:
        monitor.consecutive_failures = 0
        new = "up"
        if previous in ("down", "degraded"):
            alert_kind = "monitor.up"
    else:
        monitor.consecutive_failures = (monitor.consecutive_failures or 0) + 1
        threshold = max(1, monitor.alert_after_failures or 1)
        if monitor.consecutive_failures >= threshold or previous == "down":
            new = "down"
            if previous != "down":
                alert_kind = "monitor.down"
        else:
            new = "degraded"
            if previous != "degraded" and alert_on_degraded:
                alert_kind = "monitor.degraded"

    monitor.status = new
    return MonitorTransition(
        previous=previous,
        new=new,
        consecutive_failures=monitor.consecutive_failures,
        alert_kind=alert_kind,
    )


def compute_rollups(samples: Iterable[Tuple[str, Optional[int]]]) -> Tuple[Optional[float], Optional[float]]:
    """Uptime percent and mean latency over (status, response_time_ms) samples.

    An empty window yields (None, None) rather than 0 or 100.
    """
    total = 0
    successes = 0
    latencies = []
    for status, response_time_ms in samples:
        total += 1
        if status == "success":
            successes += 1
        if response_time_ms is not None:
            latencies.append(response_time_ms)

    if total == 0:
        return None, None

    uptime = round(successes / total * 100, 2)
    avg_latency = round(sum(latencies) / len(latencies), 2) if latencies else None
    return uptime, avg_latency
