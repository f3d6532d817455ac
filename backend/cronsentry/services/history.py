"""History writes and reads shared by the ping path and the sweep."""
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MonitorCheck, Ping, StatusEvent
from .monitor_state import ROLLUP_WINDOW_HOURS, compute_rollups


async def last_status_event(
    session: AsyncSession,
    check_id: Optional[int] = None,
    monitor_id: Optional[int] = None,
) -> Optional[StatusEvent]:
    query = select(StatusEvent)
    if check_id is not None:
        query = query.where(StatusEvent.check_id == check_id)
    else:
        query = query.where(StatusEvent.monitor_id == monitor_id)
    result = await session.execute(
        query.order_by(StatusEvent.timestamp.desc(), StatusEvent.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def record_status_event(
    session: AsyncSession,
    status: str,
    now: datetime,
    check_id: Optional[int] = None,
    monitor_id: Optional[int] = None,
) -> StatusEvent:
    """Append a StatusEvent carrying the time spent in the previous status."""
    previous = await last_status_event(session, check_id=check_id, monitor_id=monitor_id)
    duration = None
    if previous is not None and previous.timestamp is not None:
        duration = max(0, int((now - previous.timestamp).total_seconds()))

    event = StatusEvent(
        check_id=check_id,
        monitor_id=monitor_id,
        status=status,
        timestamp=now,
        duration_seconds=duration,
    )
    session.add(event)
    return event


async def monitor_window_stats(
    session: AsyncSession,
    monitor_id: int,
    now: datetime,
    hours: int = ROLLUP_WINDOW_HOURS,
) -> Tuple[Optional[float], Optional[float], int, int]:
    """Returns (uptime_percent, avg_response_ms, total, successes) for the window."""
    cutoff = now - timedelta(hours=hours)
    result = await session.execute(
        select(MonitorCheck.status, MonitorCheck.response_time_ms).where(
            MonitorCheck.monitor_id == monitor_id,
            MonitorCheck.timestamp >= cutoff,
        )
    )
    samples = result.all()
    uptime, avg_latency = compute_rollups((row[0], row[1]) for row in samples)
    successes = sum(1 for row in samples if row[0] == "success")
    return uptime, avg_latency, len(samples), successes


async def prune_history(session: AsyncSession, cutoff: datetime) -> Dict[str, int]:
    """Delete history rows older than cutoff; the caller commits."""
    counts = {}
    for name, model in (
        ("pings", Ping),
        ("status_events", StatusEvent),
        ("monitor_checks", MonitorCheck),
    ):
        result = await session.execute(delete(model).where(model.timestamp < cutoff))
        counts[name] = result.rowcount or 0
    return counts
