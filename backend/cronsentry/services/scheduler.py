"""Scheduler service - the periodic sweep over checks and HTTP monitors.

Design:
- One sweep tick is a bounded batch: enumerate candidates, push them on a
  queue, drain it with a fixed pool of workers
- Workers stop picking up new entities once the tick's deadline passes; the
  leftovers are counted as deferred and picked up by the next tick
- Every entity is read, decided and written in isolation. Writes are
  conditional on the state that was read, so a concurrent ping or an
  overlapping sweep turns a stale decision into a no-op
- Alerts go out only after the entity's transaction has committed
"""
import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings, worker_pool_size
from ..database import async_session
from ..exceptions import ConfigurationError, SweepError
from ..models import Check, HttpMonitor, MonitorCheck
from ..schemas.sweep import SweepReport
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock
from .alerter import AlertEvent, alerter_service
from .check_state import apply_overdue
from .checker import ProbeResult, checker_service
from .history import monitor_window_stats, prune_history, record_status_event
from .monitor_state import apply_probe_result
from .schedule import evaluate

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_HOURS = 1


def is_monitor_due(monitor, now: datetime) -> bool:
    """A monitor is due when never checked or its interval has elapsed."""
    if monitor.last_checked_at is None:
        return True
    return now >= monitor.last_checked_at + timedelta(seconds=monitor.interval_seconds)


class SchedulerService:
    """Runs sweeps on a fixed cadence and on demand."""

    def __init__(
        self,
        session_factory=None,
        checker=None,
        alerter=None,
        pool_size: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        alert_on_degraded: Optional[bool] = None,
    ):
        self.session_factory = session_factory or async_session
        self.checker = checker or checker_service
        self.alerter = alerter or alerter_service
        self.pool_size = pool_size or worker_pool_size()
        self.deadline_seconds = deadline_seconds or settings.sweep_deadline_seconds
        self.alert_on_degraded = settings.alert_on_degraded if alert_on_degraded is None else alert_on_degraded
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._in_flight: Set[Tuple[str, int]] = set()

    def start(self):
        """Start the sweep and cleanup jobs."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(seconds=settings.sweep_interval_seconds),
            id="sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.sweep_interval_seconds,
        )
        self.scheduler.add_job(
            self._cleanup_job,
            trigger=IntervalTrigger(hours=CLEANUP_INTERVAL_HOURS),
            id="cleanup_history",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (tick={settings.sweep_interval_seconds}s, "
            f"workers={self.pool_size}, deadline={self.deadline_seconds}s)"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _sweep_job(self):
        try:
            await self.run_sweep()
        except SweepError as e:
            logger.error(f"Sweep failed: {e}")

    async def _cleanup_job(self):
        try:
            await self.cleanup_history()
        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up history: {e}")

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Evaluate every candidate check and probe every due monitor once.

        ``now`` pins the clock for the whole tick (tests, replays).

        Raises:
            SweepError: the candidate set could not be loaded; nothing was processed
        """
        started = time.monotonic()
        clock: Callable[[], datetime] = (lambda: now) if now is not None else utcnow
        report = SweepReport(timestamp=clock())

        try:
            check_ids, monitor_ids = await self._load_candidates(clock())
        except SQLAlchemyError as e:
            raise SweepError(f"Could not enumerate entities: {e}") from e

        queue: asyncio.Queue = asyncio.Queue()
        for check_id in check_ids:
            queue.put_nowait(("check", check_id))
        for monitor_id in monitor_ids:
            queue.put_nowait(("monitor", monitor_id))

        deadline = started + self.deadline_seconds
        worker_count = min(self.pool_size, queue.qsize())
        if worker_count:
            await asyncio.gather(*[
                self._worker(queue, deadline, clock, report) for _ in range(worker_count)
            ])

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Sweep complete: {report.checks_evaluated} checks ({report.checks_down} down), "
            f"{report.monitors_probed} monitors ({report.monitors_down} down, "
            f"{report.monitors_recovered} recovered, {report.monitors_degraded} degraded), "
            f"{report.deferred} deferred, {report.errors} errors in {report.duration_ms}ms"
        )
        return report

    async def _load_candidates(self, now: datetime):
        async with self.session_factory() as session:
            checks = await session.execute(
                select(Check.id).where(
                    Check.paused.is_(False),
                    Check.status != "new",
                    Check.last_ping_at.is_not(None),
                )
            )
            monitors = await session.execute(
                select(HttpMonitor).where(HttpMonitor.is_enabled.is_(True))
            )
            due = [m.id for m in monitors.scalars().all() if is_monitor_due(m, now)]
            return list(checks.scalars().all()), due

    async def _worker(self, queue: asyncio.Queue, deadline: float, clock, report: SweepReport):
        while True:
            try:
                kind, entity_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if time.monotonic() >= deadline:
                report.deferred += 1
                continue

            key = (kind, entity_id)
            if key in self._in_flight:
                # An overlapping sweep owns this entity right now
                continue

            self._in_flight.add(key)
            try:
                if kind == "check":
                    if await retry_on_lock(lambda: self._process_check(entity_id, clock, report)):
                        report.checks_evaluated += 1
                else:
                    await self._process_monitor(entity_id, clock, report)
            except Exception as e:
                report.errors += 1
                logger.error(f"Error processing {kind} {entity_id}: {e}")
            finally:
                self._in_flight.discard(key)

    async def _process_check(self, check_id: int, clock, report: SweepReport) -> bool:
        """Mark one check down when it is overdue. Returns False when it was skipped."""
        async with self.session_factory() as session:
            check = await session.get(Check, check_id)
            if check is None or check.paused:
                return False
            session.expunge(check)

            now = clock()
            verdict = evaluate(check, now)

            observed_status = check.status
            observed_ping = check.last_ping_at
            config_changed = verdict.config_error != check.config_error
            transition = apply_overdue(check, verdict, now)
            if transition is None and not config_changed:
                return True

            values = {"config_error": verdict.config_error}
            if transition is not None:
                values["status"] = transition.new
            result = await session.execute(
                update(Check)
                .where(
                    Check.id == check_id,
                    Check.status == observed_status,
                    Check.last_ping_at == observed_ping,
                    Check.paused.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # A ping or another sweep got there first
                await session.rollback()
                return True

            if transition is not None:
                await record_status_event(session, transition.new, now, check_id=check_id)
            await session.commit()

        if transition is not None:
            report.checks_down += 1
            logger.info(f"Check {check.id} ({check.name}) is overdue, marked down")
            self.alerter.notify(AlertEvent(
                kind=transition.alert_kind,
                entity_id=check.id,
                entity_name=check.name,
                owner_id=check.owner_id,
                detail={
                    "checkId": check.id,
                    "checkName": check.name,
                    "lastPingAt": observed_ping.isoformat() + "Z",
                    "expectedIntervalMs": verdict.expected_interval_ms,
                },
                webhook_url=check.webhook_url,
            ))
        return True

    async def _process_monitor(self, monitor_id: int, clock, report: SweepReport):
        """Probe one monitor and fold the result into its state."""
        async with self.session_factory() as session:
            monitor = await session.get(HttpMonitor, monitor_id)
            if monitor is None or not monitor.is_enabled:
                return
            now = clock()
            if not is_monitor_due(monitor, now):
                return
            session.expunge(monitor)

        observed_checked_at = monitor.last_checked_at
        try:
            result = await self.checker.execute(monitor)
        except ConfigurationError as e:
            # Never probe a disallowed target; the refusal itself counts as a failure
            logger.warning(f"Monitor {monitor_id} refused before probing: {e}")
            result = ProbeResult(status="failure", response_time_ms=0, error=str(e))
        report.monitors_probed += 1

        transition = apply_probe_result(monitor, result, now, self.alert_on_degraded)

        async def write():
            async with self.session_factory() as session:
                session.add(MonitorCheck(
                    monitor_id=monitor_id,
                    timestamp=now,
                    status=result.status,
                    status_code=result.status_code,
                    response_time_ms=result.response_time_ms,
                    error=result.error,
                    response_body_preview=result.response_body,
                ))
                await session.flush()
                uptime, avg_latency, _, _ = await monitor_window_stats(session, monitor_id, now)

                if observed_checked_at is None:
                    unchanged = HttpMonitor.last_checked_at.is_(None)
                else:
                    unchanged = HttpMonitor.last_checked_at == observed_checked_at
                updated = await session.execute(
                    update(HttpMonitor)
                    .where(HttpMonitor.id == monitor_id, unchanged)
                    .values(
                        status=monitor.status,
                        consecutive_failures=monitor.consecutive_failures,
                        last_checked_at=monitor.last_checked_at,
                        last_response_time_ms=monitor.last_response_time_ms,
                        last_status_code=monitor.last_status_code,
                        last_error=monitor.last_error,
                        uptime_percent_24h=uptime,
                        avg_response_time_24h=avg_latency,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount != 1:
                    await session.rollback()
                    return False, None

                event = None
                if transition.changed:
                    event = await record_status_event(session, transition.new, now, monitor_id=monitor_id)
                await session.commit()
                return True, event

        applied, status_event = await retry_on_lock(write)
        if not applied:
            logger.info(f"Monitor {monitor_id} was updated concurrently, result discarded")
            return

        if transition.new == "down" and transition.previous != "down":
            report.monitors_down += 1
        elif transition.new == "up" and transition.previous in ("down", "degraded"):
            report.monitors_recovered += 1
        elif transition.new == "degraded" and transition.previous != "degraded":
            report.monitors_degraded += 1

        if transition.changed:
            logger.info(f"Monitor {monitor_id} ({monitor.name}): {transition.previous} -> {transition.new}")

        if transition.alert_kind:
            detail = {
                "monitorId": monitor_id,
                "name": monitor.name,
                "url": monitor.url,
                "error": result.error,
                "consecutiveFailures": transition.consecutive_failures,
                "statusCode": result.status_code,
                "responseTimeMs": result.response_time_ms,
            }
            if transition.alert_kind == "monitor.up" and status_event is not None:
                detail["downtimeSeconds"] = status_event.duration_seconds
            self.alerter.notify(AlertEvent(
                kind=transition.alert_kind,
                entity_id=monitor_id,
                entity_name=monitor.name,
                owner_id=monitor.owner_id,
                detail=detail,
                webhook_url=monitor.webhook_url,
            ))

    async def cleanup_history(self, now: Optional[datetime] = None) -> dict:
        """Delete history rows older than the retention window."""
        cutoff = (now or utcnow()) - timedelta(days=settings.history_retention_days)
        async with self.session_factory() as session:
            counts = await prune_history(session, cutoff)
            await session.commit()
        logger.info(f"Cleaned up history older than {cutoff.isoformat()}: {counts}")
        return counts


# Global instance
scheduler_service = SchedulerService()
