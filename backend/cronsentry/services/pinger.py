"""Ping service - inbound signals from scheduled jobs."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select

from ..database import async_session
from ..exceptions import CheckNotFound
from ..models import Check, Ping
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock
from .alerter import AlertEvent, alerter_service
from .check_state import PingMeta, apply_ping, truncate_output
from .history import record_status_event

logger = logging.getLogger(__name__)


@dataclass
class SignalResult:
    check_id: int
    status: str
    changed: bool


class PingService:
    """Applies pings to checks and emits the resulting alert events."""

    def __init__(self, session_factory=None, alerter=None):
        self.session_factory = session_factory or async_session
        self.alerter = alerter or alerter_service

    async def signal(self, slug: str, meta: PingMeta) -> SignalResult:
        """Record a ping for the check with this slug.

        Raises:
            CheckNotFound: no check has this slug
        """
        result, events = await retry_on_lock(lambda: self._signal_once(slug, meta))
        for event in events:
            self.alerter.notify(event)
        return result

    async def _signal_once(self, slug: str, meta: PingMeta):
        async with self.session_factory() as session:
            row = await session.execute(
                select(Check).where(Check.slug == slug).with_for_update()
            )
            check = row.scalar_one_or_none()
            if check is None:
                raise CheckNotFound(slug)

            now = utcnow()
            outcome = apply_ping(check, meta, now)

            session.add(Ping(
                check_id=check.id,
                timestamp=now,
                kind=meta.kind,
                source_ip=meta.source_ip,
                user_agent=meta.user_agent,
                duration_ms=outcome.duration_ms if not meta.start else None,
                exit_code=meta.exit_code,
                output=truncate_output(meta.output),
                status=meta.explicit_status,
            ))

            transition = outcome.transition
            if transition is not None:
                await record_status_event(session, transition.new, now, check_id=check.id)

            await session.commit()

            events: List[AlertEvent] = []
            if not check.paused:
                if transition is not None and transition.alert_kind:
                    events.append(self._event(check, transition.alert_kind, {
                        "previousStatus": transition.previous,
                        "exitCode": meta.exit_code,
                    }))
                if outcome.slow:
                    events.append(self._event(check, "check.slow", {
                        "durationMs": outcome.duration_ms,
                        "maxDurationSeconds": check.max_duration_seconds,
                    }))

            if transition is not None:
                logger.info(f"Check {check.id} ({check.name}): {transition.previous} -> {transition.new} by ping")

            return SignalResult(check_id=check.id, status=check.status, changed=transition is not None), events

    @staticmethod
    def _event(check: Check, kind: str, detail: Optional[dict] = None) -> AlertEvent:
        return AlertEvent(
            kind=kind,
            entity_id=check.id,
            entity_name=check.name,
            owner_id=check.owner_id,
            detail=detail or {},
            webhook_url=check.webhook_url,
        )


# Global instance
ping_service = PingService()
