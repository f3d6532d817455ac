"""Alerter service - fire-and-forget fan-out of status change events.

The core calls ``notify`` after a transition has been committed. Delivery runs
in a background task, so a slow or failing channel never blocks the sweep.
Failures are logged and recorded, never retried here.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

import httpx

from ..config import settings
from ..database import async_session
from ..models import Alert
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

EVENT_KINDS = (
    "check.down",
    "check.up",
    "check.slow",
    "monitor.down",
    "monitor.degraded",
    "monitor.up",
)

WEBHOOK_TIMEOUT_SECONDS = 10


@dataclass
class AlertEvent:
    """Payload handed to the dispatcher for one status change."""
    kind: str
    entity_id: int
    entity_name: str
    owner_id: str
    detail: Dict[str, Any] = field(default_factory=dict)
    webhook_url: Optional[str] = None

    @property
    def entity_type(self) -> str:
        return self.kind.split(".", 1)[0]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "entityName": self.entity_name,
            "ownerId": self.owner_id,
            "detail": self.detail,
            "timestamp": utcnow().isoformat() + "Z",
        }


class AlerterService:
    """Dispatches alert events to the entity webhook and the global webhook."""

    def __init__(self, session_factory=None, global_webhook_url: Optional[str] = None):
        self.session_factory = session_factory or async_session
        self.global_webhook_url = global_webhook_url if global_webhook_url is not None else settings.alert_webhook_url
        self._tasks: Set[asyncio.Task] = set()

    def notify(self, event: AlertEvent) -> None:
        """Schedule delivery and return immediately."""
        if event.kind not in EVENT_KINDS:
            logger.warning(f"Dropping alert with unknown kind {event.kind}")
            return
        logger.info(f"Alert {event.kind} for {event.entity_type} {event.entity_id} ({event.entity_name})")
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except RuntimeError:
            logger.error(f"No running event loop, alert {event.kind} for {event.entity_id} not delivered")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _deliver(self, event: AlertEvent) -> None:
        payload = event.to_payload()
        targets = []
        if event.webhook_url:
            targets.append(("webhook", event.webhook_url))
        if self.global_webhook_url:
            targets.append(("global_webhook", self.global_webhook_url))

        records = []
        for channel, url in targets:
            success = await self._send_webhook(url, payload)
            records.append(Alert(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                kind=event.kind,
                channel=channel,
                payload=json.dumps(payload),
                success=1 if success else 0,
            ))

        if not records:
            return
        try:
            async with self.session_factory() as session:
                session.add_all(records)
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to record alert {event.kind} for {event.entity_id}: {e}")

    async def _send_webhook(self, url: str, payload: dict) -> bool:
        """Send a webhook POST request."""
        try:
            async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
                response = await client.post(url, json=payload)
            if response.status_code < 400:
                logger.info(f"Webhook sent: {payload['event']} for {payload['entityName']}")
                return True
            logger.warning(f"Webhook returned {response.status_code}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send webhook: {e}")
            return False


# Global instance
alerter_service = AlerterService()
