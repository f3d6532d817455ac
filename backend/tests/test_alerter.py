"""Alert dispatcher tests."""
import json

import httpx
from sqlalchemy import select

from cronsentry.models import Alert
from cronsentry.services import alerter as alerter_module
from cronsentry.services.alerter import AlertEvent, AlerterService


def make_event(**overrides):
    fields = dict(
        kind="check.down",
        entity_id=7,
        entity_name="nightly backup",
        owner_id="owner-1",
        detail={"checkId": 7, "checkName": "nightly backup"},
        webhook_url="https://hooks.example.com/check",
    )
    fields.update(overrides)
    return AlertEvent(**fields)


def patch_webhooks(monkeypatch, status_code=200):
    """Route the alerter's outbound webhooks through a MockTransport."""
    sent = []

    def handler(request):
        sent.append((str(request.url), json.loads(request.content)))
        return httpx.Response(status_code)

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(alerter_module.httpx, "AsyncClient", client_factory)
    return sent


class TestAlerterService:
    async def test_delivers_to_entity_and_global_webhooks(self, session_factory, monkeypatch):
        sent = patch_webhooks(monkeypatch)
        service = AlerterService(session_factory=session_factory, global_webhook_url="https://hooks.example.com/all")

        service.notify(make_event())
        await service.drain()

        assert [url for url, _ in sent] == ["https://hooks.example.com/check", "https://hooks.example.com/all"]
        payload = sent[0][1]
        assert payload["event"] == "check.down"
        assert payload["entityType"] == "check"
        assert payload["ownerId"] == "owner-1"
        assert payload["detail"]["checkName"] == "nightly backup"

        async with session_factory() as session:
            alerts = (await session.execute(select(Alert).order_by(Alert.id))).scalars().all()
        assert [a.channel for a in alerts] == ["webhook", "global_webhook"]
        assert all(a.success == 1 for a in alerts)

    async def test_failed_delivery_is_recorded_not_raised(self, session_factory, monkeypatch):
        patch_webhooks(monkeypatch, status_code=500)
        service = AlerterService(session_factory=session_factory, global_webhook_url="")

        service.notify(make_event(kind="monitor.down"))
        await service.drain()

        async with session_factory() as session:
            alert = (await session.execute(select(Alert))).scalar_one()
        assert alert.success == 0
        assert alert.entity_type == "monitor"

    async def test_unknown_kind_is_dropped(self, session_factory, monkeypatch):
        sent = patch_webhooks(monkeypatch)
        service = AlerterService(session_factory=session_factory, global_webhook_url="")
        service.notify(make_event(kind="check.exploded"))
        await service.drain()
        assert sent == []

    async def test_notify_returns_before_delivery(self, session_factory, monkeypatch):
        patch_webhooks(monkeypatch)
        service = AlerterService(session_factory=session_factory, global_webhook_url="")
        service.notify(make_event())
        assert len(service._tasks) == 1
        await service.drain()
        assert len(service._tasks) == 0
