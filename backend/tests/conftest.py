"""
Shared fixtures.

Every test gets its own file-backed SQLite database, a recording alerter in
place of webhook delivery, and httpx MockTransport in place of the network.
"""
import os
import tempfile
from typing import AsyncGenerator, Callable

# Must be set before the app package is imported
os.environ.setdefault("DATA_PATH", tempfile.mkdtemp(prefix="cronsentry-test-"))
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("ENCRYPTION_KEY", None)
os.environ.pop("CRON_SECRET", None)

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cronsentry.database import Base, build_engine
from cronsentry.models import Check, HttpMonitor
from cronsentry.services.checker import ProbeExecutor
from cronsentry.services.pinger import PingService
from cronsentry.services.scheduler import SchedulerService


class RecordingAlerter:
    """Collects events instead of delivering them."""

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    async def drain(self):
        pass

    def kinds(self):
        return [e.kind for e in self.events]


class ProbeTarget:
    """Scriptable fake HTTP endpoint behind httpx.MockTransport."""

    def __init__(self, status_code: int = 200, body: str = "OK"):
        self.status_code = status_code
        self.body = body
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ── Database ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def reload(session_factory):
    """Read a row back through a fresh session."""
    async def _reload(model, entity_id):
        async with session_factory() as session:
            return await session.get(model, entity_id)
    return _reload


@pytest.fixture
def make_check(session_factory) -> Callable:
    async def _make_check(**overrides) -> Check:
        fields = dict(
            owner_id="owner-1",
            name="nightly backup",
            slug=f"slug{len(overrides)}{os.urandom(3).hex()}",
            schedule_type="preset",
            schedule="every 5 minutes",
            timezone="UTC",
            grace_period_minutes=2,
            status="new",
            paused=False,
            tags=[],
        )
        fields.update(overrides)
        async with session_factory() as session:
            check = Check(**fields)
            session.add(check)
            await session.commit()
            await session.refresh(check)
            return check
    return _make_check


@pytest.fixture
def make_monitor(session_factory) -> Callable:
    async def _make_monitor(**overrides) -> HttpMonitor:
        fields = dict(
            owner_id="owner-1",
            name="api health",
            url="https://api.example.com/health",
            method="GET",
            expected_status_codes=[200],
            timeout_ms=5000,
            interval_seconds=60,
            alert_after_failures=2,
            consecutive_failures=0,
            status="pending",
            is_enabled=True,
            tags=[],
        )
        fields.update(overrides)
        async with session_factory() as session:
            monitor = HttpMonitor(**fields)
            session.add(monitor)
            await session.commit()
            await session.refresh(monitor)
            return monitor
    return _make_monitor


# ── Services ──────────────────────────────────────────────────────────

@pytest.fixture
def alerter() -> RecordingAlerter:
    return RecordingAlerter()


@pytest.fixture
def target() -> ProbeTarget:
    return ProbeTarget()


@pytest.fixture
def checker(target) -> ProbeExecutor:
    return ProbeExecutor(transport=target.transport(), resolve_dns=False)


@pytest.fixture
def ping_service(session_factory, alerter) -> PingService:
    return PingService(session_factory=session_factory, alerter=alerter)


@pytest.fixture
def scheduler(session_factory, checker, alerter) -> SchedulerService:
    return SchedulerService(
        session_factory=session_factory,
        checker=checker,
        alerter=alerter,
        pool_size=4,
        deadline_seconds=30,
    )


# ── API ───────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, ping_service, scheduler, checker) -> AsyncGenerator[httpx.AsyncClient, None]:
    from cronsentry.database import get_db
    from cronsentry.main import app
    from cronsentry.routers.http_monitors import get_checker
    from cronsentry.routers.ping import get_ping_service
    from cronsentry.routers.sweep import get_scheduler
    from cronsentry.services.rate_limiter import InMemoryRateLimiter, get_rate_limiter

    async def override_get_db():
        async with session_factory() as session:
            yield session

    limiter = InMemoryRateLimiter(limit=1000, window_seconds=60)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ping_service] = lambda: ping_service
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_checker] = lambda: checker
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers() -> dict:
    return {"X-Owner-Id": "owner-1"}
