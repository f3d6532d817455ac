"""HTTP monitor CRUD API endpoints."""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..exceptions import ConfigurationError
from ..models import HttpMonitor, MonitorCheck, StatusEvent
from ..schemas.check import StatusEventResponse
from ..schemas.http_monitor import (
    AssertionResultsResponse,
    HttpMonitorCreate,
    HttpMonitorUpdate,
    HttpMonitorResponse,
    MonitorAssertions,
    MonitorCheckResponse,
    MonitorStats,
    MonitorTestResponse,
)
from ..services.checker import ProbeExecutor, checker_service
from ..services.history import monitor_window_stats
from ..services.monitor_state import ROLLUP_WINDOW_HOURS
from ..utils.clock import utcnow
from ..utils.crypto import encrypt_body, encrypt_headers, encrypt_headers_keeping
from ..utils.security import MASK, mask_headers, validate_monitor_url_async
from .deps import get_owner_id, validate_webhook_target

router = APIRouter(prefix="/api/http-monitors", tags=["http-monitors"])


def get_checker() -> ProbeExecutor:
    return checker_service


def _to_response(monitor: HttpMonitor) -> HttpMonitorResponse:
    return HttpMonitorResponse(
        id=monitor.id,
        owner_id=monitor.owner_id,
        name=monitor.name,
        url=monitor.url,
        method=monitor.method,
        expected_status_codes=monitor.expected_status_codes or [],
        timeout_ms=monitor.timeout_ms,
        interval_seconds=monitor.interval_seconds,
        headers=mask_headers(monitor.headers),
        has_body=bool(monitor.body),
        content_type=monitor.content_type,
        assertions=MonitorAssertions.model_validate(monitor.assertions) if monitor.assertions else None,
        alert_after_failures=monitor.alert_after_failures,
        consecutive_failures=monitor.consecutive_failures,
        status=monitor.status,
        last_checked_at=monitor.last_checked_at,
        last_response_time_ms=monitor.last_response_time_ms,
        last_status_code=monitor.last_status_code,
        last_error=monitor.last_error,
        uptime_percent_24h=monitor.uptime_percent_24h,
        avg_response_time_24h=monitor.avg_response_time_24h,
        is_enabled=bool(monitor.is_enabled),
        webhook_url=monitor.webhook_url,
        tags=monitor.tags or [],
        created_at=monitor.created_at,
    )


async def _get_owned_monitor(db: AsyncSession, monitor_id: int, owner_id: str) -> HttpMonitor:
    result = await db.execute(
        select(HttpMonitor).where(HttpMonitor.id == monitor_id, HttpMonitor.owner_id == owner_id)
    )
    monitor = result.scalar_one_or_none()
    if not monitor:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


async def _validate_target(url: str, interval_seconds: int) -> None:
    if interval_seconds < settings.min_monitor_interval_seconds:
        raise HTTPException(
            status_code=422,
            detail=f"interval_seconds must be at least {settings.min_monitor_interval_seconds}",
        )
    try:
        await validate_monitor_url_async(url)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _masked_headers(
    incoming: Optional[Dict[str, str]],
    stored: Optional[Dict[str, str]],
) -> Dict[str, str]:
    """Stored values for the headers a client echoed back masked."""
    if not incoming or not stored:
        return {}
    return {
        name: stored[name]
        for name, value in incoming.items()
        if value == MASK and name in stored
    }


def _encrypt(headers: Optional[Dict[str, str]], body: Optional[str]):
    try:
        return encrypt_headers(headers), encrypt_body(body)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("", response_model=List[HttpMonitorResponse])
async def list_monitors(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """List the owner's HTTP monitors."""
    result = await db.execute(
        select(HttpMonitor).where(HttpMonitor.owner_id == owner_id).order_by(HttpMonitor.name)
    )
    return [_to_response(m) for m in result.scalars().all()]


@router.post("", response_model=HttpMonitorResponse, status_code=201)
async def create_monitor(
    data: HttpMonitorCreate,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a monitor. It is probed on the next sweep."""
    await _validate_target(data.url, data.interval_seconds)
    await validate_webhook_target(data.webhook_url)
    headers, body = _encrypt(data.headers, data.body)

    monitor = HttpMonitor(
        owner_id=owner_id,
        name=data.name,
        url=data.url,
        method=data.method,
        expected_status_codes=data.expected_status_codes,
        timeout_ms=data.timeout_ms,
        interval_seconds=data.interval_seconds,
        headers=headers,
        body=body,
        content_type=data.content_type,
        assertions=data.assertions.model_dump(exclude_none=True) if data.assertions else None,
        alert_after_failures=data.alert_after_failures,
        consecutive_failures=0,
        status="pending",
        is_enabled=True,
        webhook_url=data.webhook_url,
        tags=data.tags,
    )
    db.add(monitor)
    await db.commit()
    await db.refresh(monitor)
    return _to_response(monitor)


@router.get("/{monitor_id}", response_model=HttpMonitorResponse)
async def get_monitor(
    monitor_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await _get_owned_monitor(db, monitor_id, owner_id))


@router.put("/{monitor_id}", response_model=HttpMonitorResponse)
async def update_monitor(
    monitor_id: int,
    data: HttpMonitorUpdate,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Update a monitor; the URL and interval are re-validated."""
    monitor = await _get_owned_monitor(db, monitor_id, owner_id)
    changes = data.model_dump(exclude_unset=True)

    await _validate_target(
        changes.get("url") or monitor.url,
        changes.get("interval_seconds") or monitor.interval_seconds,
    )
    await validate_webhook_target(changes.get("webhook_url"))

    if "headers" in changes:
        try:
            changes["headers"] = encrypt_headers_keeping(
                data.headers, _masked_headers(data.headers, monitor.headers)
            )
        except ConfigurationError as e:
            raise HTTPException(status_code=422, detail=str(e))
    if "body" in changes:
        _, changes["body"] = _encrypt(None, data.body)
    if "assertions" in changes:
        changes["assertions"] = data.assertions.model_dump(exclude_none=True) if data.assertions else None

    for field, value in changes.items():
        setattr(monitor, field, value)

    await db.commit()
    await db.refresh(monitor)
    return _to_response(monitor)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(
    monitor_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a monitor along with its probe and status history."""
    monitor = await _get_owned_monitor(db, monitor_id, owner_id)
    await db.delete(monitor)
    await db.commit()


@router.post("/{monitor_id}/pause", response_model=HttpMonitorResponse)
async def pause_monitor(
    monitor_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    monitor = await _get_owned_monitor(db, monitor_id, owner_id)
    if not monitor.is_enabled:
        raise HTTPException(status_code=400, detail="Monitor is already paused")
    monitor.is_enabled = False
    await db.commit()
    await db.refresh(monitor)
    return _to_response(monitor)


@router.post("/{monitor_id}/resume", response_model=HttpMonitorResponse)
async def resume_monitor(
    monitor_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    monitor = await _get_owned_monitor(db, monitor_id, owner_id)
    if monitor.is_enabled:
        raise HTTPException(status_code=400, detail="Monitor is already running")
    monitor.is_enabled = True
    await db.commit()
    await db.refresh(monitor)
    return _to_response(monitor)


@router.post("/{monitor_id}/test", response_model=MonitorTestResponse)
async def test_monitor(
    monitor_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    checker: ProbeExecutor = Depends(get_checker),
):
    """Probe the monitor now without touching its status or history."""
    monitor = await _get_owned_monitor(db, monitor_id, owner_id)
    try:
        result = await checker.execute(monitor)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return MonitorTestResponse(
        status=result.status,
        status_code=result.status_code,
        response_time_ms=result.response_time_ms,
        error=result.error,
        response_body=result.response_body,
        assertions=AssertionResultsResponse.model_validate(result.assertions) if result.assertions else None,
        request_headers=mask_headers(monitor.headers),
    )


@router.get("/{monitor_id}/checks", response_model=List[MonitorCheckResponse])
async def list_monitor_checks(
    monitor_id: int,
    limit: int = Query(100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Probe results, most recent first."""
    await _get_owned_monitor(db, monitor_id, owner_id)
    result = await db.execute(
        select(MonitorCheck)
        .where(MonitorCheck.monitor_id == monitor_id)
        .order_by(MonitorCheck.timestamp.desc(), MonitorCheck.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{monitor_id}/history", response_model=List[StatusEventResponse])
async def monitor_history(
    monitor_id: int,
    limit: int = Query(100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    await _get_owned_monitor(db, monitor_id, owner_id)
    result = await db.execute(
        select(StatusEvent)
        .where(StatusEvent.monitor_id == monitor_id)
        .order_by(StatusEvent.timestamp.desc(), StatusEvent.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{monitor_id}/stats", response_model=MonitorStats)
async def monitor_stats(
    monitor_id: int,
    hours: int = Query(ROLLUP_WINDOW_HOURS, ge=1, le=24 * 7),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Uptime and latency over a trailing window, computed on read."""
    await _get_owned_monitor(db, monitor_id, owner_id)
    uptime, avg_latency, total, successes = await monitor_window_stats(
        db, monitor_id, utcnow(), hours=hours
    )
    return MonitorStats(
        uptime_percent=uptime,
        avg_response_time_ms=avg_latency,
        total_checks=total,
        successful_checks=successes,
        failed_checks=total - successes,
        window_hours=hours,
    )
