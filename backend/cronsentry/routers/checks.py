"""Check CRUD API endpoints."""
import secrets
import string
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import ConfigurationError
from ..models import Check, Ping, StatusEvent
from ..schemas.check import (
    CheckCreate,
    CheckUpdate,
    CheckResponse,
    PingResponse,
    StatusEventResponse,
)
from ..services.schedule import validate_schedule
from .deps import get_owner_id, validate_webhook_target

router = APIRouter(prefix="/api/checks", tags=["checks"])

SLUG_ALPHABET = string.ascii_lowercase + string.digits
SLUG_LENGTH = 10


def generate_slug() -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))


async def _unique_slug(db: AsyncSession) -> str:
    for _ in range(5):
        slug = generate_slug()
        existing = await db.execute(select(Check.id).where(Check.slug == slug))
        if existing.scalar_one_or_none() is None:
            return slug
    raise HTTPException(status_code=500, detail="Could not allocate a unique slug")


async def _get_owned_check(db: AsyncSession, check_id: int, owner_id: str) -> Check:
    result = await db.execute(
        select(Check).where(Check.id == check_id, Check.owner_id == owner_id)
    )
    check = result.scalar_one_or_none()
    if not check:
        raise HTTPException(status_code=404, detail="Check not found")
    return check


def _validate(schedule_type, schedule, cron_expression, timezone):
    try:
        validate_schedule(schedule_type, schedule, cron_expression, timezone)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("", response_model=List[CheckResponse])
async def list_checks(
    status: Optional[str] = Query(None, pattern="^(new|up|down)$"),
    tag: Optional[str] = None,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """List the owner's checks, optionally filtered by status or tag."""
    query = select(Check).where(Check.owner_id == owner_id)
    if status:
        query = query.where(Check.status == status)
    result = await db.execute(query.order_by(Check.name))
    checks = result.scalars().all()
    if tag:
        checks = [c for c in checks if tag in (c.tags or [])]
    return checks


@router.post("", response_model=CheckResponse, status_code=201)
async def create_check(
    data: CheckCreate,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a check; it stays 'new' until its first ping."""
    _validate(data.schedule_type, data.schedule, data.cron_expression, data.timezone)
    await validate_webhook_target(data.webhook_url)

    check = Check(
        owner_id=owner_id,
        slug=await _unique_slug(db),
        name=data.name,
        schedule_type=data.schedule_type,
        schedule=data.schedule,
        cron_expression=data.cron_expression if data.schedule_type == "cron" else None,
        timezone=data.timezone,
        grace_period_minutes=data.grace_period_minutes,
        tags=data.tags,
        webhook_url=data.webhook_url,
        max_duration_seconds=data.max_duration_seconds,
        status="new",
    )
    db.add(check)
    await db.commit()
    await db.refresh(check)
    return check


@router.get("/{check_id}", response_model=CheckResponse)
async def get_check(
    check_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    return await _get_owned_check(db, check_id, owner_id)


@router.put("/{check_id}", response_model=CheckResponse)
async def update_check(
    check_id: int,
    data: CheckUpdate,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Update a check. The resulting schedule is validated as a whole."""
    check = await _get_owned_check(db, check_id, owner_id)
    changes = data.model_dump(exclude_unset=True)

    schedule_type = changes.get("schedule_type", check.schedule_type)
    schedule = changes.get("schedule", check.schedule)
    cron_expression = changes.get("cron_expression", check.cron_expression)
    timezone = changes.get("timezone", check.timezone)
    _validate(schedule_type, schedule, cron_expression, timezone)
    await validate_webhook_target(changes.get("webhook_url"))

    for field, value in changes.items():
        setattr(check, field, value)
    if schedule_type != "cron":
        check.cron_expression = None
    check.config_error = None

    await db.commit()
    await db.refresh(check)
    return check


@router.delete("/{check_id}", status_code=204)
async def delete_check(
    check_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a check along with its pings and status history."""
    check = await _get_owned_check(db, check_id, owner_id)
    await db.delete(check)
    await db.commit()


@router.post("/{check_id}/pause", response_model=CheckResponse)
async def pause_check(
    check_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    check = await _get_owned_check(db, check_id, owner_id)
    if check.paused:
        raise HTTPException(status_code=400, detail="Check is already paused")
    check.paused = True
    await db.commit()
    await db.refresh(check)
    return check


@router.post("/{check_id}/resume", response_model=CheckResponse)
async def resume_check(
    check_id: int,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    check = await _get_owned_check(db, check_id, owner_id)
    if not check.paused:
        raise HTTPException(status_code=400, detail="Check is not paused")
    check.paused = False
    await db.commit()
    await db.refresh(check)
    return check


@router.get("/{check_id}/pings", response_model=List[PingResponse])
async def list_pings(
    check_id: int,
    limit: int = Query(50, ge=1, le=500),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Most recent pings first."""
    await _get_owned_check(db, check_id, owner_id)
    result = await db.execute(
        select(Ping)
        .where(Ping.check_id == check_id)
        .order_by(Ping.timestamp.desc(), Ping.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{check_id}/history", response_model=List[StatusEventResponse])
async def check_history(
    check_id: int,
    limit: int = Query(100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Status transitions, most recent first."""
    await _get_owned_check(db, check_id, owner_id)
    result = await db.execute(
        select(StatusEvent)
        .where(StatusEvent.check_id == check_id)
        .order_by(StatusEvent.timestamp.desc(), StatusEvent.id.desc())
        .limit(limit)
    )
    return result.scalars().all()
