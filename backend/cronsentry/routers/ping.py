"""Inbound ping endpoints hit by scheduled jobs."""
import json
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ..config import settings
from ..exceptions import CheckNotFound
from ..schemas.check import PingAck
from ..services.check_state import PingMeta
from ..services.pinger import PingService, ping_service
from ..services.rate_limiter import RateLimiter, get_rate_limiter

router = APIRouter(prefix="/ping", tags=["ping"])

PING_METHODS = ["GET", "POST"]


def get_ping_service() -> PingService:
    return ping_service


def client_ip(request: Request) -> str:
    if settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


async def _read_fields(request: Request) -> dict:
    """Merge query parameters with a JSON (or plain text output) POST body."""
    fields = dict(request.query_params)
    if request.method != "POST":
        return fields

    raw = await request.body()
    if not raw:
        return fields
    if "application/json" in request.headers.get("content-type", ""):
        try:
            payload = json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if isinstance(payload, dict):
            fields.update(payload)
    else:
        fields.setdefault("output", raw.decode("utf-8", errors="replace"))
    return fields


def _int_field(fields: dict, name: str) -> Optional[int]:
    value = fields.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=422, detail=f"{name} must be an integer")


async def _handle_ping(
    slug: str,
    request: Request,
    limiter: RateLimiter,
    service: PingService,
    start: bool = False,
    explicit_status: Optional[str] = None,
    exit_code: Optional[int] = None,
) -> PingAck:
    ip = client_ip(request)
    limit = limiter.hit(ip)
    if not limit.allowed:
        retry_after = max(1, int(limit.reset_at - time.time()))
        raise HTTPException(
            status_code=429,
            detail="Too many pings",
            headers={"Retry-After": str(retry_after)},
        )

    fields = await _read_fields(request)

    status = explicit_status or fields.get("status")
    if status is not None and status not in ("success", "failure"):
        raise HTTPException(status_code=422, detail="status must be 'success' or 'failure'")

    duration_ms = _int_field(fields, "duration_ms")
    if duration_ms is not None and duration_ms < 0:
        raise HTTPException(status_code=422, detail="duration_ms must not be negative")

    output = fields.get("output")
    meta = PingMeta(
        start=start,
        duration_ms=duration_ms,
        exit_code=exit_code if exit_code is not None else _int_field(fields, "exit_code"),
        output=str(output) if output is not None else None,
        explicit_status=status,
        source_ip=ip,
        user_agent=request.headers.get("user-agent"),
    )

    try:
        result = await service.signal(slug, meta)
    except CheckNotFound:
        raise HTTPException(status_code=404, detail="Check not found")

    return PingAck(status=result.status)


@router.api_route("/{slug}", methods=PING_METHODS, response_model=PingAck)
async def ping(
    slug: str,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: PingService = Depends(get_ping_service),
):
    """Record a successful run."""
    return await _handle_ping(slug, request, limiter, service)


@router.api_route("/{slug}/start", methods=PING_METHODS, response_model=PingAck)
async def ping_start(
    slug: str,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: PingService = Depends(get_ping_service),
):
    """Record that a run has started; the next completion ping gets its duration."""
    return await _handle_ping(slug, request, limiter, service, start=True)


@router.api_route("/{slug}/fail", methods=PING_METHODS, response_model=PingAck)
async def ping_fail(
    slug: str,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: PingService = Depends(get_ping_service),
):
    """Record a failed run."""
    return await _handle_ping(slug, request, limiter, service, explicit_status="failure")


@router.api_route("/{slug}/{exit_code}", methods=PING_METHODS, response_model=PingAck)
async def ping_exit_code(
    slug: str,
    exit_code: int,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: PingService = Depends(get_ping_service),
):
    """Record a finished run by its exit code; non-zero is a failure."""
    return await _handle_ping(slug, request, limiter, service, exit_code=exit_code)
