"""HTTP monitor schemas for API."""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import check_webhook_url, reject_null

HttpMethod = Literal["GET", "HEAD", "POST", "PUT"]
ContentType = Literal["application/json", "application/x-www-form-urlencoded", "text/plain"]


class MonitorAssertions(BaseModel):
    """Optional response assertions; unset fields are not checked."""
    model_config = ConfigDict(extra="forbid")

    max_response_time_ms: Optional[int] = Field(None, ge=1, le=30000)
    body_contains: Optional[str] = Field(None, min_length=1, max_length=1000)
    body_not_contains: Optional[str] = Field(None, min_length=1, max_length=1000)


def _check_status_codes(codes: Optional[List[int]]) -> Optional[List[int]]:
    if codes is None:
        return codes
    if not codes:
        raise ValueError("expected_status_codes must not be empty")
    for code in codes:
        if not 100 <= code <= 599:
            raise ValueError(f"Invalid HTTP status code: {code}")
    return sorted(set(codes))


class HttpMonitorCreate(BaseModel):
    """Schema for creating an HTTP monitor."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=2048)
    method: HttpMethod = "GET"
    expected_status_codes: List[int] = Field(default_factory=lambda: [200, 201, 204])
    timeout_ms: int = Field(default=10000, ge=1000, le=30000)
    interval_seconds: int = Field(default=300, ge=1, le=86400)
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = Field(None, max_length=10240)
    content_type: Optional[ContentType] = None
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: int = Field(default=2, ge=1, le=10)
    webhook_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("expected_status_codes")
    @classmethod
    def validate_status_codes(cls, codes):
        return _check_status_codes(codes)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, url):
        return check_webhook_url(url)


class HttpMonitorUpdate(BaseModel):
    """Schema for updating an HTTP monitor."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    method: Optional[HttpMethod] = None
    expected_status_codes: Optional[List[int]] = None
    timeout_ms: Optional[int] = Field(None, ge=1000, le=30000)
    interval_seconds: Optional[int] = Field(None, ge=1, le=86400)
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = Field(None, max_length=10240)
    content_type: Optional[ContentType] = None
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: Optional[int] = Field(None, ge=1, le=10)
    webhook_url: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator(
        "name", "url", "method", "expected_status_codes", "timeout_ms",
        "interval_seconds", "alert_after_failures", "tags",
    )
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

    @field_validator("expected_status_codes")
    @classmethod
    def validate_status_codes(cls, codes):
        return _check_status_codes(codes)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, url):
        return check_webhook_url(url)


class HttpMonitorResponse(BaseModel):
    """HTTP monitor in API responses; header values are masked, body is never echoed."""
    id: int
    owner_id: str
    name: str
    url: str
    method: str
    expected_status_codes: List[int]
    timeout_ms: int
    interval_seconds: int
    headers: Dict[str, str] = Field(default_factory=dict)
    has_body: bool = False
    content_type: Optional[str] = None
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: int
    consecutive_failures: int
    status: str
    last_checked_at: Optional[datetime] = None
    last_response_time_ms: Optional[int] = None
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    uptime_percent_24h: Optional[float] = None
    avg_response_time_24h: Optional[float] = None
    is_enabled: bool
    webhook_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime


class MonitorCheckResponse(BaseModel):
    """A single probe result record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    status: str
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None
    response_body_preview: Optional[str] = None


class AssertionResultsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status_code_passed: bool
    response_time_passed: bool
    body_contains_passed: Optional[bool] = None
    body_not_contains_passed: Optional[bool] = None


class MonitorTestResponse(BaseModel):
    """Response from a manual probe; echoes the configuration with secrets masked."""
    status: str
    status_code: Optional[int] = None
    response_time_ms: int
    error: Optional[str] = None
    response_body: Optional[str] = None
    assertions: Optional[AssertionResultsResponse] = None
    request_headers: Dict[str, str] = Field(default_factory=dict)


class MonitorStats(BaseModel):
    """Trailing-window rollup; None when the window has no samples."""
    uptime_percent: Optional[float] = None
    avg_response_time_ms: Optional[float] = None
    total_checks: int
    successful_checks: int
    failed_checks: int
    window_hours: int
