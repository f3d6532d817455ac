"""Check and ping schemas for API."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import check_webhook_url, reject_null

ScheduleType = Literal["preset", "cron"]


class CheckCreate(BaseModel):
    """Schema for creating a check."""
    name: str = Field(..., min_length=1, max_length=255)
    schedule_type: ScheduleType = "preset"
    schedule: str = "every hour"
    cron_expression: Optional[str] = Field(None, max_length=255)
    timezone: str = "UTC"
    grace_period_minutes: int = Field(default=5, ge=0, le=60)
    tags: List[str] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    max_duration_seconds: Optional[int] = Field(None, ge=1)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, url):
        return check_webhook_url(url)


class CheckUpdate(BaseModel):
    """Schema for updating a check."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    schedule_type: Optional[ScheduleType] = None
    schedule: Optional[str] = None
    cron_expression: Optional[str] = Field(None, max_length=255)
    timezone: Optional[str] = None
    grace_period_minutes: Optional[int] = Field(None, ge=0, le=60)
    tags: Optional[List[str]] = None
    webhook_url: Optional[str] = None
    max_duration_seconds: Optional[int] = Field(None, ge=1)

    @field_validator("name", "schedule_type", "schedule", "timezone", "grace_period_minutes", "tags")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, url):
        return check_webhook_url(url)


class CheckResponse(BaseModel):
    """Schema for check in API responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    name: str
    slug: str
    schedule_type: str
    schedule: str
    cron_expression: Optional[str] = None
    timezone: str
    grace_period_minutes: int
    status: str
    paused: bool
    last_ping_at: Optional[datetime] = None
    last_duration_ms: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    max_duration_seconds: Optional[int] = None
    config_error: Optional[str] = None
    created_at: datetime


class PingResponse(BaseModel):
    """A recorded ping."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    kind: str
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None
    output: Optional[str] = None
    status: Optional[str] = None


class PingAck(BaseModel):
    """Acknowledgement returned to the pinging job."""
    ok: bool = True
    message: str = "Pong!"
    status: str


class StatusEventResponse(BaseModel):
    """A status transition in a check's or monitor's history."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    timestamp: datetime
    duration_seconds: Optional[int] = None
