"""Pydantic schemas for API request/response models."""
from .check import (
    CheckCreate,
    CheckUpdate,
    CheckResponse,
    PingResponse,
    PingAck,
    StatusEventResponse,
)
from .http_monitor import (
    MonitorAssertions,
    HttpMonitorCreate,
    HttpMonitorUpdate,
    HttpMonitorResponse,
    MonitorCheckResponse,
    MonitorTestResponse,
    MonitorStats,
)
from .sweep import SweepReport

__all__ = [
    "CheckCreate",
    "CheckUpdate",
    "CheckResponse",
    "PingResponse",
    "PingAck",
    "StatusEventResponse",
    "MonitorAssertions",
    "HttpMonitorCreate",
    "HttpMonitorUpdate",
    "HttpMonitorResponse",
    "MonitorCheckResponse",
    "MonitorTestResponse",
    "MonitorStats",
    "SweepReport",
]
