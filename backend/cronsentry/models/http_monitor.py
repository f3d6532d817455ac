"""HttpMonitor model - actively polled HTTP endpoints."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, JSON, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class HttpMonitor(Base):
    """An endpoint probed on an interval, with hysteresis before going down."""

    __tablename__ = "http_monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    method = Column(String, nullable=False, default="GET")  # GET, HEAD, POST, PUT
    expected_status_codes = Column(JSON, nullable=False, default=lambda: [200, 201, 204])
    timeout_ms = Column(Integer, nullable=False, default=10000)
    interval_seconds = Column(Integer, nullable=False, default=300)
    headers = Column(JSON, nullable=True)  # Sensitive values stored as enc: ciphertext
    body = Column(Text, nullable=True)  # Always stored encrypted
    content_type = Column(String, nullable=True)
    assertions = Column(JSON, nullable=True)  # max_response_time_ms, body_contains, body_not_contains
    alert_after_failures = Column(Integer, nullable=False, default=2)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")  # pending, up, degraded, down
    last_checked_at = Column(DateTime, nullable=True)
    last_response_time_ms = Column(Integer, nullable=True)
    last_status_code = Column(Integer, nullable=True)
    last_error = Column(String, nullable=True)
    uptime_percent_24h = Column(Float, nullable=True)
    avg_response_time_24h = Column(Float, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    webhook_url = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    checks = relationship(
        "MonitorCheck", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True
    )
    status_events = relationship(
        "StatusEvent", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True
    )
