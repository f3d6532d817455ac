"""Check model - dead man's switch checks awaiting periodic pings."""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Check(Base):
    """A scheduled job that is expected to ping its slug URL."""

    __tablename__ = "checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String(32), nullable=False, unique=True, index=True)
    schedule_type = Column(String, nullable=False, default="preset")  # preset, cron
    schedule = Column(String, nullable=False, default="every hour")  # preset value
    cron_expression = Column(String, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")
    grace_period_minutes = Column(Integer, nullable=False, default=5)
    status = Column(String, nullable=False, default="new")  # new, up, down
    last_ping_at = Column(DateTime, nullable=True)
    last_started_at = Column(DateTime, nullable=True)
    last_duration_ms = Column(Integer, nullable=True)
    paused = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)
    webhook_url = Column(String, nullable=True)
    max_duration_seconds = Column(Integer, nullable=True)
    config_error = Column(String, nullable=True)  # Last schedule problem surfaced to the owner
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    pings = relationship("Ping", back_populates="check", cascade="all, delete-orphan", passive_deletes=True)
    status_events = relationship(
        "StatusEvent", back_populates="check", cascade="all, delete-orphan", passive_deletes=True
    )
