"""MonitorCheck model - individual probe results."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class MonitorCheck(Base):
    """Append-only probe result for an HTTP monitor."""

    __tablename__ = "monitor_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("http_monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
    status = Column(String, nullable=False)  # success, failure
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error = Column(String, nullable=True)
    response_body_preview = Column(Text, nullable=True)  # First 500 chars

    monitor = relationship("HttpMonitor", back_populates="checks")
