"""Ping model - inbound signals from scheduled jobs."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class Ping(Base):
    """Append-only record of one inbound ping."""

    __tablename__ = "pings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    check_id = Column(Integer, ForeignKey("checks.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
    kind = Column(String, nullable=False, default="success")  # success, start, failure
    source_ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    exit_code = Column(Integer, nullable=True)
    output = Column(Text, nullable=True)  # Truncated to 10KB
    status = Column(String, nullable=True)  # Explicit override sent by the client

    check = relationship("Check", back_populates="pings")
