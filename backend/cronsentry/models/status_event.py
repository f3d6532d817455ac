"""StatusEvent model - audit trail of status transitions."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.clock import utcnow


class StatusEvent(Base):
    """A status change of a check or HTTP monitor.

    Written only when the status actually changes, never on a repeat.
    """

    __tablename__ = "status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    check_id = Column(Integer, ForeignKey("checks.id", ondelete="CASCADE"), nullable=True, index=True)
    monitor_id = Column(Integer, ForeignKey("http_monitors.id", ondelete="CASCADE"), nullable=True, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime, default=utcnow, index=True)
    duration_seconds = Column(Integer, nullable=True)  # Time spent in the previous status

    check = relationship("Check", back_populates="status_events")
    monitor = relationship("HttpMonitor", back_populates="status_events")
