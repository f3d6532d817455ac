"""Alert model - log of dispatched alert deliveries."""
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base
from ..utils.clock import utcnow


class Alert(Base):
    """Record of one alert delivery attempt on one channel.

    Not foreign-keyed: the log outlives deleted checks and monitors.
    """

    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String, nullable=False)  # check, monitor
    entity_id = Column(Integer, nullable=False, index=True)
    kind = Column(String, nullable=False)  # check.down, check.up, monitor.down, ...
    channel = Column(String, default="webhook")  # webhook, global_webhook, log
    sent_at = Column(DateTime, default=utcnow)
    payload = Column(String, nullable=True)  # JSON body that was sent
    success = Column(Integer, nullable=True)  # 1=success, 0=failed
