"""Database models."""
from .check import Check
from .ping import Ping
from .status_event import StatusEvent
from .http_monitor import HttpMonitor
from .monitor_check import MonitorCheck
from .alert import Alert

__all__ = ["Check", "Ping", "StatusEvent", "HttpMonitor", "MonitorCheck", "Alert"]
