"""Sweep report schema."""
from datetime import datetime

from pydantic import BaseModel


class SweepReport(BaseModel):
    """Summary of one sweep tick."""
    ok: bool = True
    checks_evaluated: int = 0
    checks_down: int = 0
    monitors_probed: int = 0
    monitors_down: int = 0
    monitors_recovered: int = 0
    monitors_degraded: int = 0
    deferred: int = 0
    errors: int = 0
    duration_ms: int = 0
    timestamp: datetime
