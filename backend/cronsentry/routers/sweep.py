"""External sweep trigger."""
import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from ..config import settings
from ..exceptions import SweepError
from ..schemas.sweep import SweepReport
from ..services.scheduler import SchedulerService, scheduler_service
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sweep"])


def get_scheduler() -> SchedulerService:
    return scheduler_service


def require_cron_secret(x_cron_secret: str = Header(None)) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=404, detail="Sweep trigger is disabled")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), settings.cron_secret.encode()):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.post("/sweep", response_model=SweepReport, dependencies=[Depends(require_cron_secret)])
async def trigger_sweep(scheduler: SchedulerService = Depends(get_scheduler)):
    """Run one sweep tick now, e.g. from an external cron."""
    try:
        return await scheduler.run_sweep()
    except SweepError as e:
        logger.error(f"Triggered sweep failed: {e}")
        report = SweepReport(ok=False, timestamp=utcnow())
        return JSONResponse(status_code=503, content=report.model_dump(mode="json"))
