"""Scheduler trigger - called periodically by an external cron with a shared secret."""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from ..config import settings
from ..schemas.campaign import ScheduledRunDetail, ScheduledRunResponse
from ..services.scheduler import scheduler_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def cron_authorized(authorization: Optional[str]) -> bool:
    """Constant-time check of ``Authorization: Bearer <CRON_SECRET>``."""
    if not settings.cron_secret or not authorization:
        return False
    expected = f"Bearer {settings.cron_secret}"
    return hmac.compare_digest(authorization.encode(), expected.encode())


@router.get("/process-scheduled", response_model=ScheduledRunResponse)
async def process_scheduled(authorization: Optional[str] = Header(None)):
    """Process every scheduled campaign whose due time has passed."""
    if not cron_authorized(authorization):
        logger.error("[Cron] Unauthorized access attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")
    
    details = await scheduler_service.process_due_campaigns()
    return ScheduledRunResponse(
        processed=len(details),
        details=[ScheduledRunDetail(**detail) for detail in details],
    )
