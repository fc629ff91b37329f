"""Click tracking redirect - counts a notification click, then forwards the user."""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import RedirectResponse

from ..config import settings
from ..schemas.campaign import CampaignAction
from ..services.stats import stats_reconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/track-click", tags=["tracking"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("")
async def track_click(
    campaign_id: Optional[str] = Query(None, alias="campaignId"),
    target_url: Optional[str] = Query(None, alias="targetUrl"),
):
    """Increment campaign and global clicks, then redirect (307).
    
    The redirect is issued whether or not the counters could be written.
    """
    redirect_url = target_url or settings.default_redirect_url
    
    if campaign_id:
        try:
            if await stats_reconciler.record_click(campaign_id):
                logger.info(f"[Track-Click] Incremented clicks for campaign {campaign_id} + global")
            else:
                logger.warning(f"[Track-Click] Unknown campaign {campaign_id}, nothing counted")
        except Exception:
            logger.exception(f"[Track-Click] Failed to update stats for campaign {campaign_id}")
    else:
        logger.warning("[Track-Click] No campaignId provided, skipping tracking")
    
    return RedirectResponse(
        url=redirect_url,
        status_code=307,
        headers={**CORS_HEADERS, **NO_CACHE_HEADERS},
    )


@router.options("")
async def track_click_preflight():
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post("")
async def track_click_legacy(payload: CampaignAction):
    """Count a click reported directly by older service workers (campaign only)."""
    if not payload.campaign_id:
        raise HTTPException(status_code=400, detail="Campaign ID required")
    
    if not await stats_reconciler.record_campaign_click(payload.campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    
    return {"success": True}
