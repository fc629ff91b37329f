"""Campaign CRUD and send/resend API endpoints."""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Campaign, Domain
from ..models.campaign import SELECTOR_ALL, STATUS_SCHEDULED
from ..models.push_token import PLATFORMS
from ..schemas.campaign import (
    CampaignAction,
    CampaignCreate,
    CampaignEnvelope,
    CampaignList,
    CampaignResponse,
    SendResponse,
    TargetingRule,
)
from ..services.campaign_sender import CampaignStateError, campaign_sender
from ..services.push_gateway import GatewayConfigError
from ..utils.auth import get_current_owner
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


async def get_owned_campaign(db: AsyncSession, campaign_id: str, owner_id: str) -> Campaign:
    """Load a campaign and check the caller owns it (404 / 403 otherwise)."""
    campaign = await db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    if campaign.owner_id != owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return campaign


@router.get("", response_model=CampaignList)
async def list_campaigns(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's campaigns, newest first."""
    result = await db.execute(
        select(Campaign)
        .where(Campaign.owner_id == owner_id)
        .order_by(Campaign.created_at.desc())
    )
    campaigns = result.scalars().all()
    return CampaignList(campaigns=[CampaignResponse.from_campaign(c) for c in campaigns])


@router.post("", response_model=CampaignEnvelope)
async def create_campaign(
    payload: CampaignCreate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Create a draft or scheduled campaign."""
    if not payload.title or not payload.message:
        raise HTTPException(status_code=400, detail="Title and message are required")

    if payload.status == STATUS_SCHEDULED and not payload.scheduled_at:
        raise HTTPException(status_code=400, detail="scheduledAt is required for scheduled campaigns")

    targeting = payload.targeting or TargetingRule()
    domain_selector = targeting.domain_id or SELECTOR_ALL
    platform_selector = targeting.platform or SELECTOR_ALL

    if platform_selector != SELECTOR_ALL and platform_selector not in PLATFORMS:
        raise HTTPException(status_code=400, detail=f"Invalid platform: {platform_selector}")

    if domain_selector != SELECTOR_ALL:
        domain = await db.get(Domain, domain_selector)
        if domain and domain.owner_id != owner_id:
            raise HTTPException(status_code=403, detail="Forbidden")

    campaign_id = payload.id or uuid.uuid4().hex
    if await db.get(Campaign, campaign_id):
        raise HTTPException(status_code=409, detail="Campaign already exists")

    campaign = Campaign(
        id=campaign_id,
        owner_id=owner_id,
        title=payload.title,
        body=payload.message,
        icon=payload.icon or None,
        action_url=payload.action_url or "/",
        domain_selector=domain_selector,
        platform_selector=platform_selector,
        status=payload.status,
        scheduled_at=to_naive_utc(payload.scheduled_at),
    )
    db.add(campaign)

    await retry_on_lock(db.commit)
    await db.refresh(campaign)

    logger.info(f"Campaign {campaign.id} created ({campaign.status}) by {owner_id}")
    return CampaignEnvelope(campaign=CampaignResponse.from_campaign(campaign))


async def _send(payload: CampaignAction, owner_id: str, db: AsyncSession, resend: bool) -> SendResponse:
    if not payload.campaign_id:
        raise HTTPException(status_code=400, detail="campaignId is required")

    campaign = await get_owned_campaign(db, payload.campaign_id, owner_id)
    # Release the read before the pipeline opens its own sessions
    await db.close()

    try:
        result = await campaign_sender.send(campaign, resend=resend)
    except CampaignStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GatewayConfigError as e:
        logger.error(f"Push gateway unavailable: {e}")
        raise HTTPException(status_code=503, detail="Messaging service unavailable")

    return SendResponse(success=True, results=result.as_summary())


@router.post("/send", response_model=SendResponse)
async def send_campaign(
    payload: CampaignAction,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Send a draft or scheduled campaign immediately."""
    return await _send(payload, owner_id, db, resend=False)


@router.post("/resend", response_model=SendResponse)
async def resend_campaign(
    payload: CampaignAction,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Send a finished campaign again to everyone it currently targets.

    Stats are replaced by this pass's counts, not added to.
    """
    return await _send(payload, owner_id, db, resend=True)


@router.get("/{campaign_id}", response_model=CampaignEnvelope)
async def get_campaign(
    campaign_id: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Get a single campaign."""
    campaign = await get_owned_campaign(db, campaign_id, owner_id)
    return CampaignEnvelope(campaign=CampaignResponse.from_campaign(campaign))


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Delete a campaign."""
    campaign = await get_owned_campaign(db, campaign_id, owner_id)
    await db.delete(campaign)
    await retry_on_lock(db.commit)

    logger.info(f"Campaign {campaign_id} deleted by {owner_id}")
    return {"success": True}
