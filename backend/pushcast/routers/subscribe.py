"""Subscription intake - registers push tokens collected by the loader script."""
import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Domain, PushToken
from ..models.push_token import PLATFORMS
from ..schemas.subscription import SubscribeRequest, SubscribeResponse, VisitorData
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscribe", tags=["subscribe"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS, GET",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
}


def origin_allowed(origin: Optional[str], registered_hostname: str) -> bool:
    """Loose origin check: localhost, or a hostname containing the registered one."""
    if not origin:
        return True
    origin_hostname = (urlparse(origin).hostname or "").lower()
    return "localhost" in origin_hostname or registered_hostname in origin_hostname


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return None


@router.options("")
async def subscribe_preflight():
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post("", response_model=SubscribeResponse)
async def subscribe(
    payload: SubscribeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Register or refresh a push token for a registered domain.
    
    When the caller sends a stable ``userId`` and a row already exists for that
    subscriber on this domain, the row is refreshed in place (including the token).
    Otherwise the row keyed by the token string is created or overwritten.
    """
    if not payload.token or not payload.domain_id:
        raise HTTPException(status_code=400, detail="Token and Domain ID required")
    
    domain = await db.get(Domain, payload.domain_id)
    if not domain:
        raise HTTPException(status_code=403, detail="Invalid Domain ID")
    
    registered_hostname = domain.hostname.lower()
    origin = request.headers.get("origin") or request.headers.get("referer")
    if not origin_allowed(origin, registered_hostname):
        origin_hostname = urlparse(origin).hostname or origin
        logger.warning(f"[Security] Origin mismatch: {origin_hostname} vs {registered_hostname}")
        raise HTTPException(status_code=403, detail=f"Unauthorized origin: {origin_hostname}")
    
    platform = payload.platform if payload.platform in PLATFORMS else "web"
    visitor = payload.visitor_data or VisitorData()
    
    fields = {
        "push_token": payload.token,
        "domain_id": domain.id,
        "domain_hostname": registered_hostname,
        "owner_id": domain.owner_id,
        "platform": platform,
        "subscriber_id": payload.user_id,
        "ip": visitor.ip or _client_ip(request) or "unknown",
        "country": visitor.country or "Unknown",
        "country_code": visitor.country_code or "XX",
        "user_agent": visitor.ua or request.headers.get("user-agent"),
        "language": visitor.lang or "en",
        "last_active_at": utc_now(),
    }
    
    existing = None
    if payload.user_id:
        result = await db.execute(
            select(PushToken)
            .where(
                PushToken.subscriber_id == payload.user_id,
                PushToken.domain_id == domain.id,
            )
            .limit(1)
        )
        existing = result.scalar_one_or_none()
    
    if existing is None:
        existing = await db.get(PushToken, payload.token)
    
    if existing:
        for key, value in fields.items():
            setattr(existing, key, value)
        logger.info(f"[Subscribe] Updating existing subscriber row {existing.id[:16]}...")
    else:
        db.add(PushToken(id=payload.token, **fields))
        logger.info(f"[Subscribe] Registering new subscriber for domain: {registered_hostname}")
    
    await retry_on_lock(db.commit)
    
    return SubscribeResponse(success=True)
