"""Subscriber token listing for the dashboard."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import PushToken
from ..schemas.subscription import TokenList, TokenResponse
from ..utils.auth import get_current_owner

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("", response_model=TokenList)
async def list_tokens(
    domain_id: Optional[str] = Query(None, alias="domainId"),
    platform: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's subscriber tokens, newest first."""
    query = select(PushToken).where(PushToken.owner_id == owner_id)
    
    if domain_id and domain_id != "all":
        query = query.where(PushToken.domain_id == domain_id)
    if platform and platform != "all":
        query = query.where(PushToken.platform == platform)
    
    result = await db.execute(query.order_by(PushToken.created_at.desc()))
    tokens = result.scalars().all()
    
    return TokenList(
        tokens=[TokenResponse.model_validate(t) for t in tokens],
        total=len(tokens),
    )
