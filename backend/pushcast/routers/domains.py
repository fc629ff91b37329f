"""Domain registry API endpoints."""
import logging
import uuid
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Domain, PushToken
from ..schemas.domain import (
    DomainCreate,
    DomainDeleted,
    DomainEnvelope,
    DomainList,
    DomainResponse,
)
from ..utils.auth import get_current_owner
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/domains", tags=["domains"])


def normalize_hostname(value: str) -> str:
    """Lowercase a domain and strip any scheme, port or path."""
    value = value.strip().lower()
    if "://" in value:
        value = urlparse(value).hostname or ""
    else:
        value = value.split("/", 1)[0].split(":", 1)[0]
    return value.strip(".")


@router.get("", response_model=DomainList)
async def list_domains(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's domains with their subscriber counts."""
    result = await db.execute(
        select(Domain)
        .where(Domain.owner_id == owner_id)
        .order_by(Domain.created_at.desc())
    )
    domains = result.scalars().all()
    
    counts_result = await db.execute(
        select(PushToken.domain_id, func.count(PushToken.id))
        .where(PushToken.domain_id.in_([d.id for d in domains]))
        .group_by(PushToken.domain_id)
    )
    counts = dict(counts_result.all())
    
    return DomainList(domains=[
        DomainResponse(
            id=d.id,
            hostname=d.hostname,
            created_at=d.created_at,
            subscriber_count=counts.get(d.id, 0),
        )
        for d in domains
    ])


@router.post("", response_model=DomainEnvelope)
async def create_domain(
    payload: DomainCreate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Register a domain for the caller."""
    hostname = normalize_hostname(payload.domain or "")
    if not hostname:
        raise HTTPException(status_code=400, detail="Domain is required")
    
    existing = await db.execute(
        select(Domain).where(Domain.owner_id == owner_id, Domain.hostname == hostname)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Domain already registered")
    
    domain = Domain(id=uuid.uuid4().hex, owner_id=owner_id, hostname=hostname)
    db.add(domain)
    await retry_on_lock(db.commit)
    await db.refresh(domain)
    
    logger.info(f"Domain {hostname} registered by {owner_id}")
    return DomainEnvelope(domain=DomainResponse(
        id=domain.id,
        hostname=domain.hostname,
        created_at=domain.created_at,
    ))


@router.delete("/{domain_id}", response_model=DomainDeleted)
async def delete_domain(
    domain_id: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Delete a domain and every token collected for it."""
    domain = await db.get(Domain, domain_id)
    if not domain:
        raise HTTPException(status_code=404, detail="Domain not found")
    if domain.owner_id != owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    
    hostname = domain.hostname
    
    async def _delete() -> int:
        try:
            result = await db.execute(delete(PushToken).where(PushToken.domain_id == domain_id))
            await db.execute(delete(Domain).where(Domain.id == domain_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return result.rowcount or 0
    
    deleted_tokens = await retry_on_lock(_delete)
    
    logger.info(f"Domain {hostname} deleted with {deleted_tokens} tokens")
    return DomainDeleted(
        message=f"Domain {hostname} and {deleted_tokens} tokens deleted",
        deleted_tokens=deleted_tokens,
    )
