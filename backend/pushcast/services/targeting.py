"""Targeting resolver - turns a campaign's targeting rule into delivery targets.

Filters are composed as lists of SQLAlchemy predicates, one list per query pass,
so the domain and platform rules stay independent of how the rows are fetched.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ..config import settings
from ..models import Campaign, Domain, PushToken
from ..models.campaign import SELECTOR_ALL

logger = logging.getLogger(__name__)


@dataclass
class ResolvedTarget:
    """One delivery target after deduplication."""
    row_id: str
    push_token: str
    domain_hostname: Optional[str] = None
    last_active_at: Optional[datetime] = None


def hostname_in(hostnames: Sequence[str]) -> ColumnElement:
    return PushToken.domain_hostname.in_(list(hostnames))


def hostname_equals(hostname: str) -> ColumnElement:
    return PushToken.domain_hostname == hostname


def domain_id_equals(domain_id: str) -> ColumnElement:
    return PushToken.domain_id == domain_id


def platform_equals(platform: str) -> ColumnElement:
    return PushToken.platform == platform


def chunked(values: Sequence, size: int) -> Iterable[list]:
    """Split values into lists of at most ``size`` items."""
    size = max(1, size)
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


def deduplicate_targets(rows: Iterable) -> List[ResolvedTarget]:
    """Collapse rows sharing a push token into a single target.

    The most recently active row wins; ties are broken by row id so the result
    does not depend on query order. Rows without a token are dropped.
    """
    ordered = sorted(rows, key=lambda row: row.id)
    ordered.sort(key=lambda row: row.last_active_at or datetime.min, reverse=True)

    by_token = {}
    for row in ordered:
        if not row.push_token or row.push_token in by_token:
            continue
        by_token[row.push_token] = ResolvedTarget(
            row_id=row.id,
            push_token=row.push_token,
            domain_hostname=row.domain_hostname,
            last_active_at=row.last_active_at,
        )
    return list(by_token.values())


class TargetingResolver:
    """Resolves campaign targeting rules against the token store."""

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size or settings.in_query_chunk_size

    async def build_filter_passes(
        self,
        session: AsyncSession,
        campaign: Campaign,
    ) -> List[List[ColumnElement]]:
        """Build the predicate lists for each query pass.

        An empty list means nothing can match (e.g. the owner has no domains).
        """
        passes = await self._domain_passes(session, campaign)

        platform = campaign.platform_selector or SELECTOR_ALL
        if platform != SELECTOR_ALL:
            passes = [predicates + [platform_equals(platform)] for predicates in passes]

        return passes

    async def _domain_passes(
        self,
        session: AsyncSession,
        campaign: Campaign,
    ) -> List[List[ColumnElement]]:
        selector = campaign.domain_selector or SELECTOR_ALL

        if selector != SELECTOR_ALL:
            domain = await session.get(Domain, selector)
            if domain:
                logger.info(f"[Campaign {campaign.id}] Targeting domain {domain.hostname} (ID: {selector})")
                return [[hostname_equals(domain.hostname)]]
            # Legacy rows may only carry the raw domain id
            logger.warning(f"[Campaign {campaign.id}] Domain ID {selector} not found, matching tokens by domain_id")
            return [[domain_id_equals(selector)]]

        result = await session.execute(
            select(Domain.hostname)
            .where(Domain.owner_id == campaign.owner_id)
            .order_by(Domain.created_at)
        )
        hostnames = list(dict.fromkeys(h for h in result.scalars().all() if h))

        if not hostnames:
            logger.info(f"[Campaign {campaign.id}] Owner has no domains with hostnames")
            return []

        logger.info(f"[Campaign {campaign.id}] Targeting all owner domains: {', '.join(hostnames)}")
        return [[hostname_in(chunk)] for chunk in chunked(hostnames, self.chunk_size)]

    async def resolve(self, session: AsyncSession, campaign: Campaign) -> List[ResolvedTarget]:
        """Return the deduplicated targets for a campaign (possibly empty)."""
        passes = await self.build_filter_passes(session, campaign)

        rows = {}
        for predicates in passes:
            result = await session.execute(select(PushToken).where(*predicates))
            for row in result.scalars().all():
                rows[row.id] = row

        targets = deduplicate_targets(rows.values())
        logger.info(
            f"[Campaign {campaign.id}] Found {len(rows)} token rows, {len(targets)} unique targets"
        )
        return targets


# Global instance
targeting_resolver = TargetingResolver()
