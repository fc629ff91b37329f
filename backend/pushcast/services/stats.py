"""Stats reconciler - campaign and global delivery/click counters.

Every counter change is a SQL-side delta (``col = col + n``) or an upsert on the
``global`` stats row, never a read-modify-write from a Python copy, so concurrent
campaign sends and clicks cannot lose increments.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import database
from ..models import Campaign, GlobalStats
from ..models.campaign import STATUS_FAILED, STATUS_SENT
from ..models.global_stats import GLOBAL_STATS_ID
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import utc_now
from .dispatcher import DeliveryResult

logger = logging.getLogger(__name__)

NO_SUBSCRIBERS_REASON = "No active subscribers found for criteria"
ALL_DELIVERIES_FAILED_REASON = "All deliveries were rejected by the push gateway"


def increment_global_stats(session: AsyncSession, reach: int = 0, clicks: int = 0):
    """Build an upsert that creates the global row or adds to its counters."""
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    
    now = utc_now()
    stmt = insert(GlobalStats).values(
        id=GLOBAL_STATS_ID,
        total_reach=reach,
        total_clicks=clicks,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=[GlobalStats.id],
        set_={
            "total_reach": GlobalStats.total_reach + reach,
            "total_clicks": GlobalStats.total_clicks + clicks,
            "updated_at": now,
        },
    )


def final_status(result: DeliveryResult) -> Tuple[str, Optional[str]]:
    """Terminal status and failure reason for a finished pass."""
    if result.total_targeted == 0:
        return STATUS_FAILED, NO_SUBSCRIBERS_REASON
    if result.sent_count > 0:
        return STATUS_SENT, None
    return STATUS_FAILED, ALL_DELIVERIES_FAILED_REASON


class StatsReconciler:
    """Persists dispatch outcomes and click counts."""
    
    async def reconcile(
        self,
        campaign_id: str,
        result: DeliveryResult,
        processed: bool = False,
    ) -> str:
        """Write a pass's absolute stats to the campaign and add its reach globally.
        
        Both writes commit in the same transaction.
        
        Args:
            campaign_id: Campaign that was dispatched
            result: Counts from the dispatch pass
            processed: Also stamp processed_at (scheduler runs)
            
        Returns:
            The campaign's new terminal status
        """
        status, reason = final_status(result)
        
        async def _write():
            async with database.async_session() as session:
                now = utc_now()
                values = {
                    "status": status,
                    "error": reason,
                    "sent_at": now,
                    "total_targeted": result.total_targeted,
                    "total_sent": result.sent_count,
                    "total_failed": result.failed_count,
                }
                if processed:
                    values["processed_at"] = now
                
                await session.execute(
                    update(Campaign).where(Campaign.id == campaign_id).values(**values)
                )
                if result.sent_count > 0:
                    await session.execute(increment_global_stats(session, reach=result.sent_count))
                await session.commit()
        
        await retry_on_lock(_write)
        logger.info(
            f"[Campaign {campaign_id}] Reconciled: status={status}, sent={result.sent_count}, "
            f"failed={result.failed_count}, targeted={result.total_targeted}"
        )
        return status
    
    async def mark_failed(self, campaign_id: str, reason: str, processed: bool = False) -> bool:
        """Move a campaign to failed after an unexpected pipeline error."""
        async def _write():
            async with database.async_session() as session:
                values = {"status": STATUS_FAILED, "error": reason[:500]}
                if processed:
                    values["processed_at"] = utc_now()
                await session.execute(
                    update(Campaign).where(Campaign.id == campaign_id).values(**values)
                )
                await session.commit()
        
        try:
            await retry_on_lock(_write)
        except SQLAlchemyError as e:
            logger.error(f"[Campaign {campaign_id}] Could not mark campaign failed: {e}")
            return False
        return True
    
    async def note_error(self, campaign_id: str, reason: str) -> bool:
        """Store an error on the campaign without touching its status."""
        async def _write():
            async with database.async_session() as session:
                await session.execute(
                    update(Campaign).where(Campaign.id == campaign_id).values(error=reason[:500])
                )
                await session.commit()

        try:
            await retry_on_lock(_write)
        except SQLAlchemyError as e:
            logger.error(f"[Campaign {campaign_id}] Could not store error: {e}")
            return False
        return True

    async def record_click(self, campaign_id: str) -> bool:
        """Add one click to the campaign and to the global counters atomically.
        
        An unknown campaign rolls the batch back so neither counter moves.
        """
        async def _write() -> bool:
            async with database.async_session() as session:
                result = await session.execute(
                    update(Campaign)
                    .where(Campaign.id == campaign_id)
                    .values(
                        total_clicks=Campaign.total_clicks + 1,
                        last_clicked_at=utc_now(),
                    )
                )
                if not result.rowcount:
                    await session.rollback()
                    return False
                await session.execute(increment_global_stats(session, clicks=1))
                await session.commit()
                return True
        
        return await retry_on_lock(_write)
    
    async def record_campaign_click(self, campaign_id: str) -> bool:
        """Add one click to the campaign only (legacy service workers)."""
        async def _write() -> bool:
            async with database.async_session() as session:
                result = await session.execute(
                    update(Campaign)
                    .where(Campaign.id == campaign_id)
                    .values(
                        total_clicks=Campaign.total_clicks + 1,
                        last_clicked_at=utc_now(),
                    )
                )
                await session.commit()
                return bool(result.rowcount)
        
        return await retry_on_lock(_write)
    
    async def get_global_stats(self, session: AsyncSession) -> Tuple[int, int]:
        """Return (total_reach, total_clicks); zeros before the first increment."""
        result = await session.execute(
            select(GlobalStats).where(GlobalStats.id == GLOBAL_STATS_ID)
        )
        stats = result.scalar_one_or_none()
        if not stats:
            return 0, 0
        return stats.total_reach or 0, stats.total_clicks or 0


# Global instance
stats_reconciler = StatsReconciler()
