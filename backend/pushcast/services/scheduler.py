"""Scheduler service - promotes due scheduled campaigns into the send pipeline.

The same ``process_due_campaigns`` run is reachable two ways:
- the external cron trigger (GET /api/cron/process-scheduled)
- an optional in-process APScheduler interval job (SCHEDULER_ENABLED=true)

Each campaign is claimed with a conditional UPDATE first, so overlapping runs
never process a campaign twice.
"""
import logging
from datetime import datetime
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import and_, or_, select

from .. import database
from ..config import settings
from ..models import Campaign
from ..models.campaign import STATUS_FAILED, STATUS_PROCESSING, STATUS_SCHEDULED
from ..utils.time_utils import utc_now
from .campaign_sender import CampaignSender, campaign_sender, stale_claim
from .stats import final_status

logger = logging.getLogger(__name__)


class SchedulerService:
    """Finds due campaigns and runs them, isolating failures per campaign."""

    def __init__(self, sender: CampaignSender = campaign_sender):
        self.sender = sender
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, interval_seconds: Optional[int] = None):
        """Start the in-process scheduler."""
        if self._running:
            return

        interval = interval_seconds or settings.scheduler_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_due_campaigns,
            trigger=IntervalTrigger(seconds=interval),
            id="process_scheduled_campaigns",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=interval,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (interval={interval}s)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _run_due_campaigns(self):
        try:
            await self.process_due_campaigns()
        except Exception as e:
            logger.error(f"Error processing scheduled campaigns: {e}")

    async def find_due_campaigns(self, now: datetime) -> List[Campaign]:
        async with database.async_session() as session:
            result = await session.execute(
                select(Campaign)
                .where(
                    Campaign.scheduled_at.is_not(None),
                    Campaign.scheduled_at <= now,
                    or_(
                        Campaign.status == STATUS_SCHEDULED,
                        # Scheduled runs cut short before reaching a terminal state
                        and_(stale_claim(now), Campaign.processed_at.is_(None)),
                    ),
                )
                .order_by(Campaign.scheduled_at)
            )
            return list(result.scalars().all())

    async def process_due_campaigns(self, now: Optional[datetime] = None) -> List[dict]:
        """Run every scheduled campaign whose due time has passed.

        Args:
            now: Naive UTC cut-off (defaults to the current time)

        Returns:
            One detail entry per campaign this run processed
        """
        now = now or utc_now()
        logger.info(f"[Cron] Checking scheduled campaigns at {now.isoformat()}Z")

        due = await self.find_due_campaigns(now)
        if not due:
            logger.info("[Cron] No pending scheduled campaigns")
            return []

        logger.info(f"[Cron] Found {len(due)} campaigns to process")
        details = []
        for campaign in due:
            detail = await self._process_campaign(campaign)
            if detail:
                details.append(detail)
        return details

    async def _process_campaign(self, campaign: Campaign) -> Optional[dict]:
        try:
            claimed = await self.sender.claim(campaign.id, [STATUS_SCHEDULED], reclaim_stale=True)
        except Exception:
            logger.exception(f"[Cron] Could not claim campaign {campaign.id}, leaving it for the next run")
            return None

        if not claimed:
            logger.info(f"[Cron] Campaign {campaign.id} already claimed by another run")
            return None

        logger.info(f"[Cron] Executing campaign {campaign.id} (\"{campaign.title}\")")
        try:
            result = await self.sender.run(campaign, processed=True)
        except Exception as e:
            logger.exception(f"[Cron] Error processing {campaign.id}")
            await self.sender.reconciler.mark_failed(campaign.id, str(e), processed=True)
            return {"id": campaign.id, "status": STATUS_FAILED, "reason": str(e)}

        if result.stats_error:
            return {
                "id": campaign.id,
                "status": STATUS_PROCESSING,
                "sent": result.sent_count,
                "reason": result.stats_error,
            }

        status, reason = final_status(result)
        if result.total_targeted == 0:
            return {"id": campaign.id, "status": status, "reason": reason}

        logger.info(
            f"[Cron] Campaign {campaign.id} finished: {result.sent_count} sent, {result.failed_count} failed"
        )
        return {"id": campaign.id, "status": status, "sent": result.sent_count}


# Global instance
scheduler_service = SchedulerService()
