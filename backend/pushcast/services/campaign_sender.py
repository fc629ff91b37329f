"""Campaign sender - runs resolve -> dispatch -> reap -> reconcile for one campaign.

A campaign is claimed with a conditional UPDATE before anything is sent, so two
triggers racing on the same campaign cannot both fan it out. A claim that is
older than ``claim_timeout_seconds`` belongs to an interrupted pass and can be
taken over by a resend or by the scheduler.
"""
import logging
from datetime import timedelta
from typing import Iterable

from sqlalchemy import and_, or_, update
from sqlalchemy.sql.elements import ColumnElement

from .. import database
from ..config import settings
from ..models import Campaign
from ..models.campaign import (
    STATUS_DRAFT,
    STATUS_PROCESSING,
    STATUS_SCHEDULED,
    TERMINAL_STATUSES,
)
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import utc_now
from .dispatcher import DeliveryDispatcher, DeliveryResult, delivery_dispatcher
from .reaper import TokenReaper, token_reaper
from .stats import StatsReconciler, stats_reconciler
from .targeting import TargetingResolver, targeting_resolver

logger = logging.getLogger(__name__)

SENDABLE_STATUSES = (STATUS_DRAFT, STATUS_SCHEDULED)
RESENDABLE_STATUSES = TERMINAL_STATUSES


class CampaignStateError(Exception):
    """The campaign is not in a state that allows this send."""


def stale_claim(now=None) -> ColumnElement:
    """Match campaigns stuck in processing by a pass that never finished."""
    cutoff = (now or utc_now()) - timedelta(seconds=settings.claim_timeout_seconds)
    return and_(
        Campaign.status == STATUS_PROCESSING,
        or_(Campaign.claimed_at.is_(None), Campaign.claimed_at < cutoff),
    )


class CampaignSender:
    """Drives one campaign through the delivery pipeline."""

    def __init__(
        self,
        resolver: TargetingResolver = targeting_resolver,
        dispatcher: DeliveryDispatcher = delivery_dispatcher,
        reaper: TokenReaper = token_reaper,
        reconciler: StatsReconciler = stats_reconciler,
    ):
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.reaper = reaper
        self.reconciler = reconciler

    async def claim(
        self,
        campaign_id: str,
        from_statuses: Iterable[str],
        reclaim_stale: bool = False,
    ) -> bool:
        """Atomically move a campaign into processing.

        Args:
            campaign_id: Campaign to claim
            from_statuses: Statuses the campaign may be claimed from
            reclaim_stale: Also take over a processing claim that timed out

        Returns False if nothing matched.
        """
        from_statuses = tuple(from_statuses)

        async def _claim() -> bool:
            async with database.async_session() as session:
                now = utc_now()
                claimable = Campaign.status.in_(from_statuses)
                if reclaim_stale:
                    claimable = or_(claimable, stale_claim(now))
                result = await session.execute(
                    update(Campaign)
                    .where(Campaign.id == campaign_id, claimable)
                    .values(status=STATUS_PROCESSING, error=None, claimed_at=now)
                )
                await session.commit()
                return result.rowcount == 1

        return await retry_on_lock(_claim)

    async def run(self, campaign: Campaign, processed: bool = False) -> DeliveryResult:
        """Run the pipeline for an already claimed campaign.

        Once pushes have been accepted a stats write failure no longer fails the
        campaign: it stays in processing with the error noted on
        ``result.stats_error`` and can be resent after the claim times out.
        """
        async with database.async_session() as session:
            targets = await self.resolver.resolve(session, campaign)

        if not targets:
            logger.warning(f"[Campaign {campaign.id}] No matching tokens")
            result = DeliveryResult()
        else:
            result = await self.dispatcher.dispatch(campaign, targets)
            await self.reaper.reap(result.dead_token_ids)

        try:
            await self.reconciler.reconcile(campaign.id, result, processed=processed)
        except Exception as e:
            if not result.sent_count:
                raise
            logger.error(
                f"[Campaign {campaign.id}] {result.sent_count} pushes sent but stats were not recorded: {e}"
            )
            result.stats_error = f"Stats not recorded: {e}"
            await self.reconciler.note_error(campaign.id, result.stats_error)
        return result

    async def send(self, campaign: Campaign, resend: bool = False) -> DeliveryResult:
        """Claim and send a campaign now.

        Args:
            campaign: The campaign to send
            resend: Re-send a campaign that already reached sent/failed, or
                whose previous pass was interrupted

        Raises:
            CampaignStateError: If the campaign cannot be claimed
            GatewayConfigError: If the push gateway is unusable
        """
        from_statuses = RESENDABLE_STATUSES if resend else SENDABLE_STATUSES
        if not await self.claim(campaign.id, from_statuses, reclaim_stale=resend):
            raise CampaignStateError(
                f"Campaign {campaign.id} cannot be {'resent' if resend else 'sent'} from its current state"
            )

        logger.info(f"[Campaign {campaign.id}] {'Resending' if resend else 'Sending'} \"{campaign.title}\"")
        try:
            return await self.run(campaign)
        except Exception as e:
            logger.error(f"[Campaign {campaign.id}] Send failed: {e}")
            await self.reconciler.mark_failed(campaign.id, str(e))
            raise


# Global instance
campaign_sender = CampaignSender()
