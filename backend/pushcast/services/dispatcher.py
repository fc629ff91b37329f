"""Delivery dispatcher - fans a campaign out to its targets in bounded batches.

Sends run in fixed-size groups awaited together, which caps simultaneous
connections to the gateway. Each token's failure is isolated and classified;
nothing is retried within a pass.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from urllib.parse import quote

from ..config import settings
from ..models import Campaign
from ..schemas.campaign import DeliverySummary
from .push_gateway import DeliveryOutcome, FcmGateway, fcm_gateway
from .targeting import ResolvedTarget, chunked

logger = logging.getLogger(__name__)

TRACK_CLICK_PATH = "/api/track-click"


@dataclass
class DeliveryResult:
    """Outcome of one dispatch pass, consumed by the reaper and reconciler."""
    total_targeted: int = 0
    sent_count: int = 0
    failed_count: int = 0
    dead_token_ids: List[str] = field(default_factory=list)
    # Set when the pass went out but its stats could not be written
    stats_error: Optional[str] = None

    @property
    def cleaned_up(self) -> int:
        return len(self.dead_token_ids)

    def record(self, target: ResolvedTarget, outcome: DeliveryOutcome):
        if outcome == DeliveryOutcome.ACCEPTED:
            self.sent_count += 1
            return
        self.failed_count += 1
        if outcome == DeliveryOutcome.PERMANENT_FAILURE:
            self.dead_token_ids.append(target.row_id)

    def as_summary(self) -> DeliverySummary:
        return DeliverySummary(
            total=self.total_targeted,
            sent=self.sent_count,
            failed=self.failed_count,
            cleaned_up=self.cleaned_up,
        )


def build_click_tracking_url(campaign_id: str, action_url: Optional[str], base_url: str) -> str:
    """Return the URL a notification click should open.

    Action URLs that already point at the click tracker are used verbatim.
    """
    target_url = action_url or "/"
    if TRACK_CLICK_PATH in target_url:
        return target_url
    return (
        f"{base_url.rstrip('/')}{TRACK_CLICK_PATH}"
        f"?campaignId={quote(campaign_id, safe='')}&targetUrl={quote(target_url, safe='')}"
    )


def build_message(campaign: Campaign, target: ResolvedTarget, click_url: str) -> dict:
    """Build a data-only FCM message; the service worker renders it."""
    return {
        "message": {
            "token": target.push_token,
            "data": {
                "title": campaign.title or "",
                "body": campaign.body or "",
                "icon": campaign.icon or settings.default_icon,
                "url": click_url,
                "campaignId": campaign.id,
                "domainId": target.domain_hostname or "",
            },
            "android": {"priority": "high"},
        }
    }


class DeliveryDispatcher:
    """Sends one message per target with bounded concurrency."""

    def __init__(self, gateway: Optional[FcmGateway] = None, batch_size: Optional[int] = None):
        self.gateway = gateway or fcm_gateway
        self.batch_size = batch_size or settings.send_batch_size

    async def dispatch(self, campaign: Campaign, targets: Sequence[ResolvedTarget]) -> DeliveryResult:
        """Deliver a campaign to every target and tally the outcomes.

        Raises:
            GatewayConfigError: If the gateway cannot be used at all
        """
        result = DeliveryResult(total_targeted=len(targets))
        if not targets:
            return result

        click_url = build_click_tracking_url(campaign.id, campaign.action_url, settings.app_base_url)

        async with self.gateway.open_session() as client:

            async def send_one(target: ResolvedTarget) -> DeliveryOutcome:
                try:
                    return await self.gateway.send(client, build_message(campaign, target, click_url))
                except Exception:
                    logger.exception(f"[Campaign {campaign.id}] Unexpected error sending to {target.push_token[:16]}...")
                    return DeliveryOutcome.TRANSIENT_FAILURE

            for batch in chunked(list(targets), self.batch_size):
                outcomes = await asyncio.gather(*[send_one(target) for target in batch])
                for target, outcome in zip(batch, outcomes):
                    result.record(target, outcome)
                    if outcome == DeliveryOutcome.PERMANENT_FAILURE:
                        logger.warning(f"[Cleanup] Marking dead token: {target.row_id[:16]}...")

        logger.info(
            f"[Campaign {campaign.id}] Dispatch finished: {result.sent_count} sent, "
            f"{result.failed_count} failed, {result.cleaned_up} dead"
        )
        return result


# Global instance
delivery_dispatcher = DeliveryDispatcher()
