"""Analytics API for the dashboard."""
from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Campaign, Domain, PushToken
from ..models.campaign import STATUS_SENT
from ..schemas.analytics import AnalyticsHistory, AnalyticsOverview, HistoryDatasets
from ..services.stats import stats_reconciler
from ..utils.auth import get_current_owner
from ..utils.time_utils import utc_now

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

HISTORY_DAYS = 10


def _percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


@router.get("/overview", response_model=AnalyticsOverview)
async def get_overview(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Get dashboard headline numbers."""
    total_domains = await db.scalar(
        select(func.count(Domain.id)).where(Domain.owner_id == owner_id)
    )
    total_subscribers = await db.scalar(
        select(func.count(PushToken.id)).where(PushToken.owner_id == owner_id)
    )
    
    cutoff_24h = utc_now() - timedelta(hours=24)
    new_subscribers = await db.scalar(
        select(func.count(PushToken.id)).where(
            PushToken.owner_id == owner_id,
            PushToken.created_at >= cutoff_24h,
        )
    )
    
    campaign_totals = await db.execute(
        select(
            func.count(Campaign.id),
            func.coalesce(func.sum(Campaign.total_sent), 0),
            func.coalesce(func.sum(Campaign.total_failed), 0),
        ).where(Campaign.owner_id == owner_id)
    )
    total_campaigns, sent_sum, failed_sum = campaign_totals.one()
    
    campaigns_sent = await db.scalar(
        select(func.count(Campaign.id)).where(
            Campaign.owner_id == owner_id,
            Campaign.status == STATUS_SENT,
        )
    )
    
    total_reach, total_clicks = await stats_reconciler.get_global_stats(db)
    
    return AnalyticsOverview(
        total_domains=total_domains or 0,
        total_subscribers=total_subscribers or 0,
        total_campaigns=total_campaigns or 0,
        campaigns_sent=campaigns_sent or 0,
        total_reach=total_reach,
        total_clicks=total_clicks,
        click_rate=_percentage(total_clicks, total_reach),
        new_subscribers_24h=new_subscribers or 0,
        success_rate=_percentage(int(sent_sum), int(sent_sum) + int(failed_sum)),
    )


@router.get("/history", response_model=AnalyticsHistory)
async def get_history(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    """Get daily subscriber, reach and click series for the last ten days."""
    today = utc_now().date()
    days = [today - timedelta(days=offset) for offset in range(HISTORY_DAYS - 1, -1, -1)]
    index = {day: i for i, day in enumerate(days)}
    
    tokens_result = await db.execute(
        select(PushToken.created_at).where(PushToken.owner_id == owner_id)
    )
    new_subscribers = [0] * HISTORY_DAYS
    before_window = 0
    for (created_at,) in tokens_result.all():
        if created_at is None:
            continue
        day = created_at.date()
        if day in index:
            new_subscribers[index[day]] += 1
        elif day < days[0]:
            before_window += 1
    
    total_subscribers = []
    running = before_window
    for count in new_subscribers:
        running += count
        total_subscribers.append(running)
    
    campaigns_result = await db.execute(
        select(Campaign.sent_at, Campaign.total_sent, Campaign.total_clicks).where(
            Campaign.owner_id == owner_id,
            Campaign.sent_at.is_not(None),
        )
    )
    reach = [0] * HISTORY_DAYS
    clicks = [0] * HISTORY_DAYS
    for sent_at, total_sent, total_clicks in campaigns_result.all():
        i = index.get(sent_at.date())
        if i is None:
            continue
        reach[i] += total_sent or 0
        clicks[i] += total_clicks or 0
    
    return AnalyticsHistory(
        labels=[day.isoformat() for day in days],
        datasets=HistoryDatasets(
            total_clicks=clicks,
            total_reach=reach,
            total_subscribers=total_subscribers,
            new_subscribers=new_subscribers,
        ),
    )
