import asyncio

from pushcast.models import Campaign, GlobalStats
from pushcast.models.global_stats import GLOBAL_STATS_ID
from pushcast.services.dispatcher import DeliveryResult
from pushcast.services.stats import NO_SUBSCRIBERS_REASON, StatsReconciler, final_status


def make_campaign(campaign_id, status="processing"):
    return Campaign(id=campaign_id, owner_id="owner-1", title="t", body="b", status=status)


def test_final_status_rules() -> None:
    assert final_status(DeliveryResult()) == ("failed", NO_SUBSCRIBERS_REASON)
    assert final_status(DeliveryResult(total_targeted=3, sent_count=1, failed_count=2))[0] == "sent"
    status, reason = final_status(DeliveryResult(total_targeted=2, failed_count=2))
    assert status == "failed"
    assert reason


def test_reconcile_writes_absolute_stats_and_adds_reach(test_ctx, seed, fetch) -> None:
    seed(make_campaign("c1"))
    reconciler = StatsReconciler()

    asyncio.run(reconciler.reconcile("c1", DeliveryResult(total_targeted=5, sent_count=4, failed_count=1)))
    asyncio.run(reconciler.reconcile("c1", DeliveryResult(total_targeted=3, sent_count=2, failed_count=1)))

    campaign = fetch(Campaign, "c1")
    assert campaign.status == "sent"
    assert (campaign.total_targeted, campaign.total_sent, campaign.total_failed) == (3, 2, 1)
    assert campaign.sent_at is not None
    assert campaign.processed_at is None
    assert fetch(GlobalStats, GLOBAL_STATS_ID).total_reach == 6


def test_concurrent_reconciles_never_lose_reach(test_ctx, seed, fetch) -> None:
    seed(*[make_campaign(f"c{i}") for i in range(6)])
    reconciler = StatsReconciler()

    async def _run():
        await asyncio.gather(*[
            reconciler.reconcile(f"c{i}", DeliveryResult(total_targeted=i + 1, sent_count=i + 1))
            for i in range(6)
        ])

    asyncio.run(_run())

    assert fetch(GlobalStats, GLOBAL_STATS_ID).total_reach == sum(range(1, 7))


def test_all_failed_pass_leaves_global_untouched(test_ctx, seed, fetch) -> None:
    seed(make_campaign("c1"))

    status = asyncio.run(StatsReconciler().reconcile("c1", DeliveryResult(total_targeted=2, failed_count=2)))

    assert status == "failed"
    assert fetch(GlobalStats, GLOBAL_STATS_ID) is None


def test_record_click_increments_both_counters(test_ctx, seed, fetch) -> None:
    seed(make_campaign("c1", status="sent"))
    reconciler = StatsReconciler()

    async def _run():
        await asyncio.gather(*[reconciler.record_click("c1") for _ in range(5)])

    asyncio.run(_run())

    campaign = fetch(Campaign, "c1")
    assert campaign.total_clicks == 5
    assert campaign.last_clicked_at is not None
    assert fetch(GlobalStats, GLOBAL_STATS_ID).total_clicks == 5


def test_record_click_for_unknown_campaign_counts_nothing(test_ctx, fetch) -> None:
    assert asyncio.run(StatsReconciler().record_click("missing")) is False
    assert fetch(GlobalStats, GLOBAL_STATS_ID) is None


def test_mark_failed_sets_reason(test_ctx, seed, fetch) -> None:
    seed(make_campaign("c1"))

    assert asyncio.run(StatsReconciler().mark_failed("c1", "gateway exploded", processed=True))

    campaign = fetch(Campaign, "c1")
    assert campaign.status == "failed"
    assert campaign.error == "gateway exploded"
    assert campaign.processed_at is not None
