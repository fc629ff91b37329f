import asyncio

from pushcast.models import Campaign
from pushcast.services.dispatcher import (
    DeliveryDispatcher,
    build_click_tracking_url,
    build_message,
    delivery_dispatcher,
)
from pushcast.services.push_gateway import DeliveryOutcome
from pushcast.services.targeting import ResolvedTarget

from conftest import UNAVAILABLE_BODY, UNREGISTERED_BODY


def make_campaign(action_url="https://shop.com/sale?x=1&y=2"):
    return Campaign(
        id="camp-1",
        owner_id="owner-1",
        title="Sale",
        body="50% off",
        icon=None,
        action_url=action_url,
        domain_selector="all",
        platform_selector="all",
    )


def test_click_url_wraps_target_in_tracker() -> None:
    url = build_click_tracking_url("camp-1", "https://shop.com/sale?x=1&y=2", "https://api.push.test/")
    assert url == (
        "https://api.push.test/api/track-click?campaignId=camp-1"
        "&targetUrl=https%3A%2F%2Fshop.com%2Fsale%3Fx%3D1%26y%3D2"
    )


def test_click_url_keeps_existing_tracker_link() -> None:
    tracked = "https://api.push.test/api/track-click?campaignId=camp-1&targetUrl=%2F"
    assert build_click_tracking_url("camp-1", tracked, "https://elsewhere.test") == tracked


def test_message_is_data_only() -> None:
    target = ResolvedTarget(row_id="r1", push_token="tok-1", domain_hostname="shop.com")
    message = build_message(make_campaign(), target, "https://click")["message"]

    assert "notification" not in message
    assert message["token"] == "tok-1"
    assert message["android"] == {"priority": "high"}
    assert message["data"]["campaignId"] == "camp-1"
    assert message["data"]["domainId"] == "shop.com"
    assert message["data"]["url"] == "https://click"
    assert message["data"]["icon"] == "/icon.png"
    assert all(isinstance(v, str) for v in message["data"].values())


def test_dispatch_tallies_outcomes_per_token(fake_fcm) -> None:
    fake_fcm.fail("dead", 404, UNREGISTERED_BODY)
    fake_fcm.fail("busy", 503, UNAVAILABLE_BODY)
    targets = [ResolvedTarget(row_id=f"row-{t}", push_token=t) for t in ("ok-1", "dead", "busy", "ok-2", "ok-3")]

    dispatcher = DeliveryDispatcher(gateway=delivery_dispatcher.gateway, batch_size=2)
    result = asyncio.run(dispatcher.dispatch(make_campaign(), targets))

    assert sorted(fake_fcm.sent_tokens) == sorted(t.push_token for t in targets)
    assert result.total_targeted == 5
    assert result.sent_count == 3
    assert result.failed_count == 2
    assert result.dead_token_ids == ["row-dead"]
    summary = result.as_summary()
    assert (summary.total, summary.sent, summary.failed, summary.cleaned_up) == (5, 3, 2, 1)


def test_unexpected_send_error_is_isolated(fake_fcm) -> None:
    gateway = delivery_dispatcher.gateway
    original_send = gateway.send

    async def flaky_send(client, message):
        if message["message"]["token"] == "boom":
            raise RuntimeError("boom")
        return await original_send(client, message)

    gateway.send = flaky_send
    targets = [ResolvedTarget(row_id="a", push_token="boom"), ResolvedTarget(row_id="b", push_token="fine")]

    result = asyncio.run(DeliveryDispatcher(gateway=gateway).dispatch(make_campaign(), targets))

    assert result.sent_count == 1
    assert result.failed_count == 1
    assert result.dead_token_ids == []


def test_outcome_values_are_stable() -> None:
    assert {o.value for o in DeliveryOutcome} == {"accepted", "transient_failure", "permanent_failure"}


def test_sends_in_flight_never_exceed_batch_size(fake_fcm) -> None:
    gateway = delivery_dispatcher.gateway
    in_flight = 0
    peak = 0

    async def counting_send(client, message):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return DeliveryOutcome.ACCEPTED

    gateway.send = counting_send
    targets = [ResolvedTarget(row_id=f"r{i}", push_token=f"t{i}") for i in range(23)]

    result = asyncio.run(DeliveryDispatcher(gateway=gateway, batch_size=5).dispatch(make_campaign(), targets))

    assert result.sent_count == 23
    assert peak == 5
