import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

from pushcast.models import Campaign, Domain, PushToken
from pushcast.services.targeting import TargetingResolver, chunked, deduplicate_targets


def make_token(token_id, hostname, domain_id, owner_id="owner-1", platform="web", push_token=None, **kwargs):
    return PushToken(
        id=token_id,
        push_token=push_token or token_id,
        domain_id=domain_id,
        domain_hostname=hostname,
        owner_id=owner_id,
        platform=platform,
        **kwargs,
    )


def make_campaign(domain_selector="all", platform_selector="all", owner_id="owner-1"):
    return Campaign(
        id="c1",
        owner_id=owner_id,
        title="Hello",
        body="World",
        action_url="/",
        domain_selector=domain_selector,
        platform_selector=platform_selector,
        status="processing",
    )


def resolve(test_ctx, campaign, chunk_size=10):
    async def _run():
        async with test_ctx["session_local"]() as session:
            return await TargetingResolver(chunk_size=chunk_size).resolve(session, campaign)

    return asyncio.run(_run())


def test_chunked_splits_into_bounded_lists() -> None:
    assert list(chunked(list(range(23)), 10)) == [list(range(10)), list(range(10, 20)), [20, 21, 22]]
    assert list(chunked([], 10)) == []


def test_deduplicate_keeps_most_recently_active_row() -> None:
    now = datetime(2024, 5, 1, 12, 0)
    rows = [
        SimpleNamespace(id="a", push_token="T", domain_hostname="x.com", last_active_at=now - timedelta(days=2)),
        SimpleNamespace(id="b", push_token="T", domain_hostname="y.com", last_active_at=now),
        SimpleNamespace(id="c", push_token="U", domain_hostname="x.com", last_active_at=None),
        SimpleNamespace(id="d", push_token="", domain_hostname="x.com", last_active_at=now),
    ]

    targets = deduplicate_targets(rows)

    assert {t.push_token for t in targets} == {"T", "U"}
    winner = next(t for t in targets if t.push_token == "T")
    assert winner.row_id == "b"
    assert winner.domain_hostname == "y.com"


def test_deduplicate_is_independent_of_row_order() -> None:
    rows = [
        SimpleNamespace(id="b", push_token="T", domain_hostname="y.com", last_active_at=None),
        SimpleNamespace(id="a", push_token="T", domain_hostname="x.com", last_active_at=None),
    ]
    assert deduplicate_targets(rows)[0].row_id == deduplicate_targets(list(reversed(rows)))[0].row_id == "a"


def test_all_domains_spans_hostname_chunks(test_ctx, seed) -> None:
    domains = [Domain(id=f"d{i}", owner_id="owner-1", hostname=f"site{i}.com") for i in range(12)]
    tokens = [make_token(f"tok-{i}", f"site{i}.com", f"d{i}") for i in range(12)]
    seed(*domains, *tokens, make_token("foreign", "other.com", "dx", owner_id="owner-2"))

    targets = resolve(test_ctx, make_campaign(), chunk_size=5)

    assert sorted(t.row_id for t in targets) == sorted(f"tok-{i}" for i in range(12))


def test_all_domains_without_domains_matches_nothing(test_ctx, seed) -> None:
    seed(make_token("orphan", "site.com", "d1"))
    assert resolve(test_ctx, make_campaign()) == []


def test_specific_domain_matches_by_hostname(test_ctx, seed) -> None:
    seed(
        Domain(id="d1", owner_id="owner-1", hostname="shop.com"),
        Domain(id="d2", owner_id="owner-1", hostname="blog.com"),
        make_token("t1", "shop.com", "d1"),
        make_token("t2", "shop.com", "legacy-id"),
        make_token("t3", "blog.com", "d2"),
    )

    targets = resolve(test_ctx, make_campaign(domain_selector="d1"))

    assert sorted(t.row_id for t in targets) == ["t1", "t2"]


def test_unknown_domain_falls_back_to_domain_id(test_ctx, seed) -> None:
    seed(
        make_token("t1", None, "gone-domain"),
        make_token("t2", "shop.com", "other"),
    )

    targets = resolve(test_ctx, make_campaign(domain_selector="gone-domain"))

    assert [t.row_id for t in targets] == ["t1"]


def test_platform_filter_is_applied(test_ctx, seed) -> None:
    seed(
        Domain(id="d1", owner_id="owner-1", hostname="shop.com"),
        make_token("web-1", "shop.com", "d1", platform="web"),
        make_token("android-1", "shop.com", "d1", platform="android"),
    )

    targets = resolve(test_ctx, make_campaign(platform_selector="android"))

    assert [t.row_id for t in targets] == ["android-1"]


def test_duplicate_tokens_across_rows_are_sent_once(test_ctx, seed) -> None:
    now = datetime(2024, 5, 1)
    seed(
        Domain(id="d1", owner_id="owner-1", hostname="shop.com"),
        Domain(id="d2", owner_id="owner-1", hostname="blog.com"),
        make_token("row-a", "shop.com", "d1", push_token="SAME", last_active_at=now),
        make_token("row-b", "blog.com", "d2", push_token="SAME", last_active_at=now + timedelta(hours=1)),
    )

    targets = resolve(test_ctx, make_campaign())

    assert len(targets) == 1
    assert targets[0].row_id == "row-b"
