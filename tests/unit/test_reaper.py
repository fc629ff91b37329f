import asyncio

from pushcast.models import PushToken
from pushcast.services.reaper import TokenReaper


def make_token(token_id):
    return PushToken(id=token_id, push_token=token_id, domain_id="d1", domain_hostname="shop.com", owner_id="owner-1")


def test_reap_deletes_only_listed_rows(test_ctx, seed, fetch) -> None:
    seed(make_token("a"), make_token("b"), make_token("c"))

    deleted = asyncio.run(TokenReaper().reap(["a", "c", "a"]))

    assert deleted == 2
    assert [t.id for t in fetch(PushToken)] == ["b"]


def test_reap_is_idempotent(test_ctx, seed, fetch) -> None:
    seed(make_token("a"), make_token("b"))
    reaper = TokenReaper()

    assert asyncio.run(reaper.reap(["a"])) == 1
    assert asyncio.run(reaper.reap(["a"])) == 0
    assert [t.id for t in fetch(PushToken)] == ["b"]


def test_reap_empty_list_is_noop(test_ctx, seed, fetch) -> None:
    seed(make_token("a"))

    assert asyncio.run(TokenReaper().reap([])) == 0
    assert len(fetch(PushToken)) == 1
