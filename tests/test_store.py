import asyncio

import pytest

from icefishing.store import INSUFFICIENT, PLACED, ROUND_SETTLED


@pytest.mark.asyncio
async def test_increment_applies_delta(store):
    assert await store.increment("bal:a", 10) == (True, 10)
    assert await store.increment("bal:a", -4) == (True, 6)
    assert await store.get("bal:a") == "6"


@pytest.mark.asyncio
async def test_increment_rejects_below_floor(store):
    await store.increment("bal:a", 5)
    assert await store.increment("bal:a", -6) == (False, 5)
    assert await store.get("bal:a") == "5"


@pytest.mark.asyncio
async def test_increment_on_missing_key_below_floor(store):
    assert await store.increment("bal:nobody", -1) == (False, 0)
    assert await store.get("bal:nobody") is None


@pytest.mark.asyncio
async def test_set_if_absent_is_one_shot(store):
    results = await asyncio.gather(*(store.set_if_absent("marker", ttl_seconds=60) for _ in range(5)))
    assert sorted(results) == [False, False, False, False, True]
    assert 0 < await store.key_ttl("marker") <= 60_000


@pytest.mark.asyncio
async def test_key_ttl_missing(store):
    assert await store.key_ttl("missing") == -2


@pytest.mark.asyncio
async def test_replace_and_extend_list(store):
    await store.replace_list("l", ["a", "b"], "l:last", 2)
    await store.extend_list("l", ["c", "d"], 3, "l:last", 4)
    assert await store.list_range("l") == ["b", "c", "d"]
    assert await store.get("l:last") == "4"


@pytest.mark.asyncio
async def test_place_bet_writes_all_or_nothing(store):
    keys = ("bal:a", "bet:7:a", "bet:pending:a", "bet:settled:7:a")
    await store.increment("bal:a", 100)

    assert await store.place_bet(*keys, "leaf1", 150, 7) == (INSUFFICIENT, 100)
    assert await store.hash_get_all("bet:7:a") == {}

    assert await store.place_bet(*keys, "leaf1", 60, 7) == (PLACED, 40)
    assert await store.hash_get_all("bet:7:a") == {"leaf1": "60"}
    assert await store.set_members("bet:pending:a") == {"7"}

    await store.set_if_absent("bet:settled:7:a")
    assert await store.place_bet(*keys, "leaf1", 10, 7) == (ROUND_SETTLED, 40)
    assert await store.hash_get_all("bet:7:a") == {"leaf1": "60"}
