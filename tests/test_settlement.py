import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from icefishing.services.bet_book import BetBook, bet_key, settlement_marker_key
from icefishing.services.settlement import SettlementEngine
from tests.conftest import FixedClock, FixedOracle

LEAF1_SECTOR = 2
LEAF2_SECTOR = 3
HUGE_SECTOR = 0


@pytest.fixture
def now():
    return FixedClock(420_500)


@pytest.fixture
def oracle():
    return FixedOracle({42: LEAF1_SECTOR, 43: LEAF2_SECTOR, 44: HUGE_SECTOR})


@pytest.fixture
def bets(store, round_clock, now):
    return BetBook(store, round_clock, now=now)


@pytest.fixture
def engine(store, bets, balances, oracle, round_clock, now):
    return SettlementEngine(store, bets, balances, oracle, round_clock, batch_size=10, now=now)


async def place_in_round(bets, now, account, round_id, category, stake):
    now.now_ms = round_id * 10_000 + 500
    await bets.place(account, round_id, category, stake)


@pytest.mark.asyncio
async def test_winning_round_is_credited_once(engine, bets, balances, now):
    await balances.increment("A", 100_000_000)
    await place_in_round(bets, now, "A", 42, "leaf1", 100_000_000)
    assert await balances.get("A") == 0

    now.now_ms = 424_000
    result = await engine.settle_pending("A")
    assert result.total_credited == 200_000_000
    assert [(r.round_id, r.winning_category, r.credited) for r in result.settled_rounds] == [
        (42, "leaf1", 200_000_000)
    ]
    assert result.settled_rounds[0].winner_index == LEAF1_SECTOR
    assert await bets.pending_rounds("A") == []
    assert await balances.get("A") == 200_000_000

    again = await engine.settle_pending("A")
    assert again.total_credited == 0
    assert again.settled_rounds == []
    assert await balances.get("A") == 200_000_000


@pytest.mark.asyncio
async def test_round_not_settled_while_active(engine, bets, balances, now):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    now.now_ms = 423_999
    result = await engine.settle_pending("A")
    assert result.settled_rounds == []
    assert await bets.pending_rounds("A") == [42]


@pytest.mark.asyncio
async def test_losing_bets_credit_nothing_but_clear(engine, bets, balances, now, store):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 43, "leaf1", 100)
    now.now_ms = 440_000
    result = await engine.settle_pending("A")
    assert [(r.round_id, r.winning_category, r.credited) for r in result.settled_rounds] == [
        (43, "leaf2", 0)
    ]
    assert await balances.get("A") == 0
    assert await bets.stakes(43, "A") == {}
    assert await bets.pending_rounds("A") == []


@pytest.mark.asyncio
async def test_only_winning_bucket_pays(engine, bets, balances, now):
    await balances.increment("A", 300)
    await place_in_round(bets, now, "A", 44, "hugered", 100)
    await place_in_round(bets, now, "A", 44, "leaf1", 200)
    now.now_ms = 450_000
    result = await engine.settle_pending("A")
    assert result.total_credited == 100
    assert await balances.get("A") == 100


@pytest.mark.asyncio
async def test_marker_held_elsewhere_skips_credit(engine, bets, balances, now, store):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    await store.set_if_absent(settlement_marker_key(42, "A"), ttl_seconds=60)
    now.now_ms = 424_000
    result = await engine.settle_pending("A")
    assert result.settled_rounds == []
    assert await balances.get("A") == 0
    assert await bets.pending_rounds("A") == []
    assert await store.hash_get_all(bet_key(42, "A")) == {}


@pytest.mark.asyncio
async def test_concurrent_settlement_credits_once(engine, bets, balances, now):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    now.now_ms = 424_000
    results = await asyncio.gather(*(engine.settle_pending("A") for _ in range(5)))
    assert sum(r.total_credited for r in results) == 200
    assert await balances.get("A") == 200


@pytest.mark.asyncio
async def test_backlog_is_drained_in_batches(store, bets, balances, oracle, round_clock, now):
    engine = SettlementEngine(store, bets, balances, oracle, round_clock, batch_size=2, now=now)
    await balances.increment("A", 300)
    for round_id in (42, 43, 44):
        await place_in_round(bets, now, "A", round_id, "leaf2", 100)
    now.now_ms = 460_000

    first = await engine.settle_pending("A")
    assert [r.round_id for r in first.settled_rounds] == [42, 43]
    assert await bets.pending_rounds("A") == [44]

    second = await engine.settle_pending("A")
    assert [r.round_id for r in second.settled_rounds] == [44]
    # leaf2 only won round 43
    assert await balances.get("A") == 200


@pytest.mark.asyncio
async def test_marker_has_bounded_ttl(engine, bets, balances, now, store):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    now.now_ms = 424_000
    await engine.settle_pending("A")
    ttl = await store.key_ttl(settlement_marker_key(42, "A"))
    assert 0 < ttl <= 24 * 60 * 60 * 1000


def fail_once(monkeypatch, target, name):
    """Make ``target.name`` raise a connection error on its first call only."""
    original = getattr(target, name)
    calls = []

    async def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise RedisConnectionError("connection reset")
        return await original(*args, **kwargs)

    monkeypatch.setattr(target, name, flaky)
    return calls


@pytest.mark.asyncio
async def test_failed_credit_is_never_paid_twice(monkeypatch, engine, bets, balances, now, store):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    now.now_ms = 424_000
    fail_once(monkeypatch, balances, "increment")

    with pytest.raises(RedisConnectionError):
        await engine.settle_pending("A")
    assert await balances.get("A") == 0

    retry = await engine.settle_pending("A")
    assert retry.settled_rounds == []
    assert await balances.get("A") == 0
    assert await store.hash_get_all(bet_key(42, "A")) == {}
    assert await bets.pending_rounds("A") == []


@pytest.mark.asyncio
async def test_failed_cleanup_after_credit_keeps_single_credit(monkeypatch, engine, bets, balances, now, store):
    await balances.increment("A", 100)
    await place_in_round(bets, now, "A", 42, "leaf1", 100)
    now.now_ms = 424_000
    calls = fail_once(monkeypatch, bets, "clear")

    with pytest.raises(RedisConnectionError):
        await engine.settle_pending("A")
    assert await balances.get("A") == 200
    assert await bets.pending_rounds("A") == [42]

    retry = await engine.settle_pending("A")
    assert retry.total_credited == 0
    assert len(calls) == 2
    assert await balances.get("A") == 200
    assert await store.hash_get_all(bet_key(42, "A")) == {}
    assert await bets.pending_rounds("A") == []
