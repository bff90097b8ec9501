import fakeredis
import pytest
import pytest_asyncio

from icefishing.domain.wheel_rules import OutcomeOracle, RoundClock
from icefishing.services.balance_ledger import BalanceLedger
from icefishing.store import KeyValueStore

# period of 10s: 4s of open betting, 6s of cooldown
ACTIVE_MS = 4000
COOLDOWN_MS = 6000


class FixedClock:
    """Wall clock the tests move by hand."""

    def __init__(self, now_ms: int):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FixedOracle(OutcomeOracle):
    """Oracle whose sector is chosen per round by the test."""

    def __init__(self, sectors: dict, default: int = 1):
        super().__init__("test-seed")
        self.sectors = sectors
        self.default = default

    def sector(self, round_id: int) -> int:
        return self.sectors.get(round_id, self.default)


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis) -> KeyValueStore:
    return KeyValueStore(redis)


@pytest.fixture
def balances(store) -> BalanceLedger:
    return BalanceLedger(store)


@pytest.fixture
def round_clock() -> RoundClock:
    return RoundClock(ACTIVE_MS, COOLDOWN_MS)


@pytest.fixture
def now() -> FixedClock:
    return FixedClock(0)
