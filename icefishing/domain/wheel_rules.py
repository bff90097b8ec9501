"""Wheel rules that are independent from HTTP and Redis.

This module is organized by *concept* (sectors, payouts, outcomes, round timing).

Rule of thumb:
- OK: hashing, table lookups, integer round arithmetic.
- Not OK: touching Redis, FastAPI, time.time(), etc.
"""

import hashlib
import hmac
from enum import Enum

SECTOR_COUNT = 53

IDX_HUGE = 0
IDX_ORANGES = frozenset({13, 39})
IDX_BLUES = frozenset({7, 20, 33, 46})

POLICY_ACTIVE_END = "active_end"
POLICY_PREVIOUS_INDEX = "previous_index"


class Category(str, Enum):
    leaf1 = "leaf1"
    leaf2 = "leaf2"
    lilblues = "lilblues"
    bigoranges = "bigoranges"
    hugered = "hugered"


class Phase(str, Enum):
    active = "active"  # bets open, outcome not yet settleable
    cooldown = "cooldown"


PAYOUT_MULTIPLIERS = {
    Category.leaf1: 2,
    Category.leaf2: 2,
    Category.lilblues: 1,
    Category.bigoranges: 1,
    Category.hugered: 1,
}


def category_for_sector(index: int) -> Category:
    """Map a wheel sector index to its payout category."""
    if index < 0 or index >= SECTOR_COUNT:
        raise ValueError(f"sector index must be between 0 and {SECTOR_COUNT - 1}")
    if index == IDX_HUGE:
        return Category.hugered
    if index in IDX_ORANGES:
        return Category.bigoranges
    if index in IDX_BLUES:
        return Category.lilblues
    # the remaining sectors alternate between the two leaves
    return Category.leaf1 if index % 2 == 0 else Category.leaf2


def parse_category(value: str) -> Category | None:
    try:
        return Category(value)
    except ValueError:
        return None


def payout_for(stake: int, category: Category, winning_category: Category) -> int:
    """Return the credit owed for one bet bucket.

    Args:
        stake (int): Accumulated stake in nanounits
        category (Category): Category the stake was placed on
        winning_category (Category): Category of the round's outcome

    Returns:
        int: floor(stake * multiplier) when the category won, else 0
    """
    if category != winning_category or stake <= 0:
        return 0
    return int(stake * PAYOUT_MULTIPLIERS[category])


class OutcomeOracle:
    """Seed-keyed deterministic outcome per round.

    The result for a round never changes for a given seed, and cannot be
    computed by anyone who does not hold the seed.
    """

    def __init__(self, seed: str, sector_count: int = SECTOR_COUNT):
        self._key = seed.encode()
        self.sector_count = sector_count

    def sector(self, round_id: int) -> int:
        digest = hmac.new(self._key, str(round_id).encode(), hashlib.sha256).digest()
        return int.from_bytes(digest[:4], "big") % self.sector_count

    def category(self, round_id: int) -> Category:
        return category_for_sector(self.sector(round_id))


class RoundClock:
    """Maps wall-clock milliseconds to round ids and phase boundaries.

    Every instance agrees on the round id purely from the clock, no
    coordination is involved.
    """

    def __init__(self, active_ms: int, cooldown_ms: int, policy: str = POLICY_ACTIVE_END):
        if active_ms <= 0 or cooldown_ms < 0:
            raise ValueError("active_ms must be positive and cooldown_ms non-negative")
        if policy not in (POLICY_ACTIVE_END, POLICY_PREVIOUS_INDEX):
            raise ValueError(f"unknown last-completed policy: {policy}")
        self.active_ms = active_ms
        self.cooldown_ms = cooldown_ms
        self.period_ms = active_ms + cooldown_ms
        self.policy = policy

    def round_id(self, now_ms: int) -> int:
        return now_ms // self.period_ms

    def round_start(self, round_id: int) -> int:
        return round_id * self.period_ms

    def active_end(self, round_id: int) -> int:
        return self.round_start(round_id) + self.active_ms

    def next_round_start(self, round_id: int) -> int:
        return self.round_start(round_id) + self.period_ms

    def phase(self, now_ms: int) -> Phase:
        if now_ms < self.active_end(self.round_id(now_ms)):
            return Phase.active
        return Phase.cooldown

    def is_completed(self, round_id: int, now_ms: int) -> bool:
        return round_id <= self.last_completed_round_id(now_ms)

    def last_completed_round_id(self, now_ms: int) -> int:
        """Return the newest round whose outcome may be settled.

        With the ``active_end`` policy the current round counts as completed as
        soon as its active phase is over; with ``previous_index`` only the
        previous round does. May be -1 during the very first round.
        """
        current = self.round_id(now_ms)
        if self.policy == POLICY_ACTIVE_END and now_ms >= self.active_end(current):
            return current
        return current - 1
