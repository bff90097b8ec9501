import logging
from typing import Callable, Dict

from icefishing.domain.wheel_rules import Category, RoundClock, parse_category
from icefishing.errors import InsufficientFunds, ValidationError
from icefishing.services import now_ms
from icefishing.services.balance_ledger import balance_key
from icefishing.store import INSUFFICIENT, ROUND_SETTLED, KeyValueStore


def bet_key(round_id: int, account: str) -> str:
    return f"bet:{round_id}:{account}"


def pending_key(account: str) -> str:
    return f"bet:pending:{account}"


def settlement_marker_key(round_id: int, account: str) -> str:
    return f"bet:settled:{round_id}:{account}"


class BetBook:
    """Per-round, per-account wager accumulator."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: RoundClock,
        now: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.clock = clock
        self.now = now

    def validate(self, round_id: int, category: str, stake: int, now: int) -> Category:
        if isinstance(stake, bool) or not isinstance(stake, int) or stake <= 0:
            raise ValidationError("stake must be a positive integer amount of nanounits")
        parsed = parse_category(category)
        if parsed is None:
            raise ValidationError(f"unknown category: {category}")
        current = self.clock.round_id(now)
        if round_id != current:
            raise ValidationError(f"round {round_id} is not the current round {current}")
        if now >= self.clock.active_end(round_id):
            raise ValidationError(f"bets for round {round_id} are locked")
        return parsed

    async def place(self, account: str, round_id: int, category: str, stake: int) -> int:
        """Debit the stake and accumulate it into the round's bucket.

        The debit, the bucket write and the pending entry are one atomic store
        operation, refused once the round has been settled for this account.

        Args:
            account (str): Canonical account key
            round_id (int): Must be the current round, still in its active phase
            category (str): One of the wheel categories
            stake (int): Positive nanounits

        Raises:
            ValidationError: bad stake, category or round, or the round is already settled
            InsufficientFunds: balance does not cover the stake, nothing is changed

        Returns:
            int: New balance
        """
        parsed = self.validate(round_id, category, stake, self.now())

        status, balance = await self.store.place_bet(
            balance_key(account),
            bet_key(round_id, account),
            pending_key(account),
            settlement_marker_key(round_id, account),
            parsed.value,
            stake,
            round_id,
        )
        if status == ROUND_SETTLED:
            raise ValidationError(f"bets for round {round_id} are locked")
        if status == INSUFFICIENT:
            raise InsufficientFunds(account, balance, stake)
        logging.info(f"bet {account} round={round_id} {parsed.value} stake={stake}")
        return balance

    async def stakes(self, round_id: int, account: str) -> Dict[str, int]:
        raw = await self.store.hash_get_all(bet_key(round_id, account))
        stakes = {}
        for category, value in raw.items():
            try:
                stakes[category] = int(value)
            except ValueError:
                logging.warning(f"ignoring unparsable stake {value!r} in {bet_key(round_id, account)}")
        return stakes

    async def pending_rounds(self, account: str) -> list[int]:
        members = await self.store.set_members(pending_key(account))
        rounds = []
        for member in members:
            try:
                round_id = int(member)
            except ValueError:
                continue
            if round_id >= 0:
                rounds.append(round_id)
        return sorted(rounds)

    async def clear(self, round_id: int, account: str) -> None:
        await self.store.delete(bet_key(round_id, account))
        await self.store.set_remove(pending_key(account), round_id)
