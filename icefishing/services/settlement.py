import logging
from typing import Callable

from icefishing.domain.wheel_rules import OutcomeOracle, RoundClock, parse_category, payout_for
from icefishing.models.dc_models import SettledRoundModel, SettleResultModel
from icefishing.services import now_ms
from icefishing.services.balance_ledger import BalanceLedger
from icefishing.services.bet_book import BetBook, settlement_marker_key
from icefishing.store import KeyValueStore

SETTLEMENT_MARKER_TTL = 24 * 60 * 60


class SettlementEngine:
    """Credits winning stakes exactly once per (round, account).

    The settlement marker is taken before any balance mutation. A caller that
    loses the marker race treats the round as already settled.
    """

    def __init__(
        self,
        store: KeyValueStore,
        bets: BetBook,
        balances: BalanceLedger,
        oracle: OutcomeOracle,
        clock: RoundClock,
        batch_size: int = 10,
        now: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.bets = bets
        self.balances = balances
        self.oracle = oracle
        self.clock = clock
        self.batch_size = batch_size
        self.now = now

    async def settle_round(self, round_id: int, account: str) -> SettledRoundModel | None:
        """Settle one completed round for one account.

        Returns:
            SettledRoundModel | None: None if another caller already settled it
        """
        got = await self.store.set_if_absent(
            settlement_marker_key(round_id, account), ttl_seconds=SETTLEMENT_MARKER_TTL
        )
        if not got:
            logging.info(f"round {round_id} already settled for {account}")
            await self.bets.clear(round_id, account)
            return None

        stakes = await self.bets.stakes(round_id, account)
        winner_index = self.oracle.sector(round_id)
        winning_category = self.oracle.category(round_id)

        credit = 0
        for category, staked in stakes.items():
            parsed = parse_category(category)
            if parsed is None:
                continue
            credit += payout_for(staked, parsed, winning_category)

        if credit > 0:
            await self.balances.increment(account, credit)

        await self.bets.clear(round_id, account)
        logging.info(
            f"settled round {round_id} for {account}: winner={winning_category.value} credited={credit}"
        )
        return SettledRoundModel(
            round_id=round_id,
            winner_index=winner_index,
            winning_category=winning_category.value,
            credited=credit,
        )

    async def settle_pending(self, account: str) -> SettleResultModel:
        """Settle up to ``batch_size`` of the account's oldest completed rounds.

        Larger backlogs are drained by repeated calls.
        """
        last_completed = self.clock.last_completed_round_id(self.now())
        pending = await self.bets.pending_rounds(account)
        eligible = [r for r in pending if r <= last_completed][: self.batch_size]

        result = SettleResultModel(account=account, last_completed_round_id=last_completed)
        for round_id in eligible:
            settled = await self.settle_round(round_id, account)
            if settled is None:
                continue
            result.settled_rounds.append(settled)
            result.total_credited += settled.credited
        return result
