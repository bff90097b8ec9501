from typing import Callable, List

from icefishing.domain.wheel_rules import OutcomeOracle, Phase, RoundClock
from icefishing.models.dc_models import HistoryItemModel, RoundStateModel
from icefishing.services import now_ms
from icefishing.services.history_ledger import HistoryLedger


class RoundStateService:
    def __init__(
        self,
        clock: RoundClock,
        oracle: OutcomeOracle,
        history: HistoryLedger,
        now: Callable[[], int] = now_ms,
    ):
        self.clock = clock
        self.oracle = oracle
        self.history = history
        self.now = now

    async def get_history(self) -> List[HistoryItemModel]:
        entries = await self.history.refresh(self.now())
        return [HistoryItemModel.model_validate(e) for e in entries]

    async def get_round_state(self) -> RoundStateModel:
        """Describe the current round and the recent outcomes.

        The outcome of the current round is only revealed once its bets are
        locked.
        """
        now = self.now()
        round_id = self.clock.round_id(now)
        phase = self.clock.phase(now)
        history = await self.get_history()
        return RoundStateModel(
            server_now=now,
            round_id=round_id,
            phase=phase.value,
            round_start=self.clock.round_start(round_id),
            active_end=self.clock.active_end(round_id),
            next_round_start=self.clock.next_round_start(round_id),
            period_ms=self.clock.period_ms,
            outcome_preview=self.oracle.sector(round_id) if phase == Phase.cooldown else None,
            history=history,
        )
