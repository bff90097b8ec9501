import json
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from icefishing.domain.wheel_rules import OutcomeOracle, RoundClock
from icefishing.models.schema_models import HistoryEntrySchema
from icefishing.store import KeyValueStore

HISTORY_KEY = "wheel:history"
LAST_ROUND_KEY = "wheel:lastRoundId"


def lock_key(round_id: int) -> str:
    return f"wheel:lock:{round_id}"


class HistoryLedger:
    """Bounded cache of the last ``history_max`` completed outcomes.

    The cache can always be rebuilt from the oracle, so any inconsistency is
    repaired by throwing it away.
    """

    def __init__(
        self,
        store: KeyValueStore,
        oracle: OutcomeOracle,
        clock: RoundClock,
        history_max: int = 18,
        max_round_drift: int = 60 * 60,
    ):
        self.store = store
        self.oracle = oracle
        self.clock = clock
        self.history_max = history_max
        self.max_round_drift = max_round_drift

    def entry_for(self, round_id: int) -> HistoryEntrySchema:
        sector = self.oracle.sector(round_id)
        return HistoryEntrySchema(
            round_id=round_id,
            winner_index=sector,
            category=self.oracle.category(round_id).value,
        )

    def _encode(self, round_id: int) -> str:
        return self.entry_for(round_id).model_dump_json()

    def expected_round_ids(self, last_completed_round_id: int) -> List[int]:
        start = max(0, last_completed_round_id - (self.history_max - 1))
        return list(range(start, last_completed_round_id + 1))

    async def rebuild(self, last_completed_round_id: int) -> None:
        """Drop the cached list and refill it with the last ``history_max`` rounds."""
        values = [self._encode(r) for r in self.expected_round_ids(last_completed_round_id)]
        await self.store.replace_list(HISTORY_KEY, values, LAST_ROUND_KEY, last_completed_round_id)
        logging.info(f"history rebuilt up to round {last_completed_round_id}")

    async def _read_last_recorded(self) -> Optional[int]:
        raw = await self.store.get(LAST_ROUND_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    async def ensure_up_to(self, last_completed_round_id: int) -> bool:
        """Bring the cache up to ``last_completed_round_id``.

        Only the caller that wins the per-round advisory lock writes; everyone
        else returns immediately and reads a cache at most one round stale.

        Args:
            last_completed_round_id (int): Newest completed round

        Returns:
            bool: True if this caller updated the cache
        """
        if last_completed_round_id < 0:
            return False

        got = await self.store.set_if_absent(
            lock_key(last_completed_round_id), ttl_ms=self.clock.period_ms + 1000
        )
        if not got:
            return False

        last = await self._read_last_recorded()
        if last is None:
            await self.rebuild(last_completed_round_id)
            return True

        drift = abs(last - last_completed_round_id)
        if last > last_completed_round_id or drift > self.max_round_drift:
            logging.warning(
                f"history marker {last} inconsistent with round {last_completed_round_id}, rebuilding"
            )
            await self.rebuild(last_completed_round_id)
            return True

        missing = [self._encode(r) for r in range(last + 1, last_completed_round_id + 1)]
        await self.store.extend_list(
            HISTORY_KEY, missing, self.history_max, LAST_ROUND_KEY, last_completed_round_id
        )
        return True

    def _parse(self, raw: List[str]) -> Optional[List[HistoryEntrySchema]]:
        entries = []
        for item in raw:
            try:
                entries.append(HistoryEntrySchema.model_validate(json.loads(item)))
            except (ValueError, TypeError, PydanticValidationError):
                logging.warning(f"corrupt history entry: {item!r}")
                return None
        return entries

    def _is_consistent(self, entries: List[HistoryEntrySchema], last_completed_round_id: int) -> bool:
        if not entries:
            return False
        round_ids = [e.round_id for e in entries]
        if round_ids[-1] > last_completed_round_id:
            return False
        if round_ids != list(range(round_ids[0], round_ids[0] + len(round_ids))):
            return False
        return len(round_ids) == min(self.history_max, round_ids[-1] + 1)

    async def read(self, last_completed_round_id: int) -> List[HistoryEntrySchema]:
        """Return the cached history ascending by round id without duplicates.

        A list that cannot be parsed, is not contiguous, is short or runs past
        ``last_completed_round_id`` gets rebuilt before returning.
        """
        if last_completed_round_id < 0:
            return []
        raw = await self.store.list_range(HISTORY_KEY, 0, -1)
        entries = self._parse(raw)
        if entries is not None:
            by_round = {e.round_id: e for e in entries}
            entries = [by_round[r] for r in sorted(by_round)][-self.history_max:]
        if entries is None or not self._is_consistent(entries, last_completed_round_id):
            await self.rebuild(last_completed_round_id)
            return [self.entry_for(r) for r in self.expected_round_ids(last_completed_round_id)]
        return entries

    async def refresh(self, now_ms: int) -> List[HistoryEntrySchema]:
        last_completed = self.clock.last_completed_round_id(now_ms)
        await self.ensure_up_to(last_completed)
        return await self.read(last_completed)
