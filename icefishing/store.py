"""Thin adapter over the shared Redis store.

Only the atomic primitives the services rely on are exposed here. Nothing in
this module does a read-then-write on a money key: balance changes go through
``increment`` or ``place_bet``, each a single server-side script.
"""

import json
from typing import Any, Iterable, List, Optional, Tuple

from redis.asyncio import Redis

# Applies a signed delta unless the result would fall below the floor.
# Returns {applied(0|1), value}.
INCREMENT_WITH_FLOOR = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local delta = tonumber(ARGV[1])
local floor = tonumber(ARGV[2])
if current + delta < floor then
    return {0, current}
end
return {1, redis.call('INCRBY', KEYS[1], ARGV[1])}
"""

# KEYS: balance, bet bucket, pending set, settlement marker
# ARGV: stake, category, round id
# Returns {1, new balance} | {0, balance} when funds are short | {-1, balance} when the round is settled.
PLACE_BET = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if redis.call('EXISTS', KEYS[4]) == 1 then
    return {-1, current}
end
local stake = tonumber(ARGV[1])
if current - stake < 0 then
    return {0, current}
end
local balance = redis.call('DECRBY', KEYS[1], ARGV[1])
redis.call('HINCRBY', KEYS[2], ARGV[2], ARGV[1])
redis.call('SADD', KEYS[3], ARGV[3])
return {1, balance}
"""

PLACED = 1
INSUFFICIENT = 0
ROUND_SETTLED = -1


class KeyValueStore:
    def __init__(self, redis: Redis):
        """Wrap a Redis handle created with ``decode_responses=True``.

        Args:
            redis (Redis): Connection owned by the process entry point
        """
        self.redis: Redis = redis
        self._increment_script = redis.register_script(INCREMENT_WITH_FLOOR)
        self._place_bet_script = redis.register_script(PLACE_BET)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.redis.set(key, value, ex=ttl_seconds)

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.redis.set(key, json.dumps(value), ex=ttl_seconds)

    async def set_if_absent(
        self,
        key: str,
        value: Any = "1",
        ttl_seconds: Optional[int] = None,
        ttl_ms: Optional[int] = None,
    ) -> bool:
        """Conditional set used for advisory locks and one-shot markers.

        Returns:
            bool: True if this caller created the key, False if it already existed
        """
        got = await self.redis.set(key, value, nx=True, ex=ttl_seconds, px=ttl_ms)
        return bool(got)

    async def increment(self, key: str, delta: int, floor: int = 0) -> Tuple[bool, int]:
        """Atomically add ``delta`` to an integer key unless it would go below ``floor``.

        Args:
            key (str): Integer key, missing keys count as 0
            delta (int): Signed amount
            floor (int, optional): Lowest allowed result. Defaults to 0.

        Returns:
            Tuple[bool, int]: Whether the delta was applied and the resulting (or unchanged) value
        """
        applied, value = await self._increment_script(keys=[key], args=[int(delta), int(floor)])
        return bool(int(applied)), int(value)

    async def place_bet(
        self,
        balance_key: str,
        bet_key: str,
        pending_key: str,
        marker_key: str,
        category: str,
        stake: int,
        round_id: int,
    ) -> Tuple[int, int]:
        """Debit a stake, add it to the bet bucket and mark the round pending as one unit.

        Nothing is written when the balance does not cover the stake or the
        round's settlement marker already exists.

        Returns:
            Tuple[int, int]: PLACED, INSUFFICIENT or ROUND_SETTLED, and the balance
        """
        status, value = await self._place_bet_script(
            keys=[balance_key, bet_key, pending_key, marker_key],
            args=[int(stake), category, int(round_id)],
        )
        return int(status), int(value)

    async def list_append(self, key: str, *values: str) -> int:
        return await self.redis.rpush(key, *values)

    async def list_trim(self, key: str, start: int, end: int) -> None:
        await self.redis.ltrim(key, start, end)

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        return await self.redis.lrange(key, start, end)

    async def replace_list(self, key: str, values: Iterable[str], marker_key: str, marker_value: Any) -> None:
        """Delete a list, refill it and write its marker key in one MULTI/EXEC."""
        values = list(values)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            if values:
                pipe.rpush(key, *values)
            pipe.set(marker_key, marker_value)
            await pipe.execute()

    async def extend_list(
        self, key: str, values: Iterable[str], keep_last: int, marker_key: str, marker_value: Any
    ) -> None:
        """Append to a list, trim it to the last ``keep_last`` items and write its marker in one MULTI/EXEC."""
        values = list(values)
        async with self.redis.pipeline(transaction=True) as pipe:
            if values:
                pipe.rpush(key, *values)
            pipe.ltrim(key, -keep_last, -1)
            pipe.set(marker_key, marker_value)
            await pipe.execute()

    async def set_add(self, key: str, *members: Any) -> int:
        return await self.redis.sadd(key, *members)

    async def set_remove(self, key: str, *members: Any) -> int:
        return await self.redis.srem(key, *members)

    async def set_members(self, key: str) -> set:
        return await self.redis.smembers(key)

    async def hash_get_all(self, key: str) -> dict:
        return await self.redis.hgetall(key)

    async def delete(self, *keys: str) -> int:
        return await self.redis.delete(*keys)

    async def key_ttl(self, key: str) -> int:
        """Remaining TTL in ms; -1 when the key has no TTL, -2 when it is missing."""
        return await self.redis.pttl(key)
