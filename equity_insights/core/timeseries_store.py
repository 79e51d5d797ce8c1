"""Time-series store used by the historical percentile tracker.

Two primitives are needed:
- a string marker with expiry (daily de-duplication)
- a per-key sorted collection scored by timestamp (insert / range query / range delete)

RedisTimeSeriesStore maps them onto Redis strings and sorted sets.
InMemoryTimeSeriesStore keeps the same semantics in process and is used when
Redis is not configured (single-process deployments, tests).
"""

import asyncio
import logging
import math
import time
from typing import Dict, List, Optional, Protocol, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from equity_insights.core.config import Settings, settings as default_settings
from equity_insights.core.exceptions import StoreError

logger = logging.getLogger(__name__)


class TimeSeriesStore(Protocol):
    """Ordered key-value store contract"""

    name: str

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> bool:
        ...

    async def swap(self, key: str, value: str, expire: Optional[int] = None) -> Optional[str]:
        """Set ``key`` and return its previous value in one atomic step."""
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def zadd(self, key: str, score: float, member: str) -> int:
        ...

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> List[str]:
        ...

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        ...

    async def close(self) -> None:
        ...


def _score_arg(value: float):
    if value == math.inf:
        return "+inf"
    if value == -math.inf:
        return "-inf"
    return value


class RedisTimeSeriesStore:
    """Redis adapter (strings + sorted sets) with a key prefix"""

    name = "redis"

    def __init__(self, client: "redis.Redis", prefix: str = "equity_insights:"):
        self.client = client
        self.prefix = prefix

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(self._make_key(key))
        except RedisError as e:
            raise StoreError(f"GET {key} failed: {e}") from e

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> bool:
        try:
            return bool(await self.client.set(self._make_key(key), value, ex=expire))
        except RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    async def swap(self, key: str, value: str, expire: Optional[int] = None) -> Optional[str]:
        # SET ... GET (Redis >= 6.2) is a single atomic command
        try:
            return await self.client.set(self._make_key(key), value, ex=expire, get=True)
        except RedisError as e:
            raise StoreError(f"SET GET {key} failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return await self.client.delete(self._make_key(key)) > 0
        except RedisError as e:
            raise StoreError(f"DEL {key} failed: {e}") from e

    async def zadd(self, key: str, score: float, member: str) -> int:
        try:
            return await self.client.zadd(self._make_key(key), {member: score})
        except RedisError as e:
            raise StoreError(f"ZADD {key} failed: {e}") from e

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> List[str]:
        try:
            return await self.client.zrangebyscore(
                self._make_key(key), _score_arg(min_score), _score_arg(max_score)
            )
        except RedisError as e:
            raise StoreError(f"ZRANGEBYSCORE {key} failed: {e}") from e

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        try:
            return await self.client.zremrangebyscore(
                self._make_key(key), _score_arg(min_score), _score_arg(max_score)
            )
        except RedisError as e:
            raise StoreError(f"ZREMRANGEBYSCORE {key} failed: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryTimeSeriesStore:
    """Process-local store with the same semantics as the Redis adapter"""

    name = "memory"

    def __init__(self):
        # key -> (value, expires_at epoch seconds or None)
        self._strings: Dict[str, Tuple[str, Optional[float]]] = {}
        # key -> {member: score}
        self._sorted: Dict[str, Dict[str, float]] = {}
        self._lock = asyncio.Lock()

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._strings.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.time():
            del self._strings[key]
            return None
        return value

    def _store_value(self, key: str, value: str, expire: Optional[int]) -> None:
        expires_at = time.time() + expire if expire else None
        self._strings[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live_value(key)

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> bool:
        async with self._lock:
            self._store_value(key, value, expire)
            return True

    async def swap(self, key: str, value: str, expire: Optional[int] = None) -> Optional[str]:
        async with self._lock:
            previous = self._live_value(key)
            self._store_value(key, value, expire)
            return previous

    async def delete(self, key: str) -> bool:
        async with self._lock:
            existed = self._strings.pop(key, None) is not None
            existed = self._sorted.pop(key, None) is not None or existed
            return existed

    async def zadd(self, key: str, score: float, member: str) -> int:
        async with self._lock:
            members = self._sorted.setdefault(key, {})
            added = 0 if member in members else 1
            members[member] = score
            return added

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> List[str]:
        async with self._lock:
            members = self._sorted.get(key, {})
            hits = [(s, m) for m, s in members.items() if min_score <= s <= max_score]
            return [m for s, m in sorted(hits)]

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        async with self._lock:
            members = self._sorted.get(key)
            if not members:
                return 0
            doomed = [m for m, s in members.items() if min_score <= s <= max_score]
            for m in doomed:
                del members[m]
            return len(doomed)

    async def close(self) -> None:
        return None


def make_timeseries_store(config: Settings = default_settings) -> TimeSeriesStore:
    """Return a Redis-backed store when REDIS_ENABLED, otherwise the in-memory one."""
    if config.REDIS_ENABLED:
        client = redis.from_url(
            config.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info(f"Using Redis time-series store at {config.REDIS_URL}")
        return RedisTimeSeriesStore(client, prefix=config.REDIS_KEY_PREFIX)

    logger.warning("Redis not configured. Using in-memory time-series store.")
    return InMemoryTimeSeriesStore()
