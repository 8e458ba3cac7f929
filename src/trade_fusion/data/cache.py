"""Cache layer for composite scores, trade cards and verdicts."""

import asyncio
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

import diskcache

from trade_fusion.errors import CacheError
from trade_fusion.utils.normalize import canonical_dumps

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Best-effort key/value store. No transactional or cross-key ordering guarantees."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...


class DiskCacheStore:
    """
    diskcache-backed store holding canonical JSON text per key.

    Safe to share across processes. Expiry is handled by diskcache.
    """

    def __init__(self, cache_dir: str):
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)

    def get(self, key: str) -> str | None:
        return self.cache.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self.cache.set(key, value, expire=ttl)

    def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        return key in self.cache

    def clear(self) -> None:
        """Clear all cached entries."""
        self.cache.clear()

    def close(self) -> None:
        self.cache.close()


def composite_key(symbol: str, as_of: datetime) -> str:
    """Key for a CompositeScore: symbol plus UTC hour bucket."""
    bucket = as_of.astimezone(timezone.utc).strftime("%Y%m%d%H")
    return f"composite:{symbol.upper()}:{bucket}"


def recommendation_key(symbol: str, cycle_id: str) -> str:
    """Key for a Recommendation: symbol plus evaluation cycle."""
    return f"recommendation:{symbol.upper()}:{cycle_id}"


def validation_key(trade_id: str, strictness: str) -> str:
    """Key for a ValidationVerdict: recommendation id plus strictness level."""
    return f"validation:{trade_id}:{strictness}"


class FusionCache:
    """
    Cache-aside helper over a CacheStore.

    Store calls run in the default executor so disk I/O never blocks the loop.
    Every store failure is logged and treated as a miss; nothing here raises
    into the pipeline.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    def close(self) -> None:
        """Release the underlying store, when it holds any resources."""
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except Exception as e:
            raise CacheError(f"{type(e).__name__}: {e}") from e

    async def get_json(self, key: str) -> Any | None:
        """
        Read and decode a cached payload.

        Args:
            key: Cache key

        Returns:
            Decoded payload, or None on miss, store failure or corrupt entry
        """
        try:
            raw = await self._call(self.store.get, key)
        except CacheError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupt cache entry for {key}: {e}")
            return None

        logger.debug(f"Cache hit: {key}")
        return payload

    async def set_json(self, key: str, payload: Any, ttl: int) -> bool:
        """
        Encode and store a payload.

        Returns:
            True when stored, False when the store failed (logged)
        """
        try:
            value = canonical_dumps(payload)
            await self._call(self.store.set, key, value, ttl)
        except (CacheError, TypeError, ValueError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False
        return True

    async def get_or_compute(
        self,
        key: str,
        ttl: int,
        compute: Callable[[], Any],
        decode: Callable[[Any], Any],
        encode: Callable[[Any], Any],
    ) -> Any:
        """
        Cache-aside for a synchronous computation.

        A cached payload that fails to decode is treated as a miss.
        """
        payload = await self.get_json(key)
        if payload is not None:
            try:
                return decode(payload)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding undecodable cache entry {key}: {e}")

        value = compute()
        await self.set_json(key, encode(value), ttl)
        return value


class MemoryStore:
    """In-process store with TTL, for tests and single-shot tool calls."""

    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock or time.monotonic
        self._data: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = (value, self._clock() + ttl)

    def close(self) -> None:
        self._data.clear()
