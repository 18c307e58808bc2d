"""Namespaced JSON cache: Redis when reachable, a local LRU otherwise.

Used for reverse-geocoding results, which are stable for a given
coordinate and expensive to fetch.  Redis is probed once on first use;
if the probe or any later Redis call fails, the cache switches to the
in-process LRU for the rest of the process lifetime.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import orjson
import structlog

logger = structlog.get_logger(__name__)


class LocalLRU:
    """Bounded LRU of serialised values with per-entry expiry."""

    __slots__ = ("_clock", "_entries", "_lock", "_max_entries")

    def __init__(self, max_entries: int = 5_000, clock: Callable[[], float] = time.monotonic) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[bytes, float | None]] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            raw, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return raw

    async def set(self, key: str, raw: bytes, ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        async with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (raw, expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)


class CacheManager:
    """JSON values under ``namespace`` with transparent Redis fallback.

    Parameters
    ----------
    namespace:
        Prefix for every key, e.g. ``"geocode:"``.
    redis_url:
        Redis connection string.  Empty or ``None`` means local only.
    max_entries:
        Capacity of the local LRU.
    """

    def __init__(
        self,
        namespace: str = "",
        *,
        redis_url: str | None = None,
        max_entries: int = 5_000,
        local: LocalLRU | None = None,
    ) -> None:
        self._namespace = namespace
        self._local = local or LocalLRU(max_entries)
        self._redis: Any | None = None
        self._use_redis = False
        self._probed = False
        if redis_url:
            import redis.asyncio as aioredis

            self._redis = aioredis.Redis.from_url(redis_url, decode_responses=False)

    @property
    def backend(self) -> str:
        return "redis" if self._use_redis else "memory"

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def _probe(self) -> None:
        if self._probed:
            return
        self._probed = True
        if self._redis is None:
            return
        try:
            self._use_redis = bool(await self._redis.ping())
        except Exception as exc:
            logger.warning("cache.redis_unavailable", namespace=self._namespace, error=str(exc))
            self._use_redis = False
        else:
            logger.info("cache.redis_connected", namespace=self._namespace)

    def _degrade(self, operation: str, exc: Exception) -> None:
        logger.warning("cache.redis_failed", operation=operation, error=str(exc))
        self._use_redis = False

    async def get(self, key: str, default: Any = None) -> Any:
        await self._probe()
        full_key = self._key(key)
        raw: bytes | None = None
        if self._use_redis:
            try:
                raw = await self._redis.get(full_key)
            except Exception as exc:
                self._degrade("get", exc)
        if not self._use_redis:
            raw = await self._local.get(full_key)
        if raw is None:
            return default
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("cache.corrupt_entry", key=full_key)
            return default

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self._probe()
        full_key = self._key(key)
        raw = orjson.dumps(value)
        if self._use_redis:
            try:
                await self._redis.set(full_key, raw, ex=ttl_seconds)
                return
            except Exception as exc:
                self._degrade("set", exc)
        await self._local.set(full_key, raw, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._probe()
        full_key = self._key(key)
        if self._use_redis:
            try:
                await self._redis.delete(full_key)
                return
            except Exception as exc:
                self._degrade("delete", exc)
        await self._local.delete(full_key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
