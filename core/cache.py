"""
Ephemeral Key-Value Storage for the lookup API.

Both the response cache and the per-client rate-limit counters are kept
behind the same small storage interface, `CacheBackend`
(`get`, `set(key, value, ttl)`, `delete`). Nothing stored here is meant to
survive a restart.

Key Components:
- `CacheBackend` (ABC): The storage interface.
- `MemoryCacheBackend`: Process-local dictionary with per-entry TTL and a size
  cap; when full, the oldest entry is evicted first. Suitable for a single
  instance.
- `RedisCacheBackend`: Shares state between instances through Redis. Values
  are stored as JSON and expire through Redis' own TTL.
- `CacheManager`: Facade used by the services. Cache failures are logged and
  reported as misses so that a broken cache never fails a lookup.
- `create_backend`: Builds the backend selected in settings.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

import redis.asyncio as redis

from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata"""

    value: Any
    created_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if cache entry has expired"""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class CacheBackend(ABC):
    """Abstract base class for cache backends"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get cache entry value by key"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Set cache entry with optional TTL in seconds"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete cache entry"""

    @abstractmethod
    async def clear(self) -> bool:
        """Clear all cache entries"""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

    async def close(self) -> None:
        """Release any connections held by the backend"""


class MemoryCacheBackend(CacheBackend):
    """In-memory cache backend with oldest-first eviction"""

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = None, clock=None):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self.cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self.cache[key]
                self.misses += 1
                logger.debug(f"Cache expired for key: {key}")
                return None

            self.hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        async with self._lock:
            now = self._clock()
            ttl = ttl if ttl is not None else self.default_ttl
            entry = CacheEntry(
                value=value,
                created_at=now,
                expires_at=now + ttl if ttl else None,
            )

            # Re-inserting moves the key to the newest position
            self.cache.pop(key, None)
            self._ensure_capacity(now)
            self.cache[key] = entry

            logger.debug(f"Cache set for key: {key}, TTL: {ttl}")
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.cache.pop(key, None) is not None

    async def clear(self) -> bool:
        async with self._lock:
            self.cache.clear()
            logger.info("Cache cleared")
            return True

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            total_requests = self.hits + self.misses
            return {
                "backend": "memory",
                "total_keys": len(self.cache),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total_requests if total_requests else 0.0,
                "evictions": self.evictions,
            }

    def _ensure_capacity(self, now: float) -> None:
        """Drop expired entries, then the oldest ones, until a slot is free"""
        if len(self.cache) < self.max_size:
            return

        for key in [k for k, e in self.cache.items() if e.is_expired(now)]:
            del self.cache[key]

        while self.cache and len(self.cache) >= self.max_size:
            oldest_key, _ = self.cache.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted oldest key: {oldest_key}")


class RedisCacheBackend(CacheBackend):
    """Redis cache backend for multi-instance deployments"""

    def __init__(self, redis_url: str, key_prefix: str = "vanity:", client=None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis = client or redis.from_url(
            redis_url, encoding="utf-8", decode_responses=True
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        payload = json.dumps(value)
        if ttl:
            await self._redis.set(self._key(key), payload, px=max(1, int(ttl * 1000)))
        else:
            await self._redis.set(self._key(key), payload)
        return True

    async def delete(self, key: str) -> bool:
        return bool(await self._redis.delete(self._key(key)))

    async def clear(self) -> bool:
        keys = [k async for k in self._redis.scan_iter(match=f"{self.key_prefix}*")]
        if keys:
            await self._redis.delete(*keys)
        return True

    async def stats(self) -> Dict[str, Any]:
        return {"backend": "redis", "key_prefix": self.key_prefix}

    async def close(self) -> None:
        await self._redis.aclose()


class CacheManager:
    """High-level cache manager"""

    def __init__(self, backend: CacheBackend):
        self.backend = backend
        self.logger = get_logger(f"{__name__}.CacheManager")

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        try:
            return await self.backend.get(key)
        except Exception as e:
            self.logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Set value in cache"""
        try:
            return await self.backend.set(key, value, ttl)
        except Exception as e:
            self.logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete value from cache"""
        try:
            return await self.backend.delete(key)
        except Exception as e:
            self.logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def stats(self) -> Dict[str, Any]:
        return await self.backend.stats()

    async def health_check(self) -> Dict[str, Any]:
        """Perform cache health check"""
        try:
            test_key = "__health_check__"
            await self.backend.set(test_key, "ok", ttl=1)
            retrieved = await self.backend.get(test_key)
            await self.backend.delete(test_key)
            stats = await self.backend.stats()

            return {
                "status": "healthy" if retrieved == "ok" else "unhealthy",
                "backend_type": stats.get("backend", "unknown"),
                "stats": stats,
            }
        except Exception as e:
            self.logger.error(f"Cache health check failed: {e}")
            return {"status": "unhealthy", "backend_type": "unknown", "error": str(e)}


def cache_key(*key_parts) -> str:
    """Generate a cache key from parts"""
    return ":".join(str(part) for part in key_parts if part is not None)


def create_backend(
    backend: str = "memory", redis_url: Optional[str] = None, max_size: int = 1000
) -> CacheBackend:
    """Build the storage backend named in settings"""
    if backend == "redis":
        if not redis_url:
            raise ValueError("REDIS_URL is required when STATE_BACKEND=redis")
        logger.info("Using Redis state backend")
        return RedisCacheBackend(redis_url)
    return MemoryCacheBackend(max_size=max_size)
