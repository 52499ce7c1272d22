"""
Cache Module - Optional key-value cache in front of the store.
==============================================================

Read paths consult the cache first and fall back to the relational store.
The cache is never authoritative: every backend error is logged and turned
into a miss, so an unavailable cache degrades to direct store reads.
Concurrent writers may race; last writer wins.
"""

import fnmatch
import json
import math
import time
from typing import Any, Callable, Optional, Protocol

import redis
from cachetools import TLRUCache
from redis.exceptions import RedisError

from notebot_bridge.shared.config import Settings, get_settings
from notebot_bridge.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL = 3600


class KeyValueCache(Protocol):
    """Minimal cache contract used by the content store."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_pattern(self, pattern: str) -> int: ...


# ─────────────────────────────────────────────────────────────────────────────
# Backends
# ─────────────────────────────────────────────────────────────────────────────


class NullCache:
    """Cache that never stores anything (caching disabled)."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def delete_pattern(self, pattern: str) -> int:
        return 0


def _expires_at(key: str, entry: tuple[str, int], now: float) -> float:
    ttl = entry[1]
    return now + ttl if ttl > 0 else math.inf


class MemoryCache:
    """
    In-process cache with per-key expiry, backed by ``cachetools.TLRUCache``.

    Values are stored as JSON text so callers never share mutable state with
    the cache, the same as with Redis.
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._data = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)

    def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        return json.loads(entry[0])

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._data[key] = (json.dumps(value, default=str), ttl)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        self._data.expire()
        keys = [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern)]
        for key in keys:
            self._data.pop(key, None)
        return len(keys)

    def __len__(self) -> int:
        self._data.expire()
        return len(self._data)


class RedisCache:
    """
    Redis-backed cache with a key prefix.

    Example:
        >>> cache = RedisCache("redis://localhost:6379/0")
        >>> cache.set("levels", [{"slug": "1"}])
        >>> cache.get("levels")
        [{'slug': '1'}]
    """

    def __init__(
        self,
        url: str,
        key_prefix: str = "notebot:",
        default_ttl: int = DEFAULT_TTL,
        socket_timeout: float = 2.0,
        client: Optional[redis.Redis] = None,
    ):
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self._client = client if client is not None else redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._degraded = False

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _report(self, action: str, error: Exception) -> None:
        # One warning per outage, then quiet until the next success
        if not self._degraded:
            logger.warning(f"Cache {action} failed, falling back to store: {error}")
            self._degraded = True
        else:
            logger.debug(f"Cache {action} failed: {error}")

    def get(self, key: str) -> Optional[Any]:
        try:
            payload = self._client.get(self._key(key))
        except RedisError as e:
            self._report("get", e)
            return None

        self._degraded = False
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        try:
            payload = json.dumps(value, default=str)
            if ttl > 0:
                self._client.set(self._key(key), payload, ex=ttl)
            else:
                self._client.set(self._key(key), payload)
        except (RedisError, TypeError) as e:
            self._report("set", e)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except RedisError as e:
            self._report("delete", e)

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self._client.scan_iter(match=self._key(pattern)))
            if keys:
                self._client.delete(*keys)
            return len(keys)
        except RedisError as e:
            self._report("delete_pattern", e)
            return 0

    def close(self) -> None:
        self._client.close()


def build_cache(settings: Optional[Settings] = None) -> KeyValueCache:
    """Construct the configured cache backend."""
    settings = settings or get_settings()
    cache_config = settings.cache

    if not cache_config.enabled:
        return NullCache()
    if cache_config.backend == "memory":
        return MemoryCache(default_ttl=cache_config.ttl)

    return RedisCache(
        settings.get_effective_redis_url(),
        key_prefix=cache_config.key_prefix,
        default_ttl=cache_config.ttl,
        socket_timeout=cache_config.socket_timeout,
    )
