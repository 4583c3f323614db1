from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Protocol

import redis

from marketplace.core.config import settings

_LOG = logging.getLogger("marketplace.list_cache")


class ListCache(Protocol):
    """Time-boxed page cache with per-tag invalidation.

    Every tag has a generation number. Keys are built from the generation that
    was current before the database was read, so a page computed before an
    invalidation is written under a generation nobody reads any more.
    """

    def generation(self, tag: str) -> int:
        ...

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        ...

    def invalidate(self, tag: str) -> None:
        ...


def build_cache_key(tag: str, generation: int, payload: str) -> str:
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{settings.LIST_CACHE_PREFIX}:{tag}:g{generation}:{digest}"


class NullListCache:
    def generation(self, tag: str) -> int:
        return 0

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        return None

    def invalidate(self, tag: str) -> None:
        return None


class InMemoryListCache:
    def __init__(self):
        self._data: dict[str, tuple[str, datetime]] = {}
        self._generations: dict[str, int] = {}
        self._lock = Lock()

    def generation(self, tag: str) -> int:
        with self._lock:
            return self._generations.get(tag, 0)

    def get(self, key: str) -> str | None:
        now = datetime.now(timezone.utc)
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=max(int(ttl_seconds), 1))
        with self._lock:
            # Expired pages are dropped on every write.
            for stale in [item for item, (_, item_expires_at) in self._data.items() if item_expires_at <= now]:
                del self._data[stale]
            self._data[key] = (value, expires_at)

    def invalidate(self, tag: str) -> None:
        marker = f"{settings.LIST_CACHE_PREFIX}:{tag}:"
        with self._lock:
            self._generations[tag] = self._generations.get(tag, 0) + 1
            for key in [key for key in self._data if key.startswith(marker)]:
                del self._data[key]


class RedisListCache:
    def __init__(self, client: redis.Redis):
        self.client = client

    def _generation_key(self, tag: str) -> str:
        return f"{settings.LIST_CACHE_PREFIX}:{tag}:generation"

    def generation(self, tag: str) -> int:
        raw = self.client.get(self._generation_key(tag))
        return int(raw) if raw is not None else 0

    def get(self, key: str) -> str | None:
        return self.client.get(key)

    def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=int(max(ttl_seconds, 1)))

    def invalidate(self, tag: str) -> None:
        # Old generations simply expire with their TTL.
        self.client.incr(self._generation_key(tag))


_cached_list_cache: ListCache | None = None


def _build_list_cache() -> ListCache:
    backend = str(settings.LIST_CACHE_BACKEND or "").strip().lower()
    if backend == "none":
        return NullListCache()
    if backend == "memory":
        return InMemoryListCache()
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisListCache(client)
    except redis.RedisError:
        _LOG.warning("Redis list cache unavailable; fallback to in-memory cache")
        return InMemoryListCache()


def get_list_cache() -> ListCache:
    global _cached_list_cache
    if _cached_list_cache is None:
        _cached_list_cache = _build_list_cache()
    return _cached_list_cache


def reset_list_cache_for_tests(cache: ListCache | None = None) -> None:
    global _cached_list_cache
    _cached_list_cache = cache


def cached_json(cache: ListCache | None, tag: str, ttl_seconds: int, payload: str, loader: Callable[[], Any]) -> Any:
    """Return ``loader()`` memoized under ``tag``; cache failures only cost a miss."""
    if cache is None:
        return loader()
    key = None
    try:
        key = build_cache_key(tag, cache.generation(tag), payload)
        cached = cache.get(key)
        if cached is not None:
            return json.loads(cached)
    except (redis.RedisError, ValueError) as exc:
        _LOG.warning("list cache read failed for %s: %s", tag, exc)

    value = loader()
    if key is not None:
        try:
            cache.set(key, json.dumps(value, ensure_ascii=False), ttl_seconds=ttl_seconds)
        except redis.RedisError as exc:
            _LOG.warning("list cache write failed for %s: %s", tag, exc)
    return value
