# Overview: Read-through cache backends (in-process and Redis) and cache-aside helpers.

"""
Read-through cache.

The cache is never authoritative: services compute every mutation decision
from the database and drop the affected keys right after commit. Reads go
through get_or_set(); cached values are JSON-compatible dicts (the output
of a model's to_dict()).

KEYS:
- order_<id>, order_details_<id>
- product_<id>
- payment_<id>
- cart_<user_id>
- tag_<id>
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable

import redis
from flask import current_app

EXTENSION_KEY = "storefront_cache"


def order_key(order_id: int) -> str:
    return f"order_{order_id}"


def order_details_key(order_id: int) -> str:
    return f"order_details_{order_id}"


def product_key(product_id: int) -> str:
    return f"product_{product_id}"


def payment_key(payment_id: int) -> str:
    return f"payment_{payment_id}"


def tag_key(tag_id: int) -> str:
    return f"tag_{tag_id}"


def cart_key(user_id: int) -> str:
    return f"cart_{user_id}"


class CacheBackend:
    """Minimal key/value contract both backends implement."""

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryCache(CacheBackend):
    """Per-process TTL cache guarded by a lock (WSGI workers may be threaded)."""

    def __init__(self):
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key, value, ttl_seconds):
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl_seconds, value)

    def remove(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCache(CacheBackend):
    """Shared cache in Redis; values are stored as JSON strings under a key prefix."""

    def __init__(self, client: redis.Redis, prefix: str = "storefront:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "storefront:") -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key):
        raw = self._client.get(self._k(key))
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key, value, ttl_seconds):
        self._client.set(self._k(key), json.dumps(value), ex=int(ttl_seconds))

    def remove(self, key):
        self._client.delete(self._k(key))

    def clear(self):
        # Only this application's keys; never FLUSHDB a shared instance
        keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
        if keys:
            self._client.delete(*keys)


def build_cache(config) -> CacheBackend:
    backend = (config.get("CACHE_BACKEND") or "memory").lower()
    if backend == "memory":
        return MemoryCache()
    if backend == "redis":
        return RedisCache.from_url(config["REDIS_URL"])
    raise ValueError(f"Unknown CACHE_BACKEND: {backend}")


def get_cache() -> CacheBackend:
    return current_app.extensions[EXTENSION_KEY]


def get_or_set(key: str, compute: Callable[[], Any], ttl_seconds: int | None = None) -> Any:
    """
    Cache-aside read.

    Returns the cached value for key, or calls compute(), stores its result
    and returns it. A None result is not cached. Redis outages degrade to a
    straight database read.
    """
    cache = get_cache()
    ttl = ttl_seconds or current_app.config["CACHE_DEFAULT_TTL_SECONDS"]

    try:
        cached = cache.get(key)
    except redis.RedisError:
        current_app.logger.warning("Cache read failed for %s", key, exc_info=True)
        return compute()
    if cached is not None:
        return cached

    value = compute()
    if value is not None:
        try:
            cache.set(key, value, ttl)
        except redis.RedisError:
            current_app.logger.warning("Cache write failed for %s", key, exc_info=True)
    return value


def invalidate(*keys: str) -> None:
    """Drop keys after a committed mutation."""
    cache = get_cache()
    for key in keys:
        try:
            cache.remove(key)
        except redis.RedisError:
            current_app.logger.error("Cache invalidation failed for %s", key, exc_info=True)
