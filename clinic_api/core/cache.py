"""Payload caches for read-mostly responses.

``build_payload_cache`` picks the store once: Redis when it is reachable so
every worker sees the same entries and invalidations, otherwise an
in-process TTL map. Tests always get the in-process map.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Protocol, TypeVar

import redis

from clinic_api.core.config import settings
from clinic_api.core.redis_client import reachable_redis_client

T = TypeVar("T")


class PayloadCache(Protocol):
    """Interface for string payloads keyed within one namespace."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def get_or_fetch(self, key: str, fetcher: Callable[[], str], ttl: float | None = None) -> str: ...


@dataclass
class _CacheItem(Generic[T]):
    value: T
    stored_at: float
    ttl: float


class TTLCache(Generic[T]):
    """
    Keyed cache whose entries expire ``ttl`` seconds after being stored.

    ``clock`` is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[str, _CacheItem[T]] = {}

    def get(self, key: str) -> T | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if self._clock() - item.stored_at > item.ttl:
                del self._items[key]
                return None
            return item.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        with self._lock:
            self._items[key] = _CacheItem(
                value=value,
                stored_at=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def get_or_fetch(self, key: str, fetcher: Callable[[], T], ttl: float | None = None) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetcher()
        self.set(key, value, ttl)
        return value


class RedisPayloadCache:
    """Shared cache using SETEX; Redis expires the key after the TTL."""

    def __init__(self, client: redis.Redis, namespace: str, default_ttl: int):
        self.client = client
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> str | None:
        value = self.client.get(self._key(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        seconds = max(int(self.default_ttl if ttl is None else ttl), 1)
        self.client.setex(self._key(key), seconds, value)

    def remove(self, key: str) -> None:
        self.client.delete(self._key(key))

    def clear(self) -> None:
        keys = list(self.client.scan_iter(match=f"{self.namespace}:*"))
        if keys:
            self.client.delete(*keys)

    def get_or_fetch(self, key: str, fetcher: Callable[[], str], ttl: float | None = None) -> str:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetcher()
        self.set(key, value, ttl)
        return value


def build_payload_cache(namespace: str, default_ttl: int) -> PayloadCache:
    if settings.TESTING:
        return TTLCache(default_ttl=default_ttl)

    client = reachable_redis_client(f"{namespace} cache")
    if client is not None:
        return RedisPayloadCache(client, namespace, default_ttl)
    return TTLCache(default_ttl=default_ttl)
