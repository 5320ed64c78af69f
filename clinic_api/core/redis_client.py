"""Shared Redis connection for login lockout counters, rate limits and caches.

An empty ``REDIS_URL`` (or ``memory://``) means no Redis; callers then keep
their state in process.
"""

from __future__ import annotations

import logging

import redis

from clinic_api.core.config import settings

logger = logging.getLogger(__name__)

MEMORY_STORAGE_URI = "memory://"
CONNECT_TIMEOUT_SECONDS = 2.0
SOCKET_TIMEOUT_SECONDS = 2.0
HEALTH_CHECK_SECONDS = 30

_client: redis.Redis | None = None


def redis_url() -> str | None:
    url = (settings.REDIS_URL or "").strip()
    if not url or url.lower() == MEMORY_STORAGE_URI:
        return None
    return url


def get_redis_client() -> redis.Redis | None:
    """Pooled client, created on first use."""
    url = redis_url()
    if url is None:
        return None

    global _client
    if _client is None:
        pool = redis.ConnectionPool.from_url(
            url,
            max_connections=max(settings.REDIS_MAX_CONNECTIONS, 1),
            socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=HEALTH_CHECK_SECONDS,
            retry_on_timeout=True,
        )
        _client = redis.Redis(connection_pool=pool)
    return _client


def reachable_redis_client(purpose: str) -> redis.Redis | None:
    """Client that just answered PING, or None (logged) so the caller falls back."""
    client = get_redis_client()
    if client is None:
        return None
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning("Redis unavailable for %s, using in-memory: %s", purpose, e)
        return None
    return client
