"""Per-username login attempt tracking.

The store is chosen once at startup and injected through
``get_login_attempt_store``. The in-memory store is process-local and resets
on restart; the Redis store is shared across workers.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis
from fastapi import Request

from clinic_api.core.config import settings
from clinic_api.core.redis_client import reachable_redis_client


class LoginAttemptStore(Protocol):
    """Interface for failed-login counters keyed by username."""

    def is_locked(self, username: str) -> bool: ...

    def record_failure(self, username: str) -> int: ...

    def reset(self, username: str) -> None: ...


@dataclass
class _AttemptWindow:
    count: int
    first_attempt_at: float


class InMemoryLoginAttemptStore:
    """
    Thread-safe counter map keyed by lowercased username.

    A window decays after the lockout period; expired windows are pruned on
    every recorded failure.
    """

    def __init__(
        self,
        max_attempts: int,
        lockout_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._attempts: dict[str, _AttemptWindow] = {}

    def _expired(self, window: _AttemptWindow) -> bool:
        return self._clock() - window.first_attempt_at >= self.lockout_seconds

    def _current(self, key: str) -> _AttemptWindow | None:
        window = self._attempts.get(key)
        if window and self._expired(window):
            del self._attempts[key]
            return None
        return window

    def _prune(self) -> None:
        for key in [key for key, window in self._attempts.items() if self._expired(window)]:
            del self._attempts[key]

    def is_locked(self, username: str) -> bool:
        with self._lock:
            window = self._current(username.lower())
            return bool(window and window.count >= self.max_attempts)

    def record_failure(self, username: str) -> int:
        key = username.lower()
        with self._lock:
            self._prune()
            window = self._attempts.get(key)
            if window is None:
                window = _AttemptWindow(count=0, first_attempt_at=self._clock())
                self._attempts[key] = window
            window.count += 1
            return window.count

    def reset(self, username: str) -> None:
        with self._lock:
            self._attempts.pop(username.lower(), None)


class RedisLoginAttemptStore:
    """Shared counter using INCR + EXPIRE; the key TTL is the lockout window."""

    KEY_PREFIX = "login_attempts:"

    def __init__(self, client: redis.Redis, max_attempts: int, lockout_seconds: int):
        self.client = client
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds

    def _key(self, username: str) -> str:
        return f"{self.KEY_PREFIX}{username.lower()}"

    def is_locked(self, username: str) -> bool:
        value = self.client.get(self._key(username))
        return value is not None and int(value) >= self.max_attempts

    def record_failure(self, username: str) -> int:
        key = self._key(username)
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.lockout_seconds, nx=True)
        count, _ = pipe.execute()
        return int(count)

    def reset(self, username: str) -> None:
        self.client.delete(self._key(username))


class DisabledLoginAttemptStore:
    """Used outside production: never locks."""

    def is_locked(self, username: str) -> bool:
        return False

    def record_failure(self, username: str) -> int:
        return 0

    def reset(self, username: str) -> None:
        return None


def build_login_attempt_store() -> LoginAttemptStore:
    if not settings.login_rate_limit_enabled:
        return DisabledLoginAttemptStore()

    lockout_seconds = settings.LOGIN_LOCKOUT_MINUTES * 60
    client = reachable_redis_client("login attempts")
    if client is not None:
        return RedisLoginAttemptStore(client, settings.LOGIN_MAX_ATTEMPTS, lockout_seconds)
    return InMemoryLoginAttemptStore(settings.LOGIN_MAX_ATTEMPTS, lockout_seconds)


def get_login_attempt_store(request: Request) -> LoginAttemptStore:
    """Dependency: the store attached to app.state at startup."""
    store = getattr(request.app.state, "login_attempts", None)
    if store is None:
        store = build_login_attempt_store()
        request.app.state.login_attempts = store
    return store
