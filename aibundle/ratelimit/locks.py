"""Lock coordinators that serialize limiter check-and-deduct operations."""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager
from typing import Any, Protocol

import redis


class LockFactory(Protocol):
    """Protocol for creating a lock scoped to one limiter state id."""

    def create(self, resource: str) -> AbstractContextManager[Any]:
        """Return a context manager holding the lock for `resource`."""


class LocalLockFactory:
    """Per-resource `threading.Lock` coordinator for a single process."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def create(self, resource: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource] = lock
            return lock


class RedisLockFactory:
    """Distributed lock coordinator built on `redis` client locks."""

    _KEY_PREFIX = "aibundle:lock:"

    def __init__(
        self,
        redis_client: Any,
        *,
        timeout_seconds: float = 5.0,
        blocking_timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize lock settings.

        Args:
            redis_client: `redis.Redis` client (or compatible) providing `lock()`.
            timeout_seconds: Lock auto-release time guarding against crashed holders.
            blocking_timeout_seconds: Maximum time to wait for the lock.
        """

        self.redis_client = redis_client
        self.timeout_seconds = timeout_seconds
        self.blocking_timeout_seconds = blocking_timeout_seconds

    @classmethod
    def from_url(cls, redis_url: str) -> RedisLockFactory:
        """Create a lock factory from a `redis://` connection URL."""

        return cls(redis.from_url(redis_url))

    def create(self, resource: str) -> AbstractContextManager[Any]:
        return self.redis_client.lock(
            f"{self._KEY_PREFIX}{resource}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.blocking_timeout_seconds,
        )
