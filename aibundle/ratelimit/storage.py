"""Limiter state storage backends.

Responsibilities:
- Persist per-key limiter state between consume calls.
- Offer a process-local backend and a Redis backend shared across processes.

Storage is not atomic by itself; limiters serialize fetch-compute-save through
a lock from `aibundle.ratelimit.locks`.
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Protocol

import redis


class LimiterStorage(Protocol):
    """Protocol for limiter state persistence."""

    def fetch(self, state_id: str) -> dict[str, Any] | None:
        """Return stored state for an id, or `None` when missing/expired."""

    def save(self, state_id: str, state: dict[str, Any], ttl_seconds: float) -> None:
        """Persist state for an id with an expiry."""

    def delete(self, state_id: str) -> None:
        """Remove stored state for an id."""


class InMemoryStorage:
    """Process-local limiter storage; state is lost on restart."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}
        self._guard = threading.Lock()

    def fetch(self, state_id: str) -> dict[str, Any] | None:
        with self._guard:
            entry = self._entries.get(state_id)
            if entry is None:
                return None
            expires_at, state = entry
            if expires_at <= self._clock():
                del self._entries[state_id]
                return None
            return dict(state)

    def save(self, state_id: str, state: dict[str, Any], ttl_seconds: float) -> None:
        with self._guard:
            self._entries[state_id] = (self._clock() + max(ttl_seconds, 0.001), dict(state))

    def delete(self, state_id: str) -> None:
        with self._guard:
            self._entries.pop(state_id, None)


class RedisStorage:
    """Redis-backed limiter storage shared by every process using the same server."""

    _KEY_PREFIX = "aibundle:ratelimit:"

    def __init__(self, redis_client: Any, key_prefix: str | None = None) -> None:
        """Initialize storage around a `redis.Redis` client (or compatible)."""

        self.redis_client = redis_client
        self.key_prefix = key_prefix if key_prefix is not None else self._KEY_PREFIX

    @classmethod
    def from_url(cls, redis_url: str) -> RedisStorage:
        """Create storage from a `redis://` connection URL."""

        return cls(redis.from_url(redis_url, decode_responses=True))

    def _key(self, state_id: str) -> str:
        return f"{self.key_prefix}{state_id}"

    def fetch(self, state_id: str) -> dict[str, Any] | None:
        raw = self.redis_client.get(self._key(state_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            return None
        return payload

    def save(self, state_id: str, state: dict[str, Any], ttl_seconds: float) -> None:
        ttl_ms = max(1, int(ttl_seconds * 1000))
        self.redis_client.set(
            self._key(state_id),
            json.dumps(state, sort_keys=True, separators=(",", ":")),
            px=ttl_ms,
        )

    def delete(self, state_id: str) -> None:
        self.redis_client.delete(self._key(state_id))
