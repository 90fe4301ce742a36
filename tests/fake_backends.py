"""In-process fakes for clocks, sleepers, and Redis used across the test suite."""

from __future__ import annotations

from typing import Any


class FakeClock:
    """Manually advanced wall clock in seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        """Initialize the clock at a fixed timestamp."""

        self.now = start

    def __call__(self) -> float:
        """Return the current fake timestamp."""

        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""

        self.now += seconds


class RecordingSleeper:
    """Sleeper that records requested waits and advances a fake clock."""

    def __init__(self, clock: FakeClock) -> None:
        """Bind the sleeper to the clock it advances."""

        self.clock = clock
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        """Record the wait and advance the bound clock."""

        self.calls.append(seconds)
        self.clock.advance(seconds)


class FakeRedisLock:
    """Context-manager lock double recording acquire/release order."""

    def __init__(self, client: FakeRedis, name: str) -> None:
        """Initialize lock bookkeeping."""

        self.client = client
        self.name = name

    def __enter__(self) -> FakeRedisLock:
        """Record lock acquisition."""

        self.client.events.append(("acquire", self.name))
        return self

    def __exit__(self, *_: object) -> None:
        """Record lock release."""

        self.client.events.append(("release", self.name))


class FakeRedis:
    """In-process subset of the `redis.Redis` API used by storage and locks."""

    def __init__(self) -> None:
        """Initialize empty keyspace and call logs."""

        self.values: dict[str, str] = {}
        self.expiries_ms: dict[str, int] = {}
        self.lock_calls: list[tuple[str, dict[str, Any]]] = []
        self.events: list[tuple[str, str]] = []

    def get(self, key: str) -> str | None:
        """Return a stored string value."""

        return self.values.get(key)

    def set(self, key: str, value: str, px: int | None = None) -> None:
        """Store a value and its millisecond expiry."""

        self.values[key] = value
        if px is not None:
            self.expiries_ms[key] = px

    def delete(self, key: str) -> None:
        """Delete a key when present."""

        self.values.pop(key, None)
        self.expiries_ms.pop(key, None)

    def lock(self, name: str, **kwargs: Any) -> FakeRedisLock:
        """Return a recording lock for a name."""

        self.lock_calls.append((name, kwargs))
        return FakeRedisLock(self, name)
