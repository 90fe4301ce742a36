"""Policy-driven limiters and the factory that scopes them by key.

Responsibilities:
- Implement token bucket, fixed window, and sliding window accounting.
- Serialize fetch-compute-save per state id through a lock coordinator so two
  concurrent consumers never both take the last unit.
- Report retry-after durations for rejected consumes and look-ahead reservations.

Key types:
- `RateLimiterFactory`: owns `(id, policy, storage, lock factory)`.
- `Limiter`: keyed limiter instance with `consume`, `reserve`, and `reset`.
- `LimitResult`, `Reservation`: consume and look-ahead outcomes.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Callable

from .locks import LocalLockFactory, LockFactory
from .policy import FIXED_WINDOW, SLIDING_WINDOW, TOKEN_BUCKET, RateLimitPolicy
from .storage import InMemoryStorage, LimiterStorage


@dataclass(frozen=True, slots=True)
class LimitResult:
    """Outcome of one consume attempt.

    Attributes:
        accepted: Whether the requested units were deducted.
        retry_after_seconds: Seconds until the request could be accepted (0 when accepted).
        remaining: Whole units left after this attempt.
        limit: Configured capacity.
    """

    accepted: bool
    retry_after_seconds: float
    remaining: int
    limit: int

    @property
    def retry_after_whole_seconds(self) -> int:
        """Return retry-after rounded up to whole seconds."""

        return max(0, math.ceil(self.retry_after_seconds))


@dataclass(frozen=True, slots=True)
class Reservation:
    """Non-mutating look-ahead describing how long a consume would wait."""

    wait_duration_seconds: float


@dataclass(frozen=True, slots=True)
class _Evaluation:
    accepted: bool
    wait_seconds: float
    remaining: float
    state: dict[str, Any]
    ttl_seconds: float


class Limiter:
    """Keyed limiter instance bound to shared storage and a lock coordinator."""

    def __init__(
        self,
        state_id: str,
        policy: RateLimitPolicy,
        storage: LimiterStorage,
        lock_factory: LockFactory,
        clock: Callable[[], float],
    ) -> None:
        self.state_id = state_id
        self.policy = policy
        self._storage = storage
        self._lock_factory = lock_factory
        self._clock = clock

    def consume(self, amount: int = 1) -> LimitResult:
        """Atomically try to deduct `amount` units and report the outcome."""

        self._validate_amount(amount)
        with self._lock_factory.create(self.state_id):
            state = self._storage.fetch(self.state_id)
            evaluation = self._evaluate(state, self._clock(), amount)
            self._storage.save(self.state_id, evaluation.state, evaluation.ttl_seconds)

        return LimitResult(
            accepted=evaluation.accepted,
            retry_after_seconds=max(0.0, evaluation.wait_seconds),
            remaining=max(0, math.floor(evaluation.remaining)),
            limit=self.policy.limit,
        )

    def reserve(self, amount: int = 1) -> Reservation:
        """Return the wait a consume of `amount` would need, without deducting."""

        self._validate_amount(amount)
        state = self._storage.fetch(self.state_id)
        evaluation = self._evaluate(state, self._clock(), amount)
        return Reservation(wait_duration_seconds=max(0.0, evaluation.wait_seconds))

    def reset(self) -> None:
        """Drop stored state so the next consume starts from a full budget."""

        with self._lock_factory.create(self.state_id):
            self._storage.delete(self.state_id)

    def _validate_amount(self, amount: int) -> None:
        if amount <= 0:
            raise ValueError("Consume amount must be a positive integer.")
        if amount > self.policy.limit:
            raise ValueError(
                f"Cannot consume {amount} units from limiter `{self.state_id}` "
                f"with limit {self.policy.limit}."
            )

    def _evaluate(self, state: dict[str, Any] | None, now: float, amount: int) -> _Evaluation:
        raise NotImplementedError


class TokenBucketLimiter(Limiter):
    """Bucket of `limit` units refilled continuously at `amount` per interval."""

    def _evaluate(self, state: dict[str, Any] | None, now: float, amount: int) -> _Evaluation:
        limit = self.policy.limit
        interval = self.policy.interval_seconds
        refill = self.policy.amount

        if state is None:
            tokens = float(limit)
        else:
            elapsed = max(0.0, now - float(state["timestamp"]))
            tokens = min(float(limit), float(state["tokens"]) + elapsed * refill / interval)

        if tokens >= amount:
            tokens -= amount
            accepted = True
            wait_seconds = 0.0
        else:
            accepted = False
            wait_seconds = (amount - tokens) * interval / refill

        ttl_seconds = max(interval, (limit - tokens) * interval / refill)
        return _Evaluation(
            accepted=accepted,
            wait_seconds=wait_seconds,
            remaining=tokens,
            state={"tokens": tokens, "timestamp": now},
            ttl_seconds=ttl_seconds,
        )


class FixedWindowLimiter(Limiter):
    """`limit` hits per window; a window opens on first hit and lasts one interval."""

    def _evaluate(self, state: dict[str, Any] | None, now: float, amount: int) -> _Evaluation:
        limit = self.policy.limit
        interval = self.policy.interval_seconds

        if state is None or now >= float(state["window_start"]) + interval:
            window_start = now
            hits = 0
        else:
            window_start = float(state["window_start"])
            hits = int(state["hits"])

        window_end = window_start + interval
        if hits + amount <= limit:
            hits += amount
            accepted = True
            wait_seconds = 0.0
        else:
            accepted = False
            wait_seconds = window_end - now

        return _Evaluation(
            accepted=accepted,
            wait_seconds=wait_seconds,
            remaining=limit - hits,
            state={"window_start": window_start, "hits": hits},
            ttl_seconds=max(window_end - now, 0.001),
        )


class SlidingWindowLimiter(Limiter):
    """Weighted count over the current and previous window, without hard edges."""

    def _evaluate(self, state: dict[str, Any] | None, now: float, amount: int) -> _Evaluation:
        limit = self.policy.limit
        interval = self.policy.interval_seconds

        if state is None:
            window_start, hits, previous_hits = now, 0, 0
        else:
            window_start = float(state["window_start"])
            hits = int(state["hits"])
            previous_hits = int(state["previous_hits"])
            if now >= window_start + 2 * interval:
                window_start, hits, previous_hits = now, 0, 0
            elif now >= window_start + interval:
                window_start, hits, previous_hits = window_start + interval, 0, hits

        elapsed_fraction = (now - window_start) / interval
        weighted = previous_hits * (1.0 - elapsed_fraction) + hits
        if weighted + amount <= limit:
            hits += amount
            accepted = True
            wait_seconds = 0.0
            weighted += amount
        else:
            accepted = False
            wait_seconds = self._seconds_until_room(
                now, window_start, hits, previous_hits, amount
            )

        return _Evaluation(
            accepted=accepted,
            wait_seconds=wait_seconds,
            remaining=limit - weighted,
            state={"window_start": window_start, "hits": hits, "previous_hits": previous_hits},
            ttl_seconds=max(window_start + 2 * interval - now, 0.001),
        )

    def _seconds_until_room(
        self,
        now: float,
        window_start: float,
        hits: int,
        previous_hits: int,
        amount: int,
    ) -> float:
        limit = self.policy.limit
        interval = self.policy.interval_seconds

        # Room within the current window once enough previous hits decay.
        headroom = limit - hits - amount
        if headroom >= 0 and previous_hits > 0:
            fraction = 1.0 - headroom / previous_hits
            return max(0.0, window_start + fraction * interval - now)

        # Otherwise the current hits become the decaying previous window.
        next_start = window_start + interval
        if hits <= limit - amount:
            return max(0.0, next_start - now)
        fraction = 1.0 - (limit - amount) / hits
        return max(0.0, next_start + fraction * interval - now)


_LIMITER_CLASSES: dict[str, type[Limiter]] = {
    TOKEN_BUCKET: TokenBucketLimiter,
    FIXED_WINDOW: FixedWindowLimiter,
    SLIDING_WINDOW: SlidingWindowLimiter,
}


class RateLimiterFactory:
    """Create keyed limiters sharing one policy, storage backend, and lock coordinator."""

    def __init__(
        self,
        limiter_id: str,
        policy: RateLimitPolicy,
        storage: LimiterStorage | None = None,
        lock_factory: LockFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the factory.

        Args:
            limiter_id: Stable id prefix for state stored by created limiters.
            policy: Policy shared by every key.
            storage: State backend; process-local in-memory storage when omitted.
            lock_factory: Lock coordinator; process-local locks when omitted.
            clock: Wall-clock source in seconds.
        """

        self.limiter_id = limiter_id
        self.policy = policy
        self.storage = storage if storage is not None else InMemoryStorage(clock=clock)
        self.lock_factory = lock_factory if lock_factory is not None else LocalLockFactory()
        self.clock = clock

    def create(self, key: str | None = None) -> Limiter:
        """Return a limiter whose state is scoped to `key`."""

        state_id = self.limiter_id if key is None else f"{self.limiter_id}-{key}"
        limiter_class = _LIMITER_CLASSES[self.policy.policy]
        return limiter_class(
            state_id=state_id,
            policy=self.policy,
            storage=self.storage,
            lock_factory=self.lock_factory,
            clock=self.clock,
        )
