"""Rate limiting for provider clients.

This package provides policy-driven limiters with pluggable storage and lock
coordination, limiter lookup by provider and limit type, token estimation, and
the `RateLimitedClient` decorator with its retry state machine.
"""

from .client import RateLimitedClient, RequestOutcome, RetryState
from .estimator import CharacterRatioEstimator, TokenEstimator, TokenEstimatorRegistry
from .external import BundleExternalRateLimiter, ExternalRateLimiter, limiter_service_id
from .limiter import LimitResult, Limiter, RateLimiterFactory, Reservation
from .locks import LocalLockFactory, LockFactory, RedisLockFactory
from .policy import RateLimitPolicy, resolve_policy
from .provider_limiter import ProviderRateLimiter
from .storage import InMemoryStorage, LimiterStorage, RedisStorage

__all__ = [
    "BundleExternalRateLimiter",
    "CharacterRatioEstimator",
    "ExternalRateLimiter",
    "InMemoryStorage",
    "LimitResult",
    "Limiter",
    "LimiterStorage",
    "LocalLockFactory",
    "LockFactory",
    "ProviderRateLimiter",
    "RateLimitPolicy",
    "RateLimitedClient",
    "RateLimiterFactory",
    "RedisLockFactory",
    "RedisStorage",
    "RequestOutcome",
    "Reservation",
    "RetryState",
    "TokenEstimator",
    "TokenEstimatorRegistry",
    "limiter_service_id",
    "resolve_policy",
]
