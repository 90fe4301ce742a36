"""Lookup of limiter factories by provider and limit type.

Factories are registered explicitly at startup and passed in as a mapping, so
the set of rate-limited providers follows configuration.
"""

from __future__ import annotations

from typing import Mapping, Protocol

from ..errors import RateLimiterNotConfiguredError
from ..models.datatypes import LimitType, Model
from .limiter import RateLimiterFactory


class ExternalRateLimiter(Protocol):
    """Protocol for resolving limiter factories and per-model state keys."""

    def get_rate_limiter(
        self, provider_id: str, limit_type: str, model: Model
    ) -> RateLimiterFactory:
        """Return the factory for a provider/type, raising when none is registered."""

    def has_rate_limiter(self, provider_id: str, limit_type: str) -> bool:
        """Return whether a factory is registered for a provider/type."""

    def get_rate_limiter_key(self, provider_id: str, limit_type: str, model: Model) -> str:
        """Return the storage key under which a model's consumption is tracked."""


def limiter_service_id(provider_id: str, limit_type: LimitType | str) -> str:
    """Return the default service id for a provider/type pair."""

    type_value = limit_type.value if isinstance(limit_type, LimitType) else limit_type
    return f"{provider_id}_{type_value}"


class BundleExternalRateLimiter:
    """External rate limiter backed by factories registered from configuration."""

    def __init__(
        self,
        factories: Mapping[str, RateLimiterFactory],
        service_map: Mapping[str, Mapping[str, str]] | None = None,
    ) -> None:
        """Initialize the lookup.

        Args:
            factories: Limiter factories keyed by service id.
            service_map: Optional `{provider: {type: service_id}}` overrides of the
                default `"{provider}_{type}"` service id.
        """

        self._factories = dict(factories)
        self._service_map = {
            provider: dict(types) for provider, types in (service_map or {}).items()
        }

    def get_rate_limiter(
        self, provider_id: str, limit_type: str, model: Model
    ) -> RateLimiterFactory:
        service_id = self._service_id(provider_id, limit_type)
        factory = self._factories.get(service_id)
        if factory is None:
            raise RateLimiterNotConfiguredError(service_id, provider_id, _type_value(limit_type))
        return factory

    def has_rate_limiter(self, provider_id: str, limit_type: str) -> bool:
        return self._service_id(provider_id, limit_type) in self._factories

    def get_rate_limiter_key(self, provider_id: str, limit_type: str, model: Model) -> str:
        # All callers of one provider/type/model share a bucket; no tenant dimension.
        return f"{provider_id}_{_type_value(limit_type)}_{model.id}"

    def service_ids(self) -> list[str]:
        """Return registered service ids in sorted order."""

        return sorted(self._factories)

    def _service_id(self, provider_id: str, limit_type: str) -> str:
        type_value = _type_value(limit_type)
        override = self._service_map.get(provider_id, {}).get(type_value)
        if override is not None:
            return override
        return limiter_service_id(provider_id, type_value)


def _type_value(limit_type: LimitType | str) -> str:
    return limit_type.value if isinstance(limit_type, LimitType) else str(limit_type)
