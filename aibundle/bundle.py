"""Explicit wiring of provider clients, limiters, and platforms from configuration.

Responsibilities:
- Build one base client per supported provider with a non-empty API key.
- Build limiter factories for configured `(provider, type)` pairs and wrap clients
  in rate-limited decorators when rate limiting is enabled.
- Expose every wired component on a `Bundle` for commands and tests.

Notes:
- Wiring is explicit; limiter factories are passed to the external rate limiter
  as a mapping keyed by service id instead of being looked up from a container.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Callable, Mapping

from .config import BundleConfig, ProviderConfig
from .models.datatypes import ProviderId
from .platform import Platform, ProviderPlatform
from .providers.anthropic_client import AnthropicClient
from .providers.base import ProviderClient
from .providers.catalog import create_provider
from .providers.gemini_client import GeminiClient
from .providers.openai_client import OpenAIClient
from .ratelimit.client import RateLimitedClient
from .ratelimit.estimator import TokenEstimatorRegistry
from .ratelimit.external import BundleExternalRateLimiter, limiter_service_id
from .ratelimit.limiter import RateLimiterFactory
from .ratelimit.locks import LocalLockFactory, LockFactory, RedisLockFactory
from .ratelimit.provider_limiter import ProviderRateLimiter
from .ratelimit.storage import InMemoryStorage, LimiterStorage, RedisStorage
from .telemetry.logger import BundleLogger, NullLogger

ClientFactory = Callable[[str, ProviderConfig], ProviderClient]

_REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


def create_openai_client(provider_id: str, provider_config: ProviderConfig) -> ProviderClient:
    return OpenAIClient(
        create_provider(provider_id),
        api_key=provider_config.api_key,
        organization=provider_config.organization,
        base_url=provider_config.base_url,
        timeout_seconds=provider_config.timeout_seconds,
    )


def create_anthropic_client(provider_id: str, provider_config: ProviderConfig) -> ProviderClient:
    return AnthropicClient(
        create_provider(provider_id),
        api_key=provider_config.api_key,
        base_url=provider_config.base_url,
        timeout_seconds=provider_config.timeout_seconds,
    )


def create_gemini_client(provider_id: str, provider_config: ProviderConfig) -> ProviderClient:
    return GeminiClient(
        create_provider(provider_id),
        api_key=provider_config.api_key,
        base_url=provider_config.base_url,
        timeout_seconds=provider_config.timeout_seconds,
    )


DEFAULT_CLIENT_FACTORIES: dict[str, ClientFactory] = {
    ProviderId.OPENAI.value: create_openai_client,
    ProviderId.ANTHROPIC.value: create_anthropic_client,
    ProviderId.GEMINI.value: create_gemini_client,
}


@dataclass(slots=True)
class Bundle:
    """Wired components for one configuration.

    Attributes:
        config: Configuration the bundle was built from.
        base_clients: Undecorated provider clients keyed by provider id.
        clients: Clients used by platforms (rate-limited when enabled).
        limiter_factories: Limiter factories keyed by service id.
        external_rate_limiter: Lookup over `limiter_factories`, or `None` when disabled.
        provider_rate_limiters: Per-provider request/token limiters.
        estimator_registries: Per-provider token estimator registries.
        platform: Multi-provider platform, or `None` without configured providers.
        provider_platforms: Single-provider platforms keyed by provider id.
        logger: Logger shared by every component.
    """

    config: BundleConfig
    base_clients: dict[str, ProviderClient] = field(default_factory=dict)
    clients: dict[str, ProviderClient] = field(default_factory=dict)
    limiter_factories: dict[str, RateLimiterFactory] = field(default_factory=dict)
    external_rate_limiter: BundleExternalRateLimiter | None = None
    provider_rate_limiters: dict[str, ProviderRateLimiter] = field(default_factory=dict)
    estimator_registries: dict[str, TokenEstimatorRegistry] = field(default_factory=dict)
    platform: Platform | None = None
    provider_platforms: dict[str, ProviderPlatform] = field(default_factory=dict)
    logger: BundleLogger = field(default_factory=NullLogger)

    @property
    def default_platform(self) -> ProviderPlatform | None:
        """Return the single-provider platform of the default provider, if wired."""

        return self.provider_platforms.get(self.config.default_provider)


def create_storage(identifier: str, clock: Callable[[], float] = time.time) -> LimiterStorage:
    """Build limiter storage from `memory` or a Redis URL."""

    normalized = identifier.strip()
    if normalized == "memory":
        return InMemoryStorage(clock=clock)
    if normalized.startswith(_REDIS_SCHEMES):
        return RedisStorage.from_url(normalized)
    raise ValueError(
        f"Unsupported `rate_limiting.storage` value `{identifier}`; "
        "use `memory` or a `redis://` URL."
    )


def create_lock_factory(identifier: str) -> LockFactory:
    """Build a lock coordinator from `local` or a Redis URL."""

    normalized = identifier.strip()
    if normalized == "local":
        return LocalLockFactory()
    if normalized.startswith(_REDIS_SCHEMES):
        return RedisLockFactory.from_url(normalized)
    raise ValueError(
        f"Unsupported `rate_limiting.lock_factory` value `{identifier}`; "
        "use `local` or a `redis://` URL."
    )


def create_logger(config: BundleConfig) -> BundleLogger:
    """Return a logger honoring the logging toggle and level."""

    if not config.logging.enabled:
        return NullLogger()
    return BundleLogger(level=config.logging.level)


def build_limiter_factories(
    config: BundleConfig,
    storage: LimiterStorage,
    lock_factory: LockFactory,
    clock: Callable[[], float],
) -> dict[str, RateLimiterFactory]:
    """Build one factory per configured `(provider, type)` pair with defaults merged."""

    factories: dict[str, RateLimiterFactory] = {}
    for provider_id, limit_type in config.rate_limiting.configured_limits():
        service_id = limiter_service_id(provider_id, limit_type)
        factories[service_id] = RateLimiterFactory(
            service_id,
            config.rate_limiting.policy_for(provider_id, limit_type),
            storage=storage,
            lock_factory=lock_factory,
            clock=clock,
        )
    return factories


def build_bundle(
    config: BundleConfig,
    *,
    storage: LimiterStorage | None = None,
    lock_factory: LockFactory | None = None,
    clock: Callable[[], float] = time.time,
    sleeper: Callable[[float], None] = time.sleep,
    client_factories: Mapping[str, ClientFactory] | None = None,
    logger: BundleLogger | None = None,
) -> Bundle:
    """Wire clients, limiters, and platforms for a validated configuration.

    Args:
        config: Bundle configuration.
        storage: Limiter storage override; built from `rate_limiting.storage` when omitted.
        lock_factory: Lock coordinator override; built from `rate_limiting.lock_factory`
            when omitted.
        clock: Wall-clock source for limiters.
        sleeper: Sleep function used between rate-limit retries.
        client_factories: Per-provider base client factories overriding the defaults.
        logger: Logger override; built from `logging` settings when omitted.
    """

    factories_by_provider = {**DEFAULT_CLIENT_FACTORIES, **dict(client_factories or {})}
    bundle_logger = logger if logger is not None else create_logger(config)
    bundle = Bundle(config=config, logger=bundle_logger)

    rate_limiting = config.rate_limiting
    if rate_limiting.enabled:
        resolved_storage = storage if storage is not None else create_storage(
            rate_limiting.storage, clock
        )
        resolved_locks = lock_factory if lock_factory is not None else create_lock_factory(
            rate_limiting.lock_factory
        )
        bundle.limiter_factories = build_limiter_factories(
            config, resolved_storage, resolved_locks, clock
        )
        for service_id, factory in bundle.limiter_factories.items():
            bundle_logger.info(
                "bundle",
                "limiter_registered",
                service_id=service_id,
                policy=factory.policy.policy,
                limit=factory.policy.limit,
            )
        bundle.external_rate_limiter = BundleExternalRateLimiter(bundle.limiter_factories)

    for provider_id in config.enabled_provider_ids():
        base_client = factories_by_provider[provider_id](provider_id, config.providers[provider_id])
        bundle.base_clients[provider_id] = base_client
        client = base_client

        if bundle.external_rate_limiter is not None:
            provider_limiter = ProviderRateLimiter(bundle.external_rate_limiter, bundle_logger)
            estimator_registry = TokenEstimatorRegistry.create_default()
            bundle.provider_rate_limiters[provider_id] = provider_limiter
            bundle.estimator_registries[provider_id] = estimator_registry
            client = RateLimitedClient(
                base_client,
                provider_limiter,
                estimator_registry,
                enable_retries=rate_limiting.enable_retries,
                max_retries=rate_limiting.max_retries,
                logger=bundle_logger,
                sleeper=sleeper,
            )

        bundle.clients[provider_id] = client
        bundle.provider_platforms[provider_id] = ProviderPlatform(client, logger=bundle_logger)

    if bundle.clients:
        bundle.platform = Platform(
            list(bundle.clients.values()),
            logger=bundle_logger,
            default_provider=config.default_provider,
        )
        for provider_id in bundle.clients:
            default_model = config.providers[provider_id].default_model
            if default_model:
                bundle.platform.configure_provider_default_model(provider_id, default_model)

    return bundle
