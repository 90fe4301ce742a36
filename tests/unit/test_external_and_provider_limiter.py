"""Unit tests for limiter lookup and per-provider request/token limiting."""

from __future__ import annotations

import pytest

from aibundle.errors import RateLimitExceededError, RateLimiterNotConfiguredError
from aibundle.models.datatypes import LimitType, Model
from aibundle.ratelimit.external import BundleExternalRateLimiter, limiter_service_id
from aibundle.ratelimit.limiter import RateLimiterFactory
from aibundle.ratelimit.policy import TOKEN_BUCKET, RateLimitPolicy
from aibundle.ratelimit.provider_limiter import (
    REQUEST_LIMIT_REASON,
    TOKEN_LIMIT_REASON,
    ProviderRateLimiter,
)
from aibundle.ratelimit.storage import InMemoryStorage
from tests.fake_backends import FakeClock

_MODEL = Model(id="gpt-4o-mini", provider_id="openai")


def _limiter_factories(
    clock: FakeClock, *, requests: int | None = 5, tokens: int | None = 10
) -> dict[str, RateLimiterFactory]:
    """Build request/token factories for `openai` sharing one storage."""

    storage = InMemoryStorage(clock=clock)
    factories: dict[str, RateLimiterFactory] = {}
    for limit_type, limit in ((LimitType.REQUESTS, requests), (LimitType.TOKENS, tokens)):
        if limit is None:
            continue
        service_id = limiter_service_id("openai", limit_type)
        factories[service_id] = RateLimiterFactory(
            service_id,
            RateLimitPolicy(policy=TOKEN_BUCKET, limit=limit, interval_seconds=60.0, amount=limit),
            storage=storage,
            clock=clock,
        )
    return factories


def test_service_id_and_key_formats() -> None:
    """Service ids and state keys should follow provider/type/model naming."""

    external = BundleExternalRateLimiter({})

    assert limiter_service_id("openai", LimitType.TOKENS) == "openai_tokens"
    assert external.get_rate_limiter_key("openai", "requests", _MODEL) == (
        "openai_requests_gpt-4o-mini"
    )
    assert external.get_rate_limiter_key("openai", LimitType.REQUESTS, _MODEL) == (
        external.get_rate_limiter_key("openai", "requests", _MODEL)
    )


def test_missing_limiter_raises_lookup_error_naming_service(fake_clock: FakeClock) -> None:
    """Unregistered provider/type pairs should raise a `LookupError` subtype."""

    external = BundleExternalRateLimiter(_limiter_factories(fake_clock))

    assert external.has_rate_limiter("openai", "requests")
    assert not external.has_rate_limiter("anthropic", "requests")
    with pytest.raises(RateLimiterNotConfiguredError) as exc_info:
        external.get_rate_limiter("anthropic", "tokens", _MODEL)

    assert isinstance(exc_info.value, LookupError)
    assert "anthropic_tokens" in str(exc_info.value)
    assert exc_info.value.provider_id == "anthropic"
    assert exc_info.value.limit_type == "tokens"


def test_service_map_overrides_default_service_id(fake_clock: FakeClock) -> None:
    """Explicit service ids should take precedence over `{provider}_{type}`."""

    factories = _limiter_factories(fake_clock)
    external = BundleExternalRateLimiter(
        {"shared_requests": factories["openai_requests"]},
        service_map={"openai": {"requests": "shared_requests"}},
    )

    assert external.get_rate_limiter("openai", "requests", _MODEL) is factories["openai_requests"]
    assert external.service_ids() == ["shared_requests"]


def test_consume_checks_requests_before_tokens(fake_clock: FakeClock) -> None:
    """A request rejection should be reported before any token accounting."""

    limiter = ProviderRateLimiter(
        BundleExternalRateLimiter(_limiter_factories(fake_clock, requests=1, tokens=100))
    )
    limiter.consume(_MODEL, 5)

    with pytest.raises(RateLimitExceededError) as exc_info:
        limiter.consume(_MODEL, 5)

    assert exc_info.value.reason == REQUEST_LIMIT_REASON
    assert exc_info.value.limit_type == "requests"
    assert exc_info.value.retry_after_seconds == 60


def test_token_rejection_does_not_refund_request_unit(fake_clock: FakeClock) -> None:
    """The request unit spent before a token rejection stays consumed."""

    factories = _limiter_factories(fake_clock, requests=5, tokens=10)
    external = BundleExternalRateLimiter(factories)
    limiter = ProviderRateLimiter(external)

    limiter.consume(_MODEL, 8)
    with pytest.raises(RateLimitExceededError) as exc_info:
        limiter.consume(_MODEL, 8)

    assert exc_info.value.reason == TOKEN_LIMIT_REASON
    assert exc_info.value.limit_type == "tokens"
    key = external.get_rate_limiter_key("openai", "requests", _MODEL)
    assert factories["openai_requests"].create(key).consume().remaining == 2


def test_unconfigured_types_are_skipped_without_lookup() -> None:
    """Types reported absent should never reach `get_rate_limiter`."""

    class _RequestsOnly:
        """External limiter double exposing only a request limiter."""

        def __init__(self, factory: RateLimiterFactory) -> None:
            """Store the request factory."""

            self.factory = factory
            self.lookups: list[str] = []

        def has_rate_limiter(self, provider_id: str, limit_type: str) -> bool:
            """Report only request limiters as configured."""

            return limit_type == "requests"

        def get_rate_limiter(
            self, provider_id: str, limit_type: str, model: Model
        ) -> RateLimiterFactory:
            """Record lookups and fail for unexpected types."""

            self.lookups.append(limit_type)
            if limit_type != "requests":
                raise AssertionError("token limiter should not be looked up")
            return self.factory

        def get_rate_limiter_key(self, provider_id: str, limit_type: str, model: Model) -> str:
            """Return a fixed key."""

            return f"{provider_id}_{limit_type}_{model.id}"

    clock = FakeClock()
    external = _RequestsOnly(_limiter_factories(clock)["openai_requests"])
    limiter = ProviderRateLimiter(external)

    limiter.consume(_MODEL, 1_000_000)

    assert external.lookups == ["requests"]


def test_oversized_token_estimates_are_charged_the_full_bucket(fake_clock: FakeClock) -> None:
    """Estimates above the token limit should drain the bucket instead of failing."""

    limiter = ProviderRateLimiter(
        BundleExternalRateLimiter(_limiter_factories(fake_clock, requests=5, tokens=10))
    )

    limiter.consume(_MODEL, 50)

    with pytest.raises(RateLimitExceededError) as exc_info:
        limiter.consume(_MODEL, 1)
    assert exc_info.value.limit_type == "tokens"


def test_is_allowed_and_retry_after(fake_clock: FakeClock) -> None:
    """`is_allowed` should mirror consume and `get_retry_after` should not consume."""

    limiter = ProviderRateLimiter(
        BundleExternalRateLimiter(_limiter_factories(fake_clock, requests=2, tokens=100))
    )

    assert limiter.get_retry_after(_MODEL) is None
    assert limiter.is_allowed(_MODEL)
    assert limiter.is_allowed(_MODEL)
    assert not limiter.is_allowed(_MODEL)
    assert limiter.get_retry_after(_MODEL) == 30
    assert limiter.get_retry_after(_MODEL) == 30
