"""Unit tests for rate limit policy defaults and merging."""

from __future__ import annotations

import pytest

from aibundle.models.datatypes import LimitType
from aibundle.ratelimit.policy import (
    FIXED_WINDOW,
    TOKEN_BUCKET,
    RateLimitPolicy,
    default_policy_mapping,
    merge_policy_with_defaults,
    resolve_policy,
)


@pytest.mark.parametrize(
    ("provider_id", "limit_type", "expected_limit"),
    [
        ("openai", "requests", 180),
        ("openai", "tokens", 450_000),
        ("anthropic", "requests", 100),
        ("anthropic", "tokens", 100_000),
        ("gemini", "requests", 1000),
        ("gemini", "tokens", 1_000_000),
        ("mistral", "requests", 60),
        ("mistral", "tokens", 60_000),
    ],
)
def test_default_policy_table_matches_provider_limits(
    provider_id: str, limit_type: str, expected_limit: int
) -> None:
    """Defaults should be token buckets per minute with amount equal to limit."""

    policy = resolve_policy(provider_id, limit_type)

    assert policy.policy == TOKEN_BUCKET
    assert policy.limit == expected_limit
    assert policy.amount == expected_limit
    assert policy.interval_seconds == 60.0


def test_default_policy_mapping_uses_configuration_shape() -> None:
    """Default mappings should mirror the configuration schema."""

    assert default_policy_mapping("anthropic", "requests") == {
        "policy": "token_bucket",
        "limit": 100,
        "rate": {"interval": "1 minute", "amount": 100},
    }


def test_limit_only_override_keeps_refill_consistent() -> None:
    """Overriding only `limit` should refill that same amount per interval."""

    merged = merge_policy_with_defaults("openai", "requests", {"limit": 10})

    assert merged["limit"] == 10
    assert merged["rate"] == {"interval": "1 minute", "amount": 10}


def test_partial_rate_override_is_deep_merged() -> None:
    """A `rate.interval` override should keep the default amount."""

    policy = resolve_policy(
        "gemini",
        LimitType.REQUESTS,
        {"policy": FIXED_WINDOW, "rate": {"interval": "30 seconds"}},
    )

    assert policy.policy == FIXED_WINDOW
    assert policy.limit == 1000
    assert policy.amount == 1000
    assert policy.interval_seconds == 30.0


def test_policy_rejects_amount_larger_than_limit() -> None:
    """A refill amount above capacity is invalid."""

    with pytest.raises(ValueError, match="cannot exceed `limit`"):
        RateLimitPolicy(policy=TOKEN_BUCKET, limit=5, interval_seconds=60.0, amount=6)


def test_policy_rejects_unknown_algorithm_with_source_label() -> None:
    """Unknown policy names should fail with the configuration path in the message."""

    with pytest.raises(ValueError, match=r"rate_limiting\.providers\.openai\.requests"):
        resolve_policy("openai", "requests", {"policy": "leaky_bucket"})


def test_policy_rejects_non_positive_limit() -> None:
    """Zero limits should be rejected while parsing overrides."""

    with pytest.raises(ValueError, match="positive integer"):
        resolve_policy("openai", "requests", {"limit": 0})
