"""Rate limit policy descriptors and per-provider defaults.

Responsibilities:
- Define the immutable `RateLimitPolicy` value object.
- Merge partial policy mappings over the per-provider default table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..models.datatypes import LimitType, ProviderId
from ..parsing import normalize_optional_string, parse_interval_seconds


TOKEN_BUCKET = "token_bucket"
FIXED_WINDOW = "fixed_window"
SLIDING_WINDOW = "sliding_window"
SUPPORTED_POLICIES = frozenset({TOKEN_BUCKET, FIXED_WINDOW, SLIDING_WINDOW})

DEFAULT_INTERVAL = "1 minute"

_DEFAULT_LIMITS: dict[str, dict[str, int]] = {
    ProviderId.OPENAI.value: {"requests": 180, "tokens": 450_000},
    ProviderId.ANTHROPIC.value: {"requests": 100, "tokens": 100_000},
    ProviderId.GEMINI.value: {"requests": 1000, "tokens": 1_000_000},
}
_FALLBACK_LIMITS: dict[str, int] = {"requests": 60, "tokens": 60_000}


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Policy descriptor for one limiter factory.

    Attributes:
        policy: `token_bucket`, `fixed_window`, or `sliding_window`.
        limit: Bucket capacity or hits allowed per window.
        interval_seconds: Refill interval (token bucket) or window length.
        amount: Units refilled per interval.
    """

    policy: str
    limit: int
    interval_seconds: float
    amount: int

    def __post_init__(self) -> None:
        if self.policy not in SUPPORTED_POLICIES:
            supported = ", ".join(sorted(SUPPORTED_POLICIES))
            raise ValueError(f"Unsupported rate limit policy `{self.policy}`; supported: {supported}.")
        if isinstance(self.limit, bool) or self.limit <= 0:
            raise ValueError("Rate limit `limit` must be a positive integer.")
        if isinstance(self.amount, bool) or self.amount <= 0:
            raise ValueError("Rate limit `rate.amount` must be a positive integer.")
        if self.interval_seconds <= 0:
            raise ValueError("Rate limit `rate.interval` must be a positive interval.")
        if self.amount > self.limit:
            raise ValueError(
                f"Rate limit `rate.amount` ({self.amount}) cannot exceed `limit` ({self.limit})."
            )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], source_label: str) -> RateLimitPolicy:
        """Build a policy from a `{policy, limit, rate: {interval, amount}}` mapping."""

        policy = normalize_optional_string(payload.get("policy")) or TOKEN_BUCKET
        limit = _positive_int(payload.get("limit"), f"{source_label}.limit")
        rate = payload.get("rate")
        if not isinstance(rate, Mapping):
            raise ValueError(f"{source_label}.rate must be a mapping with `interval` and `amount`.")
        interval_seconds = parse_interval_seconds(
            rate.get("interval", DEFAULT_INTERVAL), f"{source_label}.rate.interval"
        )
        amount = _positive_int(rate.get("amount"), f"{source_label}.rate.amount")
        try:
            return cls(
                policy=policy,
                limit=limit,
                interval_seconds=interval_seconds,
                amount=amount,
            )
        except ValueError as exc:
            raise ValueError(f"{source_label}: {exc}") from exc


def default_policy_mapping(provider_id: str, limit_type: str) -> dict[str, Any]:
    """Return the default policy mapping for a provider and limit type.

    Unknown providers fall back to 60 requests and 60000 tokens per minute.
    """

    provider_limits = _DEFAULT_LIMITS.get(provider_id, _FALLBACK_LIMITS)
    value = provider_limits.get(limit_type, _FALLBACK_LIMITS.get(limit_type, 60))
    return {
        "policy": TOKEN_BUCKET,
        "limit": value,
        "rate": {"interval": DEFAULT_INTERVAL, "amount": value},
    }


def merge_policy_with_defaults(
    provider_id: str,
    limit_type: str,
    overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Merge a partial policy mapping over the provider/type defaults."""

    merged = default_policy_mapping(provider_id, limit_type)
    if not overrides:
        return merged

    for key, value in overrides.items():
        if key == "rate" and isinstance(value, Mapping):
            merged["rate"] = {**merged["rate"], **dict(value)}
        else:
            merged[key] = value

    # A limit override without a rate override keeps capacity and refill consistent.
    if "limit" in overrides and not (
        isinstance(overrides.get("rate"), Mapping) and "amount" in overrides["rate"]
    ):
        merged["rate"]["amount"] = merged["limit"]
    return merged


def resolve_policy(
    provider_id: str,
    limit_type: LimitType | str,
    overrides: Mapping[str, Any] | None = None,
) -> RateLimitPolicy:
    """Resolve a validated policy for a provider/type from optional overrides."""

    type_value = limit_type.value if isinstance(limit_type, LimitType) else str(limit_type)
    merged = merge_policy_with_defaults(provider_id, type_value, overrides)
    return RateLimitPolicy.from_mapping(
        merged, source_label=f"rate_limiting.providers.{provider_id}.{type_value}"
    )


def _positive_int(value: object, field_name: str) -> int:
    """Parse a strictly positive integer field."""

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be a positive integer.")
    if isinstance(value, int):
        parsed = value
    else:
        normalized = normalize_optional_string(value)
        if normalized is None:
            raise ValueError(f"`{field_name}` must be a positive integer.")
        try:
            parsed = int(normalized)
        except ValueError as exc:
            raise ValueError(f"`{field_name}` must be a positive integer.") from exc
    if parsed <= 0:
        raise ValueError(f"`{field_name}` must be a positive integer.")
    return parsed
