"""Per-provider request and token limiting on top of an external rate limiter.

Consume order is requests first, then tokens. A token rejection does not refund
the request unit already spent; callers observe that unit as consumed.
"""

from __future__ import annotations

from ..errors import RateLimitExceededError
from ..models.datatypes import LimitType, Model
from ..telemetry.logger import BundleLogger, NullLogger
from .external import ExternalRateLimiter
from .limiter import Limiter

REQUEST_LIMIT_REASON = "Request rate limit exceeded"
TOKEN_LIMIT_REASON = "Token rate limit exceeded"

_REASONS = {
    LimitType.REQUESTS: REQUEST_LIMIT_REASON,
    LimitType.TOKENS: TOKEN_LIMIT_REASON,
}


class ProviderRateLimiter:
    """Enforce the `requests` and `tokens` limiters configured for one provider."""

    def __init__(
        self,
        external_rate_limiter: ExternalRateLimiter,
        logger: BundleLogger | None = None,
    ) -> None:
        self.external_rate_limiter = external_rate_limiter
        self.logger = logger if logger is not None else NullLogger()

    def consume(self, model: Model, estimated_tokens: int = 1) -> None:
        """Consume one request unit and `estimated_tokens` token units for a model.

        Raises:
            RateLimitExceededError: When either limiter rejects.
            RateLimiterNotConfiguredError: When a limiter reported present cannot be resolved.
        """

        self._consume_dimension(model, LimitType.REQUESTS, 1)
        self._consume_dimension(model, LimitType.TOKENS, max(1, estimated_tokens))

    def is_allowed(self, model: Model, estimated_tokens: int = 1) -> bool:
        """Consume like `consume` but report rejection as `False`."""

        try:
            self.consume(model, estimated_tokens)
        except RateLimitExceededError:
            return False
        return True

    def get_retry_after(self, model: Model) -> int | None:
        """Return the longest pending wait in whole seconds, or `None` when no wait."""

        waits = [
            limiter.reserve(1).wait_duration_seconds
            for limiter in (
                self._limiter_for(model, LimitType.REQUESTS),
                self._limiter_for(model, LimitType.TOKENS),
            )
            if limiter is not None
        ]
        longest = max(waits, default=0.0)
        return int(longest) if longest > 0 else None

    def _limiter_for(self, model: Model, limit_type: LimitType) -> Limiter | None:
        provider_id = model.provider_id
        if not self.external_rate_limiter.has_rate_limiter(provider_id, limit_type.value):
            return None
        factory = self.external_rate_limiter.get_rate_limiter(
            provider_id, limit_type.value, model
        )
        key = self.external_rate_limiter.get_rate_limiter_key(
            provider_id, limit_type.value, model
        )
        return factory.create(key)

    def _consume_dimension(self, model: Model, limit_type: LimitType, amount: int) -> None:
        limiter = self._limiter_for(model, limit_type)
        if limiter is None:
            self.logger.debug(
                "ratelimit",
                "skip",
                provider=model.provider_id,
                limit_type=limit_type.value,
                model=model.id,
            )
            return

        # Payloads larger than the bucket are charged the full bucket.
        amount = min(amount, limiter.policy.limit)
        result = limiter.consume(amount)
        self.logger.info(
            "ratelimit",
            "consume",
            provider=model.provider_id,
            limit_type=limit_type.value,
            model=model.id,
            amount=amount,
            accepted=str(result.accepted).lower(),
            remaining=result.remaining,
        )
        if result.accepted:
            return

        retry_after = result.retry_after_whole_seconds
        self.logger.warning(
            "ratelimit",
            "reject",
            provider=model.provider_id,
            limit_type=limit_type.value,
            model=model.id,
            retry_after_seconds=retry_after,
        )
        raise RateLimitExceededError(
            retry_after,
            _REASONS[limit_type],
            limit_type=limit_type.value,
        )
