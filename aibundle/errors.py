"""Domain exceptions for rate limiting, provider resolution, and CLI diagnostics."""

from __future__ import annotations


class AiBundleError(RuntimeError):
    """Base class for errors raised by the integration layer."""


class ConfigurationError(AiBundleError):
    """Raised when bundle configuration cannot be loaded or wired."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped configuration error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class RateLimitExceededError(AiBundleError):
    """Raised when a provider limiter rejects a consume attempt.

    Attributes:
        retry_after_seconds: Whole seconds the caller should wait before retrying.
        reason: Human-readable rejection reason.
        limit_type: Limit dimension that rejected (`requests` or `tokens`).
        retry_attempts: Retries already spent when raised terminally by a retry loop.
    """

    def __init__(
        self,
        retry_after_seconds: int,
        reason: str = "Rate limit exceeded",
        *,
        limit_type: str | None = None,
        retry_attempts: int = 0,
    ) -> None:
        super().__init__(f"{reason} (retry after {max(0, retry_after_seconds)}s)")
        self.retry_after_seconds = max(0, int(retry_after_seconds))
        self.reason = reason
        self.limit_type = limit_type
        self.retry_attempts = retry_attempts

    def with_retry_attempts(self, retry_attempts: int) -> RateLimitExceededError:
        """Return a copy of this error annotated with a terminal retry count."""

        return RateLimitExceededError(
            self.retry_after_seconds,
            self.reason,
            limit_type=self.limit_type,
            retry_attempts=retry_attempts,
        )


class RateLimiterNotConfiguredError(LookupError):
    """Raised when no limiter factory is registered for a provider and limit type."""

    def __init__(self, service_id: str, provider_id: str, limit_type: str) -> None:
        super().__init__(
            f"Rate limiter service `{service_id}` not found for provider "
            f"`{provider_id}` and type `{limit_type}`."
        )
        self.service_id = service_id
        self.provider_id = provider_id
        self.limit_type = limit_type


class ModelNotFoundError(AiBundleError):
    """Raised when a model id is unknown to a provider or to every provider."""


class ProviderNotFoundError(AiBundleError):
    """Raised when a provider id is not configured on a platform."""


class ProviderClientError(AiBundleError):
    """Raised when a provider HTTP request fails or returns malformed output."""

    def __init__(
        self,
        message: str,
        *,
        provider_id: str = "unknown",
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        """Initialize provider error metadata for command diagnostics."""

        super().__init__(message)
        self.provider_id = provider_id
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code
