"""Rate-limited decoration of provider clients with an explicit retry state machine.

Responsibilities:
- Estimate token cost, consume request and token budgets, then delegate.
- Retry only limiter rejections, waiting the reported retry-after between attempts.
- Pass provider client errors through unmodified on first occurrence.

States: `ATTEMPTING -> SUCCEEDED`, `ATTEMPTING -> WAITING -> ATTEMPTING`,
`ATTEMPTING -> PERMANENTLY_LIMITED` (retries exhausted), and
`ATTEMPTING -> FAILED` (retries disabled, or any error other than a limiter
rejection).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from ..errors import RateLimitExceededError
from ..models.datatypes import Model, Provider
from ..providers.base import ProviderClient
from ..telemetry.logger import BundleLogger, NullLogger
from .estimator import TokenEstimatorRegistry
from .provider_limiter import ProviderRateLimiter


class RetryState(str, Enum):
    """States of one rate-limited request."""

    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    PERMANENTLY_LIMITED = "permanently_limited"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    """Successful request result with retry bookkeeping.

    Attributes:
        result: Unchanged result returned by the wrapped client.
        state: Terminal state (always `SUCCEEDED` for returned outcomes).
        retry_attempts: Rate-limit retries performed before success.
        last_retry_after_seconds: Last retry-after observed, or `None` without rejections.
    """

    result: Any
    state: RetryState
    retry_attempts: int
    last_retry_after_seconds: int | None


class RateLimitedClient:
    """Provider client decorator enforcing request and token limits."""

    def __init__(
        self,
        client: ProviderClient,
        rate_limiter: ProviderRateLimiter,
        estimator_registry: TokenEstimatorRegistry | None = None,
        *,
        enable_retries: bool = True,
        max_retries: int = 10,
        logger: BundleLogger | None = None,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        """Wrap `client`; `sleeper` waits between retries."""

        if max_retries < 0:
            raise ValueError("`max_retries` must be zero or a positive integer.")
        self.client = client
        self.rate_limiter = rate_limiter
        self.estimator_registry = (
            estimator_registry
            if estimator_registry is not None
            else TokenEstimatorRegistry.create_default()
        )
        self.enable_retries = enable_retries
        self.max_retries = max_retries
        self.logger = logger if logger is not None else NullLogger()
        self._sleeper = sleeper

    def supports(self, model: Model) -> bool:
        """Return whether the wrapped client can serve `model`."""

        return self.client.supports(model)

    def get_provider(self) -> Provider:
        """Return the wrapped client's provider descriptor."""

        return self.client.get_provider()

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request through the limiters and return the wrapped client's result."""

        return self.request_with_outcome(model, payload, options).result

    def request_with_outcome(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> RequestOutcome:
        """Run the retry state machine for one request.

        Raises:
            RateLimitExceededError: When retries are disabled or exhausted; carries
                the last retry-after and the number of retries performed.
            Exception: Any error from the wrapped client, unmodified.
        """

        estimated_tokens = self.estimator_registry.estimate(payload, model)
        state = RetryState.ATTEMPTING
        retry_attempts = 0
        last_rejection: RateLimitExceededError | None = None
        result: Any = None

        while state in (RetryState.ATTEMPTING, RetryState.WAITING):
            if state is RetryState.WAITING:
                self._wait(model, last_rejection, retry_attempts + 1)  # type: ignore[arg-type]
                retry_attempts += 1
                state = RetryState.ATTEMPTING
                continue

            try:
                self.rate_limiter.consume(model, estimated_tokens)
            except RateLimitExceededError as exc:
                last_rejection = exc
                state = self._state_after_rejection(retry_attempts)
                continue
            except Exception as exc:
                self._log_failure(model, retry_attempts, exc)
                raise

            try:
                result = self.client.request(model, payload, options or {})
            except Exception as exc:
                self._log_failure(model, retry_attempts, exc)
                raise
            state = RetryState.SUCCEEDED

        last_retry_after = (
            last_rejection.retry_after_seconds if last_rejection is not None else None
        )
        if state is RetryState.SUCCEEDED:
            self._log_terminal(state, model, retry_attempts)
            return RequestOutcome(
                result=result,
                state=state,
                retry_attempts=retry_attempts,
                last_retry_after_seconds=last_retry_after,
            )

        self._log_terminal(
            state,
            model,
            retry_attempts,
            limit_type=last_rejection.limit_type or "unknown",
            retry_after_seconds=last_rejection.retry_after_seconds,
        )
        raise last_rejection.with_retry_attempts(retry_attempts) from last_rejection

    def _state_after_rejection(self, retry_attempts: int) -> RetryState:
        """Return the next state after a limiter rejection."""

        if not self.enable_retries:
            return RetryState.FAILED
        if retry_attempts >= self.max_retries:
            return RetryState.PERMANENTLY_LIMITED
        return RetryState.WAITING

    def _wait(self, model: Model, rejection: RateLimitExceededError, attempt: int) -> None:
        """Log the retry wait and sleep the reported retry-after."""

        self.logger.info(
            "ratelimit",
            "retry_wait",
            provider=model.provider_id,
            model=model.id,
            limit_type=rejection.limit_type or "unknown",
            attempt=attempt,
            max_retries=self.max_retries,
            wait_seconds=rejection.retry_after_seconds,
        )
        self._sleeper(float(rejection.retry_after_seconds))

    def _log_failure(self, model: Model, retry_attempts: int, exc: Exception) -> None:
        """Log a `FAILED` outcome for an error raised outside the limiter rejection path."""

        self._log_terminal(
            RetryState.FAILED, model, retry_attempts, error_type=type(exc).__name__
        )

    def _log_terminal(
        self,
        state: RetryState,
        model: Model,
        retry_attempts: int,
        **context: object,
    ) -> None:
        """Log one terminal state with retry bookkeeping."""

        log = self.logger.info if state is RetryState.SUCCEEDED else self.logger.warning
        log(
            "ratelimit",
            state.value,
            provider=model.provider_id,
            model=model.id,
            retry_attempts=retry_attempts,
            **context,
        )
