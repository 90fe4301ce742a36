"""Token cost estimation used to pre-charge token limiters.

Estimates are a budget approximation computed before the provider call; no
reconciliation against provider-reported usage happens here.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from ..models.datatypes import Model, ProviderId


class TokenEstimator(Protocol):
    """Protocol for model-family token estimators."""

    def supports(self, model: Model) -> bool:
        """Return whether this estimator handles the model's family."""

    def estimate(self, payload: Any, model: Model) -> int:
        """Return the estimated token count for an outbound payload."""


def payload_text(payload: Any) -> str:
    """Flatten a prompt payload into the text that will be tokenized.

    Supports plain strings, chat message lists, and mappings carrying
    `system`, `prompt`, or `messages` entries.
    """

    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, Mapping):
        parts: list[str] = []
        for key in ("system", "prompt", "input"):
            value = payload.get(key)
            if isinstance(value, str):
                parts.append(value)
        if "messages" in payload:
            parts.append(payload_text(payload["messages"]))
        if "content" in payload:
            parts.append(payload_text(payload["content"]))
        if "text" in payload and isinstance(payload["text"], str):
            parts.append(payload["text"])
        return "\n".join(part for part in parts if part)
    if isinstance(payload, list | tuple):
        return "\n".join(text for text in (payload_text(item) for item in payload) if text)
    return str(payload)


class CharacterRatioEstimator:
    """Estimate tokens from character count using a per-family ratio."""

    def __init__(self, provider_ids: frozenset[str] | None, chars_per_token: float) -> None:
        """Initialize the estimator.

        Args:
            provider_ids: Provider families handled; `None` handles every model.
            chars_per_token: Average characters per token for the family tokenizer.
        """

        if chars_per_token <= 0:
            raise ValueError("`chars_per_token` must be positive.")
        self.provider_ids = provider_ids
        self.chars_per_token = chars_per_token

    def supports(self, model: Model) -> bool:
        return self.provider_ids is None or model.provider_id in self.provider_ids

    def estimate(self, payload: Any, model: Model) -> int:
        text = payload_text(payload)
        return max(1, int(len(text) / self.chars_per_token))


class TokenEstimatorRegistry:
    """Resolve the estimator for a model by provider family."""

    def __init__(
        self,
        estimators: list[TokenEstimator] | None = None,
        fallback: TokenEstimator | None = None,
    ) -> None:
        self._estimators: list[TokenEstimator] = list(estimators or [])
        self._fallback = fallback if fallback is not None else CharacterRatioEstimator(None, 4.0)

    @classmethod
    def create_default(cls) -> TokenEstimatorRegistry:
        """Return a registry with OpenAI, Anthropic, and Gemini estimators."""

        return cls(
            [
                CharacterRatioEstimator(frozenset({ProviderId.OPENAI.value}), 4.0),
                CharacterRatioEstimator(frozenset({ProviderId.ANTHROPIC.value}), 3.5),
                CharacterRatioEstimator(frozenset({ProviderId.GEMINI.value}), 4.0),
            ]
        )

    def register(self, estimator: TokenEstimator) -> None:
        """Register an estimator ahead of previously registered ones."""

        self._estimators.insert(0, estimator)

    def get_estimator(self, model: Model) -> TokenEstimator:
        """Return the first estimator supporting the model, else the fallback."""

        for estimator in self._estimators:
            if estimator.supports(model):
                return estimator
        return self._fallback

    def estimate(self, payload: Any, model: Model) -> int:
        """Estimate tokens for a payload sent to a model."""

        return self.get_estimator(model).estimate(payload, model)
