"""Core datatypes shared across aibundle modules.

Responsibilities:
- Represent provider, model, and result records exchanged between the platform,
  provider clients, and the rate limiting layer.
- Keep identifiers explicit and immutable so limiter keys stay stable.

Key types:
- `ProviderId`, `LimitType`, `Model`, `Provider`, and `TextResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..errors import ModelNotFoundError


class ProviderId(str, Enum):
    """Closed set of providers that have client implementations."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        """Return supported provider identifiers in declaration order."""

        return tuple(member.value for member in cls)


class LimitType(str, Enum):
    """Rate limit dimensions tracked per provider."""

    REQUESTS = "requests"
    TOKENS = "tokens"


@dataclass(frozen=True, slots=True)
class Model:
    """A model addressable through one provider.

    Attributes:
        id: Canonical model identifier sent to the provider API.
        provider_id: Identifier of the provider serving this model.
    """

    id: str
    provider_id: str


@dataclass(slots=True)
class Provider:
    """Provider descriptor with its model catalog.

    Attributes:
        id: Provider identifier (`openai`, `anthropic`, `gemini`).
        name: Human-readable provider name.
        models: Model ids available from this provider.
        default_model: Model id used when callers do not pick one.
    """

    id: str
    name: str
    models: tuple[str, ...]
    default_model: str

    def get_available_models(self) -> list[str]:
        """Return the model catalog as a list."""

        return list(self.models)

    def get_default_model(self) -> str:
        """Return the configured default model id."""

        return self.default_model

    def has_model(self, model_id: str) -> bool:
        """Return whether the model id belongs to this provider."""

        return model_id in self.models

    def get_model(self, model_id: str) -> Model:
        """Resolve a model id to a `Model`, raising when it is unknown."""

        if model_id not in self.models:
            raise ModelNotFoundError(
                f"Model `{model_id}` is not available from provider `{self.id}`."
            )
        return Model(id=model_id, provider_id=self.id)

    def configure_default_model(self, model_id: str) -> None:
        """Override the default model with one from the catalog."""

        self.get_model(model_id)
        self.default_model = model_id


@dataclass(frozen=True, slots=True)
class TextResult:
    """Text completion returned by a provider client.

    Attributes:
        content: Assistant text content.
        provider_id: Provider that produced the result.
        model_id: Model that produced the result.
        usage: Provider-reported usage metadata, when available.
    """

    content: str
    provider_id: str = "unknown"
    model_id: str = "unknown"
    usage: Mapping[str, Any] = field(default_factory=dict)

    def get_content(self) -> str:
        """Return the assistant text content."""

        return self.content
