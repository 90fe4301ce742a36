"""Network-free client used by the rate limiting smoke command and tests."""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..models.datatypes import Model, Provider, ProviderId, TextResult
from .catalog import create_provider


class MockClient:
    """Return canned text results for one provider without network access."""

    def __init__(self, provider: Provider | None = None) -> None:
        self.provider = provider if provider is not None else create_provider(ProviderId.OPENAI.value)
        self.requests: list[tuple[str, Any]] = []

    def supports(self, model: Model) -> bool:
        """Return whether the model belongs to the mocked provider."""

        return model.provider_id == self.provider.id

    def get_provider(self) -> Provider:
        """Return the mocked provider descriptor."""

        return self.provider

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> TextResult:
        self.requests.append((model.id, payload))
        text = payload if isinstance(payload, str) else json.dumps(payload, sort_keys=True)
        return TextResult(
            content=f"Mock response for: {text}",
            provider_id=self.provider.id,
            model_id=model.id,
        )
