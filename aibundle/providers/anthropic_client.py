"""Anthropic messages client."""

from __future__ import annotations

from typing import Any, Mapping

from ..models.datatypes import Model, Provider, TextResult
from .base import HttpProviderClient, message_content_to_text, payload_to_messages

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024


class AnthropicClient(HttpProviderClient):
    """Minimal requests-based Anthropic `/v1/messages` HTTP client."""

    _DISPLAY_NAME = "Anthropic"

    def __init__(
        self,
        provider: Provider,
        *,
        api_key: str | None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(
            provider,
            api_key=api_key,
            base_url=base_url or ANTHROPIC_BASE_URL,
            timeout_seconds=timeout_seconds,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> TextResult:
        system, messages = payload_to_messages(payload)
        body: dict[str, Any] = {
            "model": model.id,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system:
            body["system"] = system
        body.update(options or {})

        response = self._post_json(endpoint_path="/v1/messages", payload=body)

        content = response.get("content")
        if not isinstance(content, list):
            raise self._malformed("missing `content` list.")
        text = message_content_to_text(content).strip()
        if not text:
            raise self._malformed("message content is empty.")
        usage = response.get("usage")
        return TextResult(
            content=text,
            provider_id=self.provider.id,
            model_id=model.id,
            usage=usage if isinstance(usage, dict) else {},
        )
