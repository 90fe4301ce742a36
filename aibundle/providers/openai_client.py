"""OpenAI chat-completions client."""

from __future__ import annotations

from typing import Any, Mapping

from ..models.datatypes import Model, Provider, TextResult
from .base import HttpProviderClient, message_content_to_text, payload_to_messages

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAIClient(HttpProviderClient):
    """Minimal requests-based OpenAI chat-completions HTTP client."""

    _DISPLAY_NAME = "OpenAI"

    def __init__(
        self,
        provider: Provider,
        *,
        api_key: str | None,
        organization: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(
            provider,
            api_key=api_key,
            base_url=base_url or OPENAI_BASE_URL,
            timeout_seconds=timeout_seconds,
        )
        self.organization = organization.strip() if organization else None

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> TextResult:
        """Return the first assistant message from a chat-completions request."""

        system, messages = payload_to_messages(payload)
        if system:
            messages = [{"role": "system", "content": system}, *messages]
        body: dict[str, Any] = {"model": model.id, "messages": messages}
        body.update(options or {})

        response = self._post_json(endpoint_path="/chat/completions", payload=body)

        choices = response.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self._malformed("missing non-empty `choices` list.")
        first_choice = choices[0]
        if not isinstance(first_choice, dict) or not isinstance(first_choice.get("message"), dict):
            raise self._malformed("missing `choices[0].message` object.")

        text = message_content_to_text(first_choice["message"].get("content")).strip()
        if not text:
            raise self._malformed("message content is empty.")
        usage = response.get("usage")
        return TextResult(
            content=text,
            provider_id=self.provider.id,
            model_id=model.id,
            usage=usage if isinstance(usage, dict) else {},
        )
