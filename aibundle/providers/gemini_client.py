"""Gemini `generateContent` client."""

from __future__ import annotations

from typing import Any, Mapping

from ..models.datatypes import Model, Provider, TextResult
from .base import HttpProviderClient, message_content_to_text, payload_to_messages

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiClient(HttpProviderClient):
    """Minimal requests-based Gemini HTTP client."""

    _DISPLAY_NAME = "Gemini"

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
            base_url=base_url or GEMINI_BASE_URL,
            timeout_seconds=timeout_seconds,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> TextResult:
        system, messages = payload_to_messages(payload)
        body: dict[str, Any] = {
            "contents": [
                {
                    # Gemini names the assistant role `model`.
                    "role": "model" if message["role"] == "assistant" else "user",
                    "parts": [{"text": message_content_to_text(message["content"])}],
                }
                for message in messages
            ]
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        if options:
            body["generationConfig"] = dict(options)

        response = self._post_json(
            endpoint_path=f"/models/{model.id}:generateContent",
            payload=body,
        )

        candidates = response.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise self._malformed("missing non-empty `candidates` list.")
        candidate_content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = candidate_content.get("parts") if isinstance(candidate_content, dict) else None
        if not isinstance(parts, list):
            raise self._malformed("missing `candidates[0].content.parts` list.")
        text = "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ).strip()
        if not text:
            raise self._malformed("candidate content is empty.")
        usage = response.get("usageMetadata")
        return TextResult(
            content=text,
            provider_id=self.provider.id,
            model_id=model.id,
            usage=usage if isinstance(usage, dict) else {},
        )
