"""Shared HTTP plumbing for provider clients.

Responsibilities:
- Define the `ProviderClient` protocol consumed by platforms and rate limiting.
- Send JSON POST requests through `requests` and map failures consistently.
- Redact credentials and cap provider messages for user-facing diagnostics.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any, Mapping, Protocol

import requests

from ..errors import ProviderClientError
from ..models.datatypes import Model, Provider


class ProviderClient(Protocol):
    """Protocol implemented by every provider client and client decorator."""

    def request(
        self,
        model: Model,
        payload: Any,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request for one model and return the provider result."""

    def supports(self, model: Model) -> bool:
        """Return whether this client can serve the model."""

    def get_provider(self) -> Provider:
        """Return the provider descriptor served by this client."""


class HttpProviderClient:
    """Base class for requests-based provider clients."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180
    _DISPLAY_NAME = "Provider"

    def __init__(
        self,
        provider: Provider,
        *,
        api_key: str | None,
        base_url: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize shared HTTP client settings."""

        self.provider = provider
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def supports(self, model: Model) -> bool:
        """Return whether the model belongs to this provider's catalog."""

        return model.provider_id == self.provider.id and self.provider.has_model(model.id)

    def get_provider(self) -> Provider:
        """Return the provider descriptor served by this client."""

        return self.provider

    def _auth_headers(self) -> dict[str, str]:
        """Return provider-specific authentication headers."""

        raise NotImplementedError

    def _require_api_key(self) -> None:
        """Require API key presence before issuing provider requests."""

        if not self.api_key:
            raise ProviderClientError(
                f"Missing {self._DISPLAY_NAME} API key.",
                provider_id=self.provider.id,
                failure_kind="invalid_api_key",
            )

    def _post_json(
        self,
        *,
        endpoint_path: str,
        payload: dict[str, Any],
        params: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON payload and return the decoded JSON object response."""

        self._require_api_key()
        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                params=dict(params) if params else None,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            response_bytes = bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = f"{self._DISPLAY_NAME} request timed out."
            else:
                detail = (
                    f"{self._DISPLAY_NAME} request transport error: "
                    f"{self._short_message(self._redact_sensitive_tokens(str(exc)))}"
                )
            raise ProviderClientError(
                detail, provider_id=self.provider.id, failure_kind=failure_kind
            ) from exc
        except TimeoutError as exc:
            raise ProviderClientError(
                f"{self._DISPLAY_NAME} request timed out.",
                provider_id=self.provider.id,
                failure_kind="timeout",
            ) from exc

        try:
            decoded = json.loads(response_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderClientError(
                f"{self._DISPLAY_NAME} returned invalid JSON payload.",
                provider_id=self.provider.id,
            ) from exc
        if not isinstance(decoded, dict):
            raise ProviderClientError(
                f"{self._DISPLAY_NAME} response is not a JSON object.",
                provider_id=self.provider.id,
            )
        return decoded

    def _malformed(self, detail: str) -> ProviderClientError:
        """Build the error raised for an unusable response body."""

        return ProviderClientError(
            f"{self._DISPLAY_NAME} response {detail}",
            provider_id=self.provider.id,
        )

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        return bytes(response.content).decode("utf-8", errors="replace").strip()

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(r"\bAIza[A-Za-z0-9_-]{16,}\b", "[redacted-key]", redacted)
        redacted = re.sub(r"(?i)([?&]key=)[^&\s]+", r"\1[redacted-key]", redacted)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise provider message and optional provider error code."""

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error")
            if isinstance(error_payload, dict):
                for code_key in ("code", "type", "status"):
                    code_value = error_payload.get(code_key)
                    if isinstance(code_value, str) and code_value.strip():
                        provider_code = code_value.strip()
                        break
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()

        if message is None:
            message = body

        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @staticmethod
    def _classify_http_failure(
        status_code: int,
        provider_message: str,
        provider_code: str | None,
    ) -> str:
        """Classify provider HTTP errors into deterministic diagnostic kinds."""

        message_lower = provider_message.lower()
        normalized_code = provider_code.lower() if provider_code is not None else ""

        if status_code in {401, 403} or "api key" in message_lower:
            return "invalid_api_key"
        if normalized_code == "insufficient_quota" or (
            status_code == 429 and "quota" in message_lower
        ):
            return "insufficient_quota"
        if status_code == 429 or normalized_code in {"rate_limit_error", "resource_exhausted"}:
            return "rate_limited"
        if normalized_code in {"model_not_found", "not_found_error"} or (
            "model" in message_lower
            and any(phrase in message_lower for phrase in ("not found", "does not exist", "invalid"))
        ):
            return "invalid_model"
        if status_code in {408, 504} or "timeout" in message_lower or "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic diagnostic kinds."""

        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    def _http_error_to_provider_error(self, exc: requests.HTTPError) -> ProviderClientError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = self._decode_error_body(exc)
        provider_message, provider_code = self._extract_provider_message(body)
        failure_kind = self._classify_http_failure(status_code, provider_message, provider_code)

        name = self._DISPLAY_NAME
        headline = {
            "invalid_api_key": f"{name} authentication failed",
            "insufficient_quota": f"{name} quota is insufficient for this request",
            "rate_limited": f"{name} rate limited the request",
            "invalid_model": f"{name} rejected the selected model",
            "timeout": f"{name} request timed out",
        }.get(failure_kind, f"{name} request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return ProviderClientError(
            detail,
            provider_id=self.provider.id,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )


def message_content_to_text(content: Any) -> str:
    """Convert chat message content variants into a plain text string."""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if not isinstance(item, dict):
                continue
            if item.get("type") == "text" and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts)
    return ""


def payload_to_messages(payload: Any) -> tuple[str | None, list[dict[str, Any]]]:
    """Split a request payload into an optional system prompt and chat messages.

    Accepts a plain prompt string, a list of `{"role", "content"}` messages, or a
    mapping with `system` plus `messages` or `prompt`.
    """

    if isinstance(payload, str):
        return None, [{"role": "user", "content": payload}]
    if isinstance(payload, list):
        return _split_system(payload)
    if isinstance(payload, Mapping):
        system = payload.get("system")
        system_text = system if isinstance(system, str) and system.strip() else None
        if isinstance(payload.get("messages"), list):
            inline_system, messages = _split_system(payload["messages"])
            return system_text or inline_system, messages
        prompt = payload.get("prompt")
        if isinstance(prompt, str):
            return system_text, [{"role": "user", "content": prompt}]
    raise ValueError(
        "Unsupported request payload; expected a prompt string, a message list, "
        "or a mapping with `messages` or `prompt`."
    )


def _split_system(messages: list[Any]) -> tuple[str | None, list[dict[str, Any]]]:
    system_parts: list[str] = []
    chat: list[dict[str, Any]] = []
    for message in messages:
        if not isinstance(message, Mapping):
            raise ValueError("Chat messages must be mappings with `role` and `content`.")
        role = str(message.get("role", "user"))
        if role == "system":
            system_parts.append(message_content_to_text(message.get("content")))
            continue
        chat.append({"role": role, "content": message.get("content", "")})
    system = "\n".join(part for part in system_parts if part) or None
    return system, chat
