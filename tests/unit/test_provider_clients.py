"""Unit tests for requests-based provider clients and payload normalization."""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from aibundle.errors import ProviderClientError
from aibundle.models.datatypes import Model
from aibundle.providers import (
    AnthropicClient,
    GeminiClient,
    MockClient,
    OpenAIClient,
    create_provider,
)
from aibundle.providers.base import payload_to_messages


class _MockRequestsResponse:
    """Minimal requests response mock used by provider client tests."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with payload bytes and status code."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTP error when status code indicates failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


def _install_post(
    monkeypatch: pytest.MonkeyPatch,
    response: _MockRequestsResponse | Exception,
) -> list[dict[str, Any]]:
    """Replace `requests.post` and return the list of captured calls."""

    captured: list[dict[str, Any]] = []

    def _mock_post(url: str, **kwargs: Any) -> _MockRequestsResponse:
        """Capture request arguments and return or raise the canned outcome."""

        captured.append({"url": url, **kwargs})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr("aibundle.providers.base.requests.post", _mock_post)
    return captured


def _json_response(payload: dict[str, Any], status_code: int = 200) -> _MockRequestsResponse:
    """Encode a JSON payload into a mock response."""

    return _MockRequestsResponse(payload=json.dumps(payload).encode("utf-8"), status_code=status_code)


def test_openai_client_posts_chat_completion(monkeypatch: pytest.MonkeyPatch) -> None:
    """OpenAI requests should carry bearer auth, organization, and merged options."""

    captured = _install_post(
        monkeypatch,
        _json_response(
            {
                "choices": [{"message": {"content": " Hi! "}}],
                "usage": {"total_tokens": 12},
            }
        ),
    )
    client = OpenAIClient(create_provider("openai"), api_key="sk-test", organization="org-1")

    result = client.request(
        Model("gpt-4o-mini", "openai"),
        {"system": "Be brief.", "prompt": "Hello"},
        {"temperature": 0.2},
    )

    assert result.get_content() == "Hi!"
    assert result.usage == {"total_tokens": 12}
    call = captured[0]
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["headers"]["OpenAI-Organization"] == "org-1"
    assert call["json"] == {
        "model": "gpt-4o-mini",
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello"},
        ],
        "temperature": 0.2,
    }
    assert call["timeout"] == 30.0


def test_anthropic_client_sends_system_field_and_version(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Anthropic requests should use `x-api-key`, a version header, and a top-level system."""

    captured = _install_post(
        monkeypatch,
        _json_response({"content": [{"type": "text", "text": "Bonjour"}]}),
    )
    client = AnthropicClient(create_provider("anthropic"), api_key="anthropic-key")

    result = client.request(
        Model("claude-3-5-haiku-20241022", "anthropic"),
        [
            {"role": "system", "content": "Answer in French."},
            {"role": "user", "content": "Hello"},
        ],
    )

    assert result.get_content() == "Bonjour"
    call = captured[0]
    assert call["url"] == "https://api.anthropic.com/v1/messages"
    assert call["headers"]["x-api-key"] == "anthropic-key"
    assert call["headers"]["anthropic-version"] == "2023-06-01"
    assert call["json"]["system"] == "Answer in French."
    assert call["json"]["max_tokens"] == 1024
    assert call["json"]["messages"] == [{"role": "user", "content": "Hello"}]


def test_gemini_client_maps_roles_and_generation_config(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Gemini requests should use `contents` with the `model` role for assistant turns."""

    captured = _install_post(
        monkeypatch,
        _json_response(
            {
                "candidates": [{"content": {"parts": [{"text": "Sure"}, {"text": " thing"}]}}],
                "usageMetadata": {"totalTokenCount": 7},
            }
        ),
    )
    client = GeminiClient(create_provider("gemini"), api_key="gemini-key")

    result = client.request(
        Model("gemini-2.5-flash", "gemini"),
        {
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
                {"role": "user", "content": "Help?"},
            ]
        },
        {"temperature": 0.0},
    )

    assert result.get_content() == "Sure thing"
    assert result.usage == {"totalTokenCount": 7}
    call = captured[0]
    assert call["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
    )
    assert call["headers"]["x-goog-api-key"] == "gemini-key"
    assert [content["role"] for content in call["json"]["contents"]] == ["user", "model", "user"]
    assert call["json"]["generationConfig"] == {"temperature": 0.0}


def test_missing_api_key_fails_before_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clients without keys should raise `invalid_api_key` without posting."""

    captured = _install_post(monkeypatch, _json_response({}))
    client = OpenAIClient(create_provider("openai"), api_key="  ")

    with pytest.raises(ProviderClientError) as exc_info:
        client.request(Model("gpt-4o-mini", "openai"), "Hello")

    assert exc_info.value.failure_kind == "invalid_api_key"
    assert str(exc_info.value) == "Missing OpenAI API key."
    assert captured == []


def test_authentication_failure_redacts_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """HTTP 401 responses should be classified and must not leak key material."""

    _install_post(
        monkeypatch,
        _json_response(
            {
                "error": {
                    "message": "Incorrect API key provided: sk-abcdefghijklmnop",
                    "code": "invalid_api_key",
                }
            },
            status_code=401,
        ),
    )
    client = OpenAIClient(create_provider("openai"), api_key="sk-abcdefghijklmnop")

    with pytest.raises(ProviderClientError) as exc_info:
        client.request(Model("gpt-4o-mini", "openai"), "Hello")

    error = exc_info.value
    assert error.failure_kind == "invalid_api_key"
    assert error.status_code == 401
    assert error.provider_code == "invalid_api_key"
    assert "sk-abcdefghijklmnop" not in str(error)
    assert str(error) == (
        "OpenAI authentication failed (HTTP 401): Incorrect API key provided: [redacted-key]"
    )


def test_provider_429_is_reported_as_rate_limited(monkeypatch: pytest.MonkeyPatch) -> None:
    """Upstream 429 responses stay provider errors, never limiter rejections."""

    _install_post(
        monkeypatch,
        _json_response(
            {
                "type": "error",
                "error": {"type": "rate_limit_error", "message": "Too many requests"},
            },
            status_code=429,
        ),
    )
    client = AnthropicClient(create_provider("anthropic"), api_key="anthropic-key")

    with pytest.raises(ProviderClientError) as exc_info:
        client.request(Model("claude-3-5-haiku-20241022", "anthropic"), "Hello")

    assert exc_info.value.failure_kind == "rate_limited"
    assert str(exc_info.value).startswith("Anthropic rate limited the request (HTTP 429)")


def test_transport_timeout_is_classified(monkeypatch: pytest.MonkeyPatch) -> None:
    """Network timeouts should map to the `timeout` failure kind."""

    _install_post(monkeypatch, requests.Timeout("socket timed out"))
    client = GeminiClient(create_provider("gemini"), api_key="gemini-key")

    with pytest.raises(ProviderClientError) as exc_info:
        client.request(Model("gemini-2.5-flash", "gemini"), "Hello")

    assert exc_info.value.failure_kind == "timeout"
    assert str(exc_info.value) == "Gemini request timed out."


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (b"not json", "OpenAI returned invalid JSON payload."),
        (b"[]", "OpenAI response is not a JSON object."),
        (b'{"choices": []}', "OpenAI response missing non-empty `choices` list."),
    ],
)
def test_malformed_responses_raise_provider_errors(
    monkeypatch: pytest.MonkeyPatch, payload: bytes, message: str
) -> None:
    """Malformed bodies should fail with a deterministic message."""

    _install_post(monkeypatch, _MockRequestsResponse(payload=payload))
    client = OpenAIClient(create_provider("openai"), api_key="sk-test")

    with pytest.raises(ProviderClientError) as exc_info:
        client.request(Model("gpt-4o-mini", "openai"), "Hello")

    assert str(exc_info.value) == message


def test_supports_checks_provider_and_catalog() -> None:
    """Clients should only support catalog models of their own provider."""

    client = OpenAIClient(create_provider("openai"), api_key="sk-test")

    assert client.supports(Model("gpt-4o", "openai"))
    assert not client.supports(Model("gpt-unknown", "openai"))
    assert not client.supports(Model("gemini-2.5-flash", "gemini"))


def test_mock_client_records_requests() -> None:
    """The mock client should echo payloads and record calls."""

    client = MockClient()

    result = client.request(Model("gpt-4o-mini", "openai"), "Hello")

    assert result.get_content() == "Mock response for: Hello"
    assert client.requests == [("gpt-4o-mini", "Hello")]
    assert client.get_provider().id == "openai"


def test_payload_to_messages_rejects_unknown_shapes() -> None:
    """Payloads other than prompts, message lists, or mappings should raise `ValueError`."""

    assert payload_to_messages("Hi") == (None, [{"role": "user", "content": "Hi"}])
    with pytest.raises(ValueError, match="Unsupported request payload"):
        payload_to_messages(42)
    with pytest.raises(ValueError, match="mappings"):
        payload_to_messages(["not a message"])
