"""Integration-test fixtures for deterministic provider HTTP behavior."""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests


class _MockRequestsResponse:
    """Minimal requests response mock returning provider-shaped JSON."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with payload bytes and status code."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTP error when status code indicates failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


def _provider_payload(url: str) -> dict[str, Any]:
    """Return a successful provider response body for the endpoint being called."""

    if url.endswith("/chat/completions"):
        return {"choices": [{"message": {"content": "integration-mocked-openai"}}]}
    if url.endswith("/v1/messages"):
        return {"content": [{"type": "text", "text": "integration-mocked-anthropic"}]}
    if url.endswith(":generateContent"):
        return {"candidates": [{"content": {"parts": [{"text": "integration-mocked-gemini"}]}}]}
    raise AssertionError(f"Unexpected provider endpoint: {url}")


@pytest.fixture(autouse=True)
def provider_http_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Mock provider HTTP calls so integration tests never need network or real keys."""

    calls: list[dict[str, Any]] = []

    def _mock_post(url: str, **kwargs: Any) -> _MockRequestsResponse:
        """Record the call and answer with a provider-shaped success body."""

        calls.append({"url": url, **kwargs})
        return _MockRequestsResponse(payload=json.dumps(_provider_payload(url)).encode("utf-8"))

    monkeypatch.setattr("aibundle.providers.base.requests.post", _mock_post)
    return calls
