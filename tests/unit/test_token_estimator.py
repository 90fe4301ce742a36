"""Unit tests for token estimation and estimator resolution."""

from __future__ import annotations

from typing import Any

from aibundle.models.datatypes import Model
from aibundle.ratelimit.estimator import (
    CharacterRatioEstimator,
    TokenEstimatorRegistry,
    payload_text,
)


def test_default_registry_uses_family_ratios() -> None:
    """OpenAI and Gemini use 4.0 and Anthropic 3.5 characters per token."""

    registry = TokenEstimatorRegistry.create_default()
    prompt = "x" * 70

    assert registry.estimate(prompt, Model("gpt-4o-mini", "openai")) == 17
    assert registry.estimate(prompt, Model("claude-sonnet-4-20250514", "anthropic")) == 20
    assert registry.estimate(prompt, Model("gemini-2.5-flash", "gemini")) == 17


def test_unknown_family_uses_fallback_estimator() -> None:
    """Models outside registered families should still get an estimate."""

    registry = TokenEstimatorRegistry.create_default()

    assert registry.estimate("x" * 40, Model("mistral-large", "mistral")) == 10


def test_estimates_are_at_least_one_token() -> None:
    """Empty payloads should still charge one token."""

    registry = TokenEstimatorRegistry.create_default()

    assert registry.estimate("", Model("gpt-4o-mini", "openai")) == 1
    assert registry.estimate(None, Model("gpt-4o-mini", "openai")) == 1


def test_payload_text_flattens_chat_structures() -> None:
    """System prompts, messages, and text parts should all count towards estimates."""

    payload = {
        "system": "Be brief.",
        "messages": [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": [{"type": "text", "text": "Hi there"}]},
        ],
    }

    text = payload_text(payload)

    assert "Be brief." in text
    assert "Hello" in text
    assert "Hi there" in text


def test_registered_estimator_takes_precedence() -> None:
    """Later registrations should win over default family estimators."""

    class _FixedEstimator:
        """Estimator returning a constant for OpenAI models."""

        def supports(self, model: Model) -> bool:
            """Support OpenAI models only."""

            return model.provider_id == "openai"

        def estimate(self, payload: Any, model: Model) -> int:
            """Return a constant estimate."""

            return 42

    registry = TokenEstimatorRegistry.create_default()
    registry.register(_FixedEstimator())

    assert registry.estimate("short", Model("gpt-4o-mini", "openai")) == 42
    assert registry.estimate("x" * 35, Model("claude-sonnet-4-20250514", "anthropic")) == 10


def test_character_ratio_estimator_with_all_families() -> None:
    """An estimator without provider ids should support every model."""

    estimator = CharacterRatioEstimator(None, 2.0)

    assert estimator.supports(Model("anything", "custom"))
    assert estimator.estimate("abcdef", Model("anything", "custom")) == 3
