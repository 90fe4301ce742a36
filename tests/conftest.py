"""Shared pytest fixtures for the full aibundle test suite."""

from __future__ import annotations

from typing import Iterator

import pytest
from loguru import logger as loguru_logger

from tests.fake_backends import FakeClock, FakeRedis, RecordingSleeper

_PROVIDER_ENV_KEYS = (
    "OPENAI_API_KEY",
    "OPENAI_ORGANIZATION",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "AIBUNDLE_DEFAULT_PROVIDER",
    "AIBUNDLE_RATE_LIMITING_ENABLED",
    "AIBUNDLE_RATE_LIMITING_STORAGE",
    "AIBUNDLE_RATE_LIMITING_LOCK_FACTORY",
    "AIBUNDLE_ENABLE_RETRIES",
    "AIBUNDLE_MAX_RETRIES",
    "AIBUNDLE_LOGGING_ENABLED",
)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fake wall clock starting at a fixed timestamp."""

    return FakeClock()


@pytest.fixture
def recording_sleeper(fake_clock: FakeClock) -> RecordingSleeper:
    """Provide a sleeper that advances `fake_clock`."""

    return RecordingSleeper(fake_clock)


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Provide an in-process Redis double."""

    return FakeRedis()


@pytest.fixture(autouse=True)
def _isolate_provider_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear provider and bundle environment variables so tests never see real keys."""

    for key in _PROVIDER_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_loguru_handlers() -> Iterator[None]:
    """Drop sinks added by tests so captured streams do not leak between tests."""

    yield
    loguru_logger.remove()
