"""Unit tests for shared parsing helpers."""

from __future__ import annotations

import pytest

from aibundle.parsing import (
    normalize_optional_string,
    parse_interval_seconds,
    parse_permissive_boolean,
    parse_required_boolean,
)


def test_normalize_optional_string_strips_and_drops_blank_values() -> None:
    """Blank and `None` values should normalize to `None`, others are stripped."""

    assert normalize_optional_string(None) is None
    assert normalize_optional_string("   ") is None
    assert normalize_optional_string("  openai ") == "openai"


def test_parse_permissive_boolean_accepts_textual_tokens() -> None:
    """Accepted boolean tokens should parse and unknown tokens should return `None`."""

    assert parse_permissive_boolean("Yes") is True
    assert parse_permissive_boolean("off") is False
    assert parse_permissive_boolean(True) is True
    assert parse_permissive_boolean("maybe") is None


def test_parse_required_boolean_rejects_unknown_tokens() -> None:
    """Required boolean parsing should name the field in its error."""

    with pytest.raises(ValueError, match="`rate_limiting.enabled` must be a boolean"):
        parse_required_boolean("sometimes", "rate_limiting.enabled")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1 minute", 60.0),
        ("30 seconds", 30.0),
        ("2 hours", 7200.0),
        ("1 day", 86400.0),
        ("15 min", 900.0),
        ("45", 45.0),
        (10, 10.0),
    ],
)
def test_parse_interval_seconds_reads_human_durations(value: object, expected: float) -> None:
    """Human durations and bare integers should convert to seconds."""

    assert parse_interval_seconds(value, "rate.interval") == expected


@pytest.mark.parametrize("value", ["", "soon", "0 minutes", "3 fortnights", True, -5])
def test_parse_interval_seconds_rejects_invalid_values(value: object) -> None:
    """Malformed, unknown-unit, or non-positive intervals should raise `ValueError`."""

    with pytest.raises(ValueError, match="rate.interval"):
        parse_interval_seconds(value, "rate.interval")
