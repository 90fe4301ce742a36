"""Shared parsing helpers for configuration and CLI value normalization."""

from __future__ import annotations

import re


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})
_INTERVAL_UNIT_SECONDS = {
    "second": 1,
    "sec": 1,
    "minute": 60,
    "min": 60,
    "hour": 3600,
    "h": 3600,
    "day": 86400,
    "d": 86400,
}
_INTERVAL_PATTERN = re.compile(r"^(?P<count>\d+)\s*(?P<unit>[a-z]+?)s?$")


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_required_boolean(value: object, field_name: str) -> bool:
    """Parse a required boolean value from accepted textual tokens.

    Args:
        value: Value to parse.
        field_name: Field name for an actionable validation error message.

    Raises:
        ValueError: If the token is not one of the accepted boolean values.
    """

    parsed = parse_permissive_boolean(value)
    if parsed is not None:
        return parsed

    raise ValueError(
        f"`{field_name}` must be a boolean value (`true`/`false`, `1`/`0`, `yes`/`no`)."
    )


def parse_interval_seconds(value: object, field_name: str) -> float:
    """Parse a human interval such as `1 minute` or `30 seconds` into seconds.

    Bare integers are read as seconds.

    Raises:
        ValueError: If the interval is blank, malformed, or not positive.
    """

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be an interval like `1 minute`.")
    if isinstance(value, int | float):
        seconds = float(value)
    else:
        normalized = normalize_optional_string(value)
        if normalized is None:
            raise ValueError(f"`{field_name}` must be an interval like `1 minute`.")
        token = normalized.lower()
        if token.isdigit():
            seconds = float(token)
        else:
            match = _INTERVAL_PATTERN.match(token)
            unit = match.group("unit") if match is not None else ""
            if match is None or unit not in _INTERVAL_UNIT_SECONDS:
                raise ValueError(
                    f"`{field_name}` value `{normalized}` is not a valid interval; "
                    "use forms like `1 minute`, `30 seconds`, or `2 hours`."
                )
            seconds = float(int(match.group("count")) * _INTERVAL_UNIT_SECONDS[unit])

    if seconds <= 0:
        raise ValueError(f"`{field_name}` must be a positive interval.")
    return seconds
