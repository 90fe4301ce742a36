"""Structured logging utilities for provider calls and rate limiting.

Responsibilities:
- Emit concise, deterministic `key=value` log lines through `loguru`.
- Never let a logging failure abort the request path.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class BundleLogger:
    """Emit deterministic event logs for provider calls and limiter decisions."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize the logger with one plain handler on `sink` (stderr when unset)."""

        self._logger = _loguru_logger.bind(component="aibundle")
        _loguru_logger.remove()
        _loguru_logger.add(
            sink if sink is not None else sys.stderr,
            format="{message}",
            level=level.upper(),
            colorize=False,
        )

    def emit(self, level: str, component: str, event: str, **context: object) -> None:
        """Emit one structured log line, ignoring sink failures."""

        try:
            line = (
                f"[aibundle] level={level} component={component} "
                f"event={event}{_format_context(context)}"
            )
            self._logger.log(level, line)
        except Exception:  # noqa: BLE001 - logging must not break provider calls
            return

    def info(self, component: str, event: str, **context: object) -> None:
        """Emit an INFO event."""

        self.emit("INFO", component, event, **context)

    def warning(self, component: str, event: str, **context: object) -> None:
        """Emit a WARNING event."""

        self.emit("WARNING", component, event, **context)

    def error(self, component: str, event: str, **context: object) -> None:
        """Emit an ERROR event."""

        self.emit("ERROR", component, event, **context)

    def debug(self, component: str, event: str, **context: object) -> None:
        """Emit a DEBUG event."""

        self.emit("DEBUG", component, event, **context)


class NullLogger(BundleLogger):
    """Logger that discards every event, used when logging is disabled."""

    def __init__(self) -> None:
        pass

    def emit(self, level: str, component: str, event: str, **context: object) -> None:
        return
