"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
plain-text tables, and definition lists.
"""

from __future__ import annotations

from typing import NoReturn, Sequence

import typer

from .errors import ConfigurationError


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, ConfigurationError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_title(title: str) -> None:
    """Print an underlined command title."""

    typer.echo(title)
    typer.echo("=" * len(title))


def echo_section(title: str) -> None:
    """Print a blank line and an underlined section heading."""

    typer.echo("")
    typer.echo(title)
    typer.echo("-" * len(title))


def echo_warning(message: str) -> None:
    typer.secho(f"[WARNING] {message}", fg=typer.colors.YELLOW)


def echo_note(message: str) -> None:
    typer.echo(f"[NOTE] {message}")


def echo_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
    """Print a left-aligned plain-text table with deterministic column widths."""

    cells = [[str(value) for value in row] for row in rows]
    widths = [len(header) for header in headers]
    for row in cells:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(value))

    def _line(values: Sequence[str]) -> str:
        return " | ".join(value.ljust(widths[index]) for index, value in enumerate(values)).rstrip()

    typer.echo(_line(list(headers)))
    typer.echo("-+-".join("-" * width for width in widths))
    for row in cells:
        typer.echo(_line(row))


def echo_definition_list(items: Sequence[tuple[str, object]]) -> None:
    """Print `label: value` rows with aligned labels."""

    if not items:
        return
    label_width = max(len(label) for label, _ in items)
    for label, value in items:
        typer.echo(f"{label.ljust(label_width)} : {value}")


def summarize_models(models: Sequence[str], shown: int = 3) -> str:
    """Return the first `shown` models with a `(+N more)` suffix when truncated."""

    if not models:
        return "0 models"
    if len(models) <= shown:
        return ", ".join(models)
    return f"{', '.join(models[:shown])} (+{len(models) - shown} more)"
