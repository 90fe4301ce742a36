"""Module entrypoint for running aibundle as ``python -m aibundle``."""

from __future__ import annotations

from aibundle.cli import main


if __name__ == "__main__":
    main()
