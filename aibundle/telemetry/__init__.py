"""Telemetry and observability helpers.

This package emits deterministic event logs for provider calls and limiter
decisions.
"""

from .logger import BundleLogger, NullLogger

__all__ = ["BundleLogger", "NullLogger"]
