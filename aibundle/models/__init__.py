"""Shared typed data models for aibundle.

This package contains dataclasses and enums used across provider clients, the
platform facade, and the rate limiting layer to avoid circular imports.
"""

from .datatypes import LimitType, Model, Provider, ProviderId, TextResult

__all__ = [
    "LimitType",
    "Model",
    "Provider",
    "ProviderId",
    "TextResult",
]
