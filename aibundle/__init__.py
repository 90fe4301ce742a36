"""Top-level package for aibundle.

This package wires OpenAI, Anthropic, and Gemini clients behind a platform
facade and decorates them with configurable request and token rate limiting.
The main wiring entry point is `build_bundle`.
"""

from .bundle import Bundle, build_bundle
from .config import BundleConfig, ConfigLoader
from .platform import Platform, ProviderPlatform

__all__ = [
    "Bundle",
    "BundleConfig",
    "ConfigLoader",
    "Platform",
    "ProviderPlatform",
    "__version__",
    "build_bundle",
]

__version__ = "0.1.0"
