"""Provider clients for OpenAI, Anthropic, and Gemini plus a network-free mock."""

from .anthropic_client import AnthropicClient
from .base import HttpProviderClient, ProviderClient
from .catalog import DEFAULT_MODELS, create_provider
from .gemini_client import GeminiClient
from .mock_client import MockClient
from .openai_client import OpenAIClient

__all__ = [
    "AnthropicClient",
    "DEFAULT_MODELS",
    "GeminiClient",
    "HttpProviderClient",
    "MockClient",
    "OpenAIClient",
    "ProviderClient",
    "create_provider",
]
