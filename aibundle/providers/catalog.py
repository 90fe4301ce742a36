"""Model catalogs and defaults for supported providers."""

from __future__ import annotations

from ..models.datatypes import Provider, ProviderId

OPENAI_MODELS: tuple[str, ...] = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4.1",
    "gpt-4.1-mini",
    "gpt-4.1-nano",
    "o3-mini",
)
ANTHROPIC_MODELS: tuple[str, ...] = (
    "claude-sonnet-4-20250514",
    "claude-opus-4-20250514",
    "claude-3-7-sonnet-20250219",
    "claude-3-5-haiku-20241022",
)
GEMINI_MODELS: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-2.0-flash",
)

DEFAULT_MODELS: dict[str, str] = {
    ProviderId.OPENAI.value: "gpt-4o-mini",
    ProviderId.ANTHROPIC.value: "claude-sonnet-4-20250514",
    ProviderId.GEMINI.value: "gemini-2.5-flash",
}

_CATALOG: dict[str, tuple[str, tuple[str, ...]]] = {
    ProviderId.OPENAI.value: ("OpenAI", OPENAI_MODELS),
    ProviderId.ANTHROPIC.value: ("Anthropic", ANTHROPIC_MODELS),
    ProviderId.GEMINI.value: ("Gemini", GEMINI_MODELS),
}


def create_provider(provider_id: str, default_model: str | None = None) -> Provider:
    """Return a fresh provider descriptor with its catalog and default model.

    Raises:
        ValueError: If the provider id is unknown or the default model is not
            in the provider catalog.
    """

    entry = _CATALOG.get(provider_id)
    if entry is None:
        supported = ", ".join(ProviderId.values())
        raise ValueError(f"Unsupported provider `{provider_id}`. Supported: {supported}.")
    name, models = entry
    provider = Provider(
        id=provider_id,
        name=name,
        models=models,
        default_model=DEFAULT_MODELS[provider_id],
    )
    if default_model:
        if not provider.has_model(default_model):
            raise ValueError(
                f"Default model `{default_model}` is not available from provider "
                f"`{provider_id}`. Available: {', '.join(models)}."
            )
        provider.configure_default_model(default_model)
    return provider
