"""Platform facades routing prompts to provider clients.

Responsibilities:
- Resolve a model id (or the default provider's default model) to a `Model`.
- Delegate requests to the first client supporting the resolved model.
- Expose provider catalogs for the console commands.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from .errors import ModelNotFoundError, ProviderNotFoundError
from .models.datatypes import Model, Provider
from .providers.base import ProviderClient
from .telemetry.logger import BundleLogger, NullLogger


class Platform:
    """Multi-provider platform over an ordered list of clients."""

    def __init__(
        self,
        clients: Sequence[ProviderClient],
        logger: BundleLogger | None = None,
        default_provider: str | None = None,
    ) -> None:
        self._clients = list(clients)
        self._providers: dict[str, Provider] = {}
        for client in self._clients:
            provider = client.get_provider()
            self._providers.setdefault(provider.id, provider)
        self.logger = logger if logger is not None else NullLogger()
        self.default_provider = default_provider

    def ask(
        self,
        input: Any,
        model: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a prompt to the client serving `model` and return its result.

        Raises:
            ModelNotFoundError: If the model id is unknown to every provider or no
                client supports it.
            ProviderNotFoundError: If no model is given and no provider is configured.
        """

        resolved = self.resolve_model(model)
        for client in self._clients:
            if client.supports(resolved):
                self.logger.info(
                    "platform",
                    "request",
                    provider=resolved.provider_id,
                    model=resolved.id,
                )
                return client.request(resolved, input, options or {})
        raise ModelNotFoundError(f"No configured client supports model `{resolved.id}`.")

    def resolve_model(self, model_id: str | None = None) -> Model:
        """Resolve an explicit model id, or the default provider's default model."""

        if model_id is not None:
            for provider in self._providers.values():
                if provider.has_model(model_id):
                    return provider.get_model(model_id)
            raise ModelNotFoundError(
                f"Model `{model_id}` not found in any configured provider."
            )

        provider = self._default_provider()
        return provider.get_model(provider.get_default_model())

    def get_provider(self, provider_id: str) -> Provider:
        """Return a configured provider or raise `ProviderNotFoundError`."""

        provider = self._providers.get(provider_id)
        if provider is None:
            available = ", ".join(self._providers) or "none"
            raise ProviderNotFoundError(
                f"Provider `{provider_id}` is not configured. Available: {available}."
            )
        return provider

    def get_available_providers(self) -> list[str]:
        """Return configured provider ids in registration order."""

        return list(self._providers)

    def has_provider(self, provider_id: str) -> bool:
        """Return whether `provider_id` is configured."""

        return provider_id in self._providers

    def configure_provider_default_model(self, provider_id: str, model_id: str) -> None:
        """Override a provider's default model; the model must be in its catalog."""

        self.get_provider(provider_id).configure_default_model(model_id)

    def _default_provider(self) -> Provider:
        if self.default_provider is not None and self.default_provider in self._providers:
            return self._providers[self.default_provider]
        if not self._providers:
            raise ProviderNotFoundError("No AI providers configured.")
        return next(iter(self._providers.values()))


class ProviderPlatform:
    """Single-provider platform delegating to a `Platform` with one client."""

    def __init__(self, client: ProviderClient, logger: BundleLogger | None = None) -> None:
        """Wrap one client in a single-provider platform."""

        self._platform = Platform([client], logger=logger)

    def ask(
        self,
        input: Any,
        model: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send `input` to this provider's client."""

        return self._platform.ask(input, model, options)

    def resolve_model(self, model_id: str | None = None) -> Model:
        """Resolve `model_id`, or this provider's default model."""

        return self._platform.resolve_model(model_id)

    def get_provider(self, provider_id: str) -> Provider:
        """Return the provider when `provider_id` matches it."""

        return self._platform.get_provider(provider_id)

    def get_available_providers(self) -> list[str]:
        """Return the single configured provider id."""

        return self._platform.get_available_providers()

    def has_provider(self, provider_id: str) -> bool:
        """Return whether `provider_id` is this platform's provider."""

        return self._platform.has_provider(provider_id)

    def configure_provider_default_model(self, provider_id: str, model_id: str) -> None:
        """Override the provider's default model."""

        self._platform.configure_provider_default_model(provider_id, model_id)
