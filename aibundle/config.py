"""Configuration model and loaders for aibundle.

Responsibilities:
- Define provider, logging, and rate limiting settings as typed dataclasses.
- Resolve `%env(NAME)%` placeholders and per-provider defaults deterministically.
- Provide loader entry points for YAML, mapping, and environment configuration.

Key types:
- `BundleConfig`: normalized settings consumed by `build_bundle`.
- `ProviderConfig`: credentials and HTTP settings for one provider.
- `RateLimitingConfig`: backend identifiers, retry toggles, and policy overrides.
- `ConfigLoader`: static construction helpers for `BundleConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

from .models.datatypes import LimitType, ProviderId
from .parsing import normalize_optional_string, parse_required_boolean
from .providers.catalog import DEFAULT_MODELS, create_provider
from .ratelimit.policy import RateLimitPolicy, resolve_policy


_ENV_PLACEHOLDER = re.compile(r"%env\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\)%")
_PROVIDER_API_KEY_ENV = {
    ProviderId.OPENAI.value: "OPENAI_API_KEY",
    ProviderId.ANTHROPIC.value: "ANTHROPIC_API_KEY",
    ProviderId.GEMINI.value: "GEMINI_API_KEY",
}
_OPENAI_ORGANIZATION_ENV = "OPENAI_ORGANIZATION"
_DEFAULT_TIMEOUT_SECONDS = 30.0
_SUPPORTED_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Credentials and HTTP settings for one provider.

    Attributes:
        api_key: Provider API key; providers without one are not registered.
        organization: OpenAI organization id, ignored by other providers.
        default_model: Default model id override, `None` keeps the catalog default.
        timeout_seconds: HTTP request timeout.
        base_url: Optional API base URL override.
    """

    api_key: str | None = None
    organization: str | None = None
    default_model: str | None = None
    timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS
    base_url: str | None = None

    @property
    def is_enabled(self) -> bool:
        """Return whether the provider has a usable API key."""

        return normalize_optional_string(self.api_key) is not None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging toggle and minimum level."""

    enabled: bool = True
    level: str = "INFO"


@dataclass(frozen=True, slots=True)
class RateLimitingConfig:
    """Rate limiting backends, retry toggles, and per-provider policy overrides.

    Attributes:
        enabled: Whether provider clients are wrapped in rate-limited clients.
        storage: `memory` or a `redis://` URL for limiter state.
        lock_factory: `local` or a `redis://` URL for lock coordination.
        enable_retries: Whether rate-limited clients retry rejections.
        max_retries: Maximum retries per request when retries are enabled.
        providers: `{provider: {type: policy overrides}}`; only listed pairs get limiters.
    """

    enabled: bool = True
    storage: str = "memory"
    lock_factory: str = "local"
    enable_retries: bool = True
    max_retries: int = 10
    providers: Mapping[str, Mapping[str, Mapping[str, Any]]] = field(default_factory=dict)

    def configured_limits(self) -> list[tuple[str, str]]:
        """Return configured `(provider, type)` pairs in configuration order."""

        return [
            (provider_id, limit_type)
            for provider_id, types in self.providers.items()
            for limit_type in types
        ]

    def policy_for(self, provider_id: str, limit_type: str) -> RateLimitPolicy:
        """Return the merged policy for a configured provider/type pair."""

        overrides = self.providers.get(provider_id, {}).get(limit_type)
        return resolve_policy(provider_id, limit_type, overrides)


@dataclass(slots=True)
class BundleConfig:
    """Top-level configuration for one bundle.

    Attributes:
        default_provider: Provider used when callers do not pick a model.
        providers: Provider settings keyed by provider id.
        logging: Logging settings.
        rate_limiting: Rate limiting settings.
    """

    default_provider: str = ProviderId.OPENAI.value
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    rate_limiting: RateLimitingConfig = field(default_factory=RateLimitingConfig)

    def validate(self) -> None:
        """Validate cross-field invariants before wiring."""

        _validate_provider_id(self.default_provider, "default_provider")
        for provider_id, provider_config in self.providers.items():
            _validate_provider_id(provider_id, f"providers.{provider_id}")
            if provider_config.timeout_seconds <= 0:
                raise ValueError(f"`providers.{provider_id}.timeout` must be positive.")
            if provider_config.default_model is not None:
                create_provider(provider_id, provider_config.default_model)
        if self.logging.level not in _SUPPORTED_LOG_LEVELS:
            supported = ", ".join(sorted(_SUPPORTED_LOG_LEVELS))
            raise ValueError(
                f"Unsupported `logging.level` value `{self.logging.level}`; supported: {supported}."
            )
        if self.rate_limiting.max_retries < 0:
            raise ValueError("`rate_limiting.max_retries` must be zero or a positive integer.")
        for provider_id, limit_type in self.rate_limiting.configured_limits():
            if limit_type not in {member.value for member in LimitType}:
                raise ValueError(
                    f"`rate_limiting.providers.{provider_id}` includes unsupported limit "
                    f"type `{limit_type}`; supported: requests, tokens."
                )
            self.rate_limiting.policy_for(provider_id, limit_type)

    def enabled_provider_ids(self) -> list[str]:
        """Return supported provider ids with a non-empty API key, in canonical order."""

        return [
            provider_id
            for provider_id in ProviderId.values()
            if provider_id in self.providers and self.providers[provider_id].is_enabled
        ]


class ConfigLoader:
    """Factory methods for creating `BundleConfig` from external sources."""

    _SUPPORTED_ROOT_KEYS = frozenset({"default_provider", "providers", "logging", "rate_limiting"})
    _SUPPORTED_PROVIDER_KEYS = frozenset(
        {"api_key", "organization", "default_model", "timeout", "base_url"}
    )
    _SUPPORTED_LOGGING_KEYS = frozenset({"enabled", "level"})
    _SUPPORTED_RATE_LIMITING_KEYS = frozenset(
        {"enabled", "storage", "lock_factory", "enable_retries", "max_retries", "providers"}
    )

    @staticmethod
    def from_yaml(path: Path, env: Mapping[str, str] | None = None) -> BundleConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        try:
            payload = yaml.safe_load(path_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` could not be parsed: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader.from_mapping(payload, env=env, source_label=f"YAML `{path}`")

    @staticmethod
    def from_mapping(
        payload: Mapping[str, Any],
        env: Mapping[str, str] | None = None,
        source_label: str = "config",
    ) -> BundleConfig:
        """Create a validated config from a nested mapping."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        resolved = _resolve_placeholders(payload, env_map)
        ConfigLoader._validate_keys(resolved, ConfigLoader._SUPPORTED_ROOT_KEYS, source_label)

        default_provider = (
            normalize_optional_string(resolved.get("default_provider")) or ProviderId.OPENAI.value
        )
        providers = ConfigLoader._providers_from_mapping(
            ConfigLoader._optional_mapping(resolved, "providers", source_label),
            env_map,
            source_label,
        )
        logging_config = ConfigLoader._logging_from_mapping(
            ConfigLoader._optional_mapping(resolved, "logging", source_label),
            source_label,
        )
        rate_limiting = ConfigLoader._rate_limiting_from_mapping(
            ConfigLoader._optional_mapping(resolved, "rate_limiting", source_label),
            source_label,
        )

        config = BundleConfig(
            default_provider=default_provider,
            providers=providers,
            logging=logging_config,
            rate_limiting=rate_limiting,
        )
        config.validate()
        return config

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> BundleConfig:
        """Create a validated config from environment variables.

        Every provider whose API key variable is set is configured with default
        request and token limits.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env

        providers: dict[str, ProviderConfig] = {}
        for provider_id, env_key in _PROVIDER_API_KEY_ENV.items():
            api_key = normalize_optional_string(env_map.get(env_key))
            if api_key is None:
                continue
            organization = (
                normalize_optional_string(env_map.get(_OPENAI_ORGANIZATION_ENV))
                if provider_id == ProviderId.OPENAI.value
                else None
            )
            providers[provider_id] = ProviderConfig(api_key=api_key, organization=organization)

        rate_limiting = RateLimitingConfig(
            enabled=ConfigLoader._env_boolean(env_map, "AIBUNDLE_RATE_LIMITING_ENABLED", True),
            storage=normalize_optional_string(env_map.get("AIBUNDLE_RATE_LIMITING_STORAGE"))
            or "memory",
            lock_factory=normalize_optional_string(
                env_map.get("AIBUNDLE_RATE_LIMITING_LOCK_FACTORY")
            )
            or "local",
            enable_retries=ConfigLoader._env_boolean(env_map, "AIBUNDLE_ENABLE_RETRIES", True),
            max_retries=ConfigLoader._env_non_negative_int(env_map, "AIBUNDLE_MAX_RETRIES", 10),
            providers={
                provider_id: {member.value: {} for member in LimitType}
                for provider_id in providers
            },
        )

        config = BundleConfig(
            default_provider=normalize_optional_string(env_map.get("AIBUNDLE_DEFAULT_PROVIDER"))
            or ProviderId.OPENAI.value,
            providers=providers,
            logging=LoggingConfig(
                enabled=ConfigLoader._env_boolean(env_map, "AIBUNDLE_LOGGING_ENABLED", True),
            ),
            rate_limiting=rate_limiting,
        )
        config.validate()
        return config

    @staticmethod
    def _providers_from_mapping(
        payload: Mapping[str, Any],
        env_map: Mapping[str, str],
        source_label: str,
    ) -> dict[str, ProviderConfig]:
        """Build provider settings, filling unset fields from per-provider defaults."""

        providers: dict[str, ProviderConfig] = {}
        for provider_id, raw in payload.items():
            provider_id = str(provider_id)
            _validate_provider_id(provider_id, f"providers.{provider_id}")
            section_label = f"{source_label} `providers.{provider_id}`"
            section = raw if isinstance(raw, Mapping) else {}
            ConfigLoader._validate_keys(
                section, ConfigLoader._SUPPORTED_PROVIDER_KEYS, section_label
            )

            api_key = normalize_optional_string(section.get("api_key"))
            if "api_key" not in section:
                api_key = normalize_optional_string(env_map.get(_PROVIDER_API_KEY_ENV[provider_id]))
            organization = normalize_optional_string(section.get("organization"))
            if "organization" not in section and provider_id == ProviderId.OPENAI.value:
                organization = normalize_optional_string(env_map.get(_OPENAI_ORGANIZATION_ENV))

            providers[provider_id] = ProviderConfig(
                api_key=api_key,
                organization=organization,
                default_model=normalize_optional_string(section.get("default_model"))
                or DEFAULT_MODELS[provider_id],
                timeout_seconds=ConfigLoader._positive_float(
                    section.get("timeout", _DEFAULT_TIMEOUT_SECONDS), f"{section_label}.timeout"
                ),
                base_url=normalize_optional_string(section.get("base_url")),
            )
        return providers

    @staticmethod
    def _logging_from_mapping(payload: Mapping[str, Any], source_label: str) -> LoggingConfig:
        section_label = f"{source_label} `logging`"
        ConfigLoader._validate_keys(payload, ConfigLoader._SUPPORTED_LOGGING_KEYS, section_label)
        enabled = (
            parse_required_boolean(payload["enabled"], "logging.enabled")
            if "enabled" in payload
            else True
        )
        level = (normalize_optional_string(payload.get("level")) or "INFO").upper()
        return LoggingConfig(enabled=enabled, level=level)

    @staticmethod
    def _rate_limiting_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> RateLimitingConfig:
        section_label = f"{source_label} `rate_limiting`"
        ConfigLoader._validate_keys(
            payload, ConfigLoader._SUPPORTED_RATE_LIMITING_KEYS, section_label
        )

        providers: dict[str, dict[str, dict[str, Any]]] = {}
        for provider_id, types in ConfigLoader._optional_mapping(
            payload, "providers", section_label
        ).items():
            if not isinstance(types, Mapping):
                raise ValueError(
                    f"{section_label} `providers.{provider_id}` must be a mapping of limit types."
                )
            providers[str(provider_id)] = {}
            for limit_type, overrides in types.items():
                if overrides is None:
                    overrides = {}
                if not isinstance(overrides, Mapping):
                    raise ValueError(
                        f"{section_label} `providers.{provider_id}.{limit_type}` must be a mapping."
                    )
                providers[str(provider_id)][str(limit_type)] = dict(overrides)

        return RateLimitingConfig(
            enabled=ConfigLoader._optional_boolean(payload, "enabled", "rate_limiting.enabled"),
            storage=normalize_optional_string(payload.get("storage")) or "memory",
            lock_factory=normalize_optional_string(payload.get("lock_factory")) or "local",
            enable_retries=ConfigLoader._optional_boolean(
                payload, "enable_retries", "rate_limiting.enable_retries"
            ),
            max_retries=ConfigLoader._non_negative_int(
                payload.get("max_retries", 10), "rate_limiting.max_retries"
            ),
            providers=providers,
        )

    @staticmethod
    def _validate_keys(
        payload: Mapping[str, Any], supported: frozenset[str], source_label: str
    ) -> None:
        """Reject unknown keys with an actionable message."""

        unknown = sorted(str(key) for key in set(payload).difference(supported))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

    @staticmethod
    def _optional_mapping(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> Mapping[str, Any]:
        value = payload.get(key)
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError(f"{source_label} `{key}` must be a mapping/object.")
        return value

    @staticmethod
    def _optional_boolean(payload: Mapping[str, Any], key: str, field_name: str) -> bool:
        if key not in payload or payload[key] is None:
            return True
        return parse_required_boolean(payload[key], field_name)

    @staticmethod
    def _non_negative_int(value: object, field_name: str) -> int:
        if isinstance(value, bool):
            raise ValueError(f"`{field_name}` must be zero or a positive integer.")
        try:
            parsed = int(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"`{field_name}` must be zero or a positive integer.") from exc
        if parsed < 0:
            raise ValueError(f"`{field_name}` must be zero or a positive integer.")
        return parsed

    @staticmethod
    def _positive_float(value: object, field_name: str) -> float:
        if isinstance(value, bool):
            raise ValueError(f"`{field_name}` must be a positive number of seconds.")
        try:
            parsed = float(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"`{field_name}` must be a positive number of seconds.") from exc
        if parsed <= 0:
            raise ValueError(f"`{field_name}` must be a positive number of seconds.")
        return parsed

    @staticmethod
    def _env_boolean(env_map: Mapping[str, str], key: str, default: bool) -> bool:
        value = normalize_optional_string(env_map.get(key))
        if value is None:
            return default
        return parse_required_boolean(value, key)

    @staticmethod
    def _env_non_negative_int(env_map: Mapping[str, str], key: str, default: int) -> int:
        value = normalize_optional_string(env_map.get(key))
        if value is None:
            return default
        return ConfigLoader._non_negative_int(value, key)


def _resolve_placeholders(value: Any, env_map: Mapping[str, str]) -> Any:
    """Replace `%env(NAME)%` placeholders in string values recursively.

    A value that is exactly one placeholder of an unset variable resolves to `None`.
    """

    if isinstance(value, str):
        full = _ENV_PLACEHOLDER.fullmatch(value.strip())
        if full is not None:
            return normalize_optional_string(env_map.get(full.group("name")))
        return _ENV_PLACEHOLDER.sub(lambda match: env_map.get(match.group("name"), ""), value)
    if isinstance(value, Mapping):
        return {key: _resolve_placeholders(item, env_map) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_placeholders(item, env_map) for item in value]
    return value


def _validate_provider_id(provider_id: str, field_name: str) -> None:
    """Validate provider identifiers against providers with client implementations."""

    if provider_id not in ProviderId.values():
        supported = ", ".join(ProviderId.values())
        raise ValueError(
            f"Unsupported `{field_name}` value `{provider_id}`; supported: {supported}."
        )
