"""Command-line interface for aibundle.

Responsibilities:
- Expose provider listing, connection checks, and a rate limiting smoke test.
- Load configuration from `--config` YAML or the environment and wire a bundle.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import time
from typing import Annotated, Any

import typer

from .bundle import Bundle, build_bundle
from .cli_rendering import (
    echo_definition_list,
    echo_note,
    echo_section,
    echo_table,
    echo_title,
    echo_warning,
    exit_with_command_error,
    summarize_models,
)
from .config import BundleConfig, ConfigLoader
from .errors import ConfigurationError, RateLimitExceededError
from .models.datatypes import LimitType, Model
from .platform import Platform
from .providers.mock_client import MockClient
from .ratelimit.client import RateLimitedClient
from .ratelimit.estimator import TokenEstimatorRegistry
from .ratelimit.external import BundleExternalRateLimiter, limiter_service_id
from .ratelimit.limiter import RateLimiterFactory
from .ratelimit.locks import LocalLockFactory
from .ratelimit.policy import TOKEN_BUCKET, RateLimitPolicy
from .ratelimit.provider_limiter import ProviderRateLimiter
from .ratelimit.storage import InMemoryStorage

app = typer.Typer(
    name="aibundle",
    no_args_is_help=True,
    help="AI provider bundle CLI.",
)

_API_KEY_HINTS = (
    "OPENAI_API_KEY=your-openai-key",
    "ANTHROPIC_API_KEY=your-anthropic-key",
    "GEMINI_API_KEY=your-gemini-key",
)
_COMMAND_MAX_RETRIES = 3
_MOCK_MODEL_ID = "gpt-4o-mini"
_MOCK_TOKEN_LIMIT = 100_000
_PREVIEW_CHARS = 50


@dataclass(frozen=True, slots=True)
class _CliState:
    config_path: Path | None = None


@dataclass(slots=True)
class _RateLimitSummary:
    successful: int = 0
    hit_rate_limit: int = 0
    permanently_limited: int = 0
    errors: int = 0
    retry_attempts: int = 0


@app.callback()
def _main_callback(
    ctx: typer.Context,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Path to YAML config file (defaults to environment variables).",
        ),
    ] = None,
) -> None:
    """AI provider bundle CLI."""

    ctx.obj = _CliState(config_path=config_file)


def _load_config(config_path: Path | None) -> BundleConfig:
    """Load YAML or environment configuration and map failures to stage errors."""

    if config_path is None:
        try:
            return ConfigLoader.from_env()
        except ValueError as exc:
            raise ConfigurationError(
                stage="config",
                detail=f"Invalid environment configuration: {exc}",
                hint="Fix the `AIBUNDLE_*` environment variables and rerun.",
            ) from exc

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise ConfigurationError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise ConfigurationError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _load_bundle(ctx: typer.Context) -> Bundle:
    """Load configuration and wire the bundle for a command."""

    state = ctx.obj if isinstance(ctx.obj, _CliState) else _CliState()
    config = _load_config(state.config_path)
    try:
        return build_bundle(config, sleeper=time.sleep)
    except ValueError as exc:
        raise ConfigurationError(
            stage="wiring",
            detail=str(exc),
            hint="Check `rate_limiting.storage` and `rate_limiting.lock_factory`.",
        ) from exc


@app.command("list-providers")
def list_providers_command(ctx: typer.Context) -> None:
    """List configured AI providers and their status."""

    try:
        bundle = _load_bundle(ctx)
    except Exception as exc:
        exit_with_command_error("list-providers", exc)

    echo_title("Configured AI Providers")
    platform = bundle.platform
    if platform is None:
        echo_warning("No AI providers configured")
        echo_note("Configure providers by setting API keys in your environment variables:")
        for hint in _API_KEY_HINTS:
            typer.echo(f" * {hint}")
        return

    rows: list[tuple[str, str, str, str]] = []
    for provider_id in platform.get_available_providers():
        try:
            provider = platform.get_provider(provider_id)
            rows.append(
                (
                    provider_id,
                    "Available",
                    provider.get_default_model(),
                    summarize_models(provider.get_available_models()),
                )
            )
        except Exception as exc:  # noqa: BLE001 - a broken provider is reported as a row
            rows.append((provider_id, "Error", "N/A", str(exc)))
    echo_table(("Provider", "Status", "Default Model", "Available Models"), rows)

    config = bundle.config
    echo_note(f"Default provider: {config.default_provider}")
    echo_note(f"Logging: {'enabled' if config.logging.enabled else 'disabled'}")
    echo_note(f"Rate limiting: {'enabled' if config.rate_limiting.enabled else 'disabled'}")


@app.command("list-models")
def list_models_command(
    ctx: typer.Context,
    provider: Annotated[
        str | None,
        typer.Option(
            "--provider",
            "-p",
            help="Filter by specific provider (openai, anthropic, gemini).",
        ),
    ] = None,
    detailed: Annotated[
        bool,
        typer.Option("--detailed", "-d", help="Show detailed model information."),
    ] = False,
) -> None:
    """List available models for each provider."""

    try:
        bundle = _load_bundle(ctx)
    except Exception as exc:
        exit_with_command_error("list-models", exc)

    platform = bundle.platform
    if platform is None:
        echo_warning("No AI providers configured")
        raise typer.Exit(code=1)

    provider_ids = platform.get_available_providers()
    if provider is not None:
        if not platform.has_provider(provider):
            typer.secho(
                f"Provider '{provider}' is not configured",
                fg=typer.colors.RED,
                err=True,
            )
            echo_note(f"Available providers: {', '.join(provider_ids)}")
            raise typer.Exit(code=1)
        provider_ids = [provider]

    echo_title("Available AI Models")
    for provider_id in provider_ids:
        echo_section(provider_id)
        descriptor = platform.get_provider(provider_id)
        default_model = descriptor.get_default_model()
        models = descriptor.get_available_models()
        if not models:
            typer.echo("No models available")
            continue

        if detailed:
            rows = []
            for model_id in models:
                status = "Available" if descriptor.has_model(model_id) else "Error"
                rows.append((model_id, status, "yes" if model_id == default_model else ""))
            echo_table(("Model", "Status", "Default"), rows)
        else:
            for model_id in models:
                suffix = " (default)" if model_id == default_model else ""
                typer.echo(f" * {model_id}{suffix}")
        typer.echo(f"Total models: {len(models)}")

    if provider is None and not detailed:
        echo_note(
            "Use --provider to filter by specific provider, or --detailed for more information"
        )


@app.command("test-connection")
def test_connection_command(ctx: typer.Context) -> None:
    """Test connections to all configured AI providers."""

    try:
        bundle = _load_bundle(ctx)
    except Exception as exc:
        exit_with_command_error("test-connection", exc)

    echo_title("Testing AI Provider Connections")
    platform = bundle.platform
    if platform is None:
        echo_warning("No AI providers configured")
        raise typer.Exit(code=1)

    all_successful = True
    for provider_id in platform.get_available_providers():
        descriptor = platform.get_provider(provider_id)
        echo_section(f"Testing {descriptor.name}")
        default_model = descriptor.get_default_model()
        typer.echo(f"  Testing with model: {default_model}")
        try:
            result = bundle.provider_platforms[provider_id].ask("Hello", default_model)
        except Exception as exc:  # noqa: BLE001 - every provider is checked before exiting
            all_successful = False
            typer.secho(f"{descriptor.name} connection failed", fg=typer.colors.RED)
            typer.echo(f"  Error: {exc}")
            continue
        typer.secho(f"{descriptor.name} connection successful", fg=typer.colors.GREEN)
        typer.echo(f"  Response length: {len(_result_text(result))} characters")

    if not all_successful:
        echo_warning("Some provider connections failed")
        raise typer.Exit(code=1)
    typer.secho("All provider connections successful!", fg=typer.colors.GREEN)


@app.command("test-rate-limiting")
def test_rate_limiting_command(
    ctx: typer.Context,
    request_count: Annotated[
        int,
        typer.Option("--requests", "-r", min=1, help="Number of requests to make."),
    ] = 5,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", min=1, help="Requests per minute (mock mode only)."),
    ] = 2,
    delay: Annotated[
        int,
        typer.Option("--delay", "-d", min=0, help="Delay between requests in milliseconds."),
    ] = 100,
    use_mock: Annotated[
        bool,
        typer.Option("--use-mock", "-m", help="Use a mock client instead of real providers."),
    ] = False,
    no_retry: Annotated[
        bool,
        typer.Option("--no-retry", help="Disable command-level retry on rate limit."),
    ] = False,
    client_id: Annotated[
        str,
        typer.Option("--client-id", "-c", help="Client identifier shown in output."),
    ] = "cli-test",
    model: Annotated[
        str | None,
        typer.Option("--model", help="Model to use for testing."),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="Provider to test (openai, anthropic, gemini)."),
    ] = None,
) -> None:
    """Test rate limiting with the configured limits or a mock client."""

    echo_title("AI Bundle Rate Limiting Test")

    if use_mock:
        echo_section("Mock Mode Configuration")
        echo_definition_list(
            [
                ("Mode", "Mock (standalone testing)"),
                ("Requests to make", request_count),
                ("Rate limit", f"{limit} requests per minute"),
                ("Delay between requests", f"{delay}ms"),
            ]
        )
        platform = create_rate_limited_mock_platform(limit)
        resolved_model = platform.resolve_model(_MOCK_MODEL_ID)
        command_retries = 0
    else:
        try:
            bundle = _load_bundle(ctx)
            if bundle.platform is None:
                raise ConfigurationError(
                    stage="platform",
                    detail="No platform configured; no provider has an API key.",
                    hint="Configure a provider API key or rerun with `--use-mock`.",
                )
            platform = bundle.platform
            _echo_real_configuration(bundle, client_id)
            resolved_model = _resolve_test_model(platform, model, provider)
        except Exception as exc:
            exit_with_command_error("test-rate-limiting", exc)
        command_retries = 0 if no_retry else _COMMAND_MAX_RETRIES
        echo_definition_list(
            [
                ("Requests to make", request_count),
                ("Delay between requests", f"{delay}ms"),
                (
                    "Retry on rate limit",
                    "No" if no_retry else f"Yes (max {_COMMAND_MAX_RETRIES} attempts)",
                ),
                ("Client identifier", client_id),
            ]
        )

    typer.echo(f"Using model: {resolved_model.id} from provider: {resolved_model.provider_id}")
    echo_section("Making requests")
    summary = _run_rate_limit_requests(
        platform,
        resolved_model,
        request_count=request_count,
        delay_ms=delay,
        command_retries=command_retries,
        client_id=client_id,
    )

    echo_section("Results Summary")
    echo_definition_list(
        [
            ("Client ID", client_id),
            ("Successful requests", summary.successful),
            ("Requests that hit rate limits", summary.hit_rate_limit),
            ("Permanently rate limited", summary.permanently_limited),
            ("Errors", summary.errors),
            ("Total retry attempts", summary.retry_attempts),
            ("Total requests", request_count),
        ]
    )
    if summary.hit_rate_limit > 0:
        typer.secho("Rate limiting is working correctly!", fg=typer.colors.GREEN)
        echo_note(
            f"Rate limiting activated on {summary.hit_rate_limit} out of {request_count} requests."
        )
        if summary.retry_attempts > 0:
            echo_note(f"Made {summary.retry_attempts} retry attempts due to rate limiting.")
        if summary.permanently_limited > 0:
            echo_note(
                f"{summary.permanently_limited} requests were permanently blocked "
                "after reaching maximum retries."
            )
    else:
        echo_warning(
            "No requests were rate limited. The configured limits may be higher than "
            "your test load."
        )


def create_rate_limited_mock_platform(requests_per_minute: int) -> Platform:
    """Return a platform around `MockClient` limited to `requests_per_minute`.

    Tokens are limited generously so only the request limit triggers; the client
    does not retry so every rejection reaches the command.
    """

    client = MockClient()
    provider_id = client.get_provider().id
    storage = InMemoryStorage()
    lock_factory = LocalLockFactory()
    factories = {}
    for limit_type, limit in (
        (LimitType.REQUESTS, requests_per_minute),
        (LimitType.TOKENS, _MOCK_TOKEN_LIMIT),
    ):
        service_id = limiter_service_id(provider_id, limit_type)
        factories[service_id] = RateLimiterFactory(
            service_id,
            RateLimitPolicy(policy=TOKEN_BUCKET, limit=limit, interval_seconds=60.0, amount=limit),
            storage=storage,
            lock_factory=lock_factory,
        )
    rate_limited = RateLimitedClient(
        client,
        ProviderRateLimiter(BundleExternalRateLimiter(factories)),
        TokenEstimatorRegistry.create_default(),
        enable_retries=False,
    )
    return Platform([rate_limited])


def _echo_real_configuration(bundle: Bundle, client_id: str) -> None:
    rate_limiting = bundle.config.rate_limiting
    platform = bundle.platform
    items: list[tuple[str, object]] = [
        ("Mode", "Real configuration (using bundle settings)"),
        ("Client ID", client_id),
        (
            "Available providers",
            ", ".join(platform.get_available_providers()) if platform is not None else "none",
        ),
        ("Rate limiting enabled", "Yes" if rate_limiting.enabled else "No"),
    ]
    if rate_limiting.enabled:
        items.extend(
            [
                ("Rate limit storage", rate_limiting.storage),
                ("Lock factory", rate_limiting.lock_factory),
                ("Client retries enabled", "Yes" if rate_limiting.enable_retries else "No"),
                (
                    "Max client retries",
                    rate_limiting.max_retries if rate_limiting.enable_retries else "N/A",
                ),
            ]
        )
    echo_section("Configuration")
    echo_definition_list(items)


def _resolve_test_model(platform: Platform, model_id: str | None, provider_id: str | None) -> Model:
    """Resolve `--model`, else `--provider`'s default model, else the platform default."""

    if model_id is not None:
        return platform.resolve_model(model_id)
    if provider_id is not None:
        descriptor = platform.get_provider(provider_id)
        return descriptor.get_model(descriptor.get_default_model())
    return platform.resolve_model(None)


def _run_rate_limit_requests(
    platform: Platform,
    model: Model,
    *,
    request_count: int,
    delay_ms: int,
    command_retries: int,
    client_id: str,
) -> _RateLimitSummary:
    summary = _RateLimitSummary()
    for index in range(1, request_count + 1):
        prefix = f"Request {index}/{request_count} [Client: {client_id}]:"
        attempt = 0
        request_retries = 0
        hit_rate_limit = False
        while True:
            prompt = f"Test request #{index} from client {client_id} (attempt {attempt + 1})"
            started = time.monotonic()
            try:
                result = platform.ask(prompt, model.id)
            except RateLimitExceededError as exc:
                hit_rate_limit = True
                if attempt < command_retries:
                    request_retries += 1
                    summary.retry_attempts += 1
                    typer.echo(
                        f"{prefix} RATE LIMITED - Retrying in {exc.retry_after_seconds}s..."
                    )
                    time.sleep(exc.retry_after_seconds)
                    attempt += 1
                    continue
                typer.echo(f"{prefix} RATE LIMITED - retry after {exc.retry_after_seconds}s")
                summary.permanently_limited += 1
                break
            except Exception as exc:  # noqa: BLE001 - errors are counted, not fatal
                typer.echo(f"{prefix} ERROR - {exc}")
                summary.errors += 1
                break

            duration_ms = round((time.monotonic() - started) * 1000, 2)
            retry_info = (
                f" (after {request_retries} rate limit retries)" if request_retries else ""
            )
            limit_info = " [HIT RATE LIMIT]" if hit_rate_limit else ""
            preview = _result_text(result)[:_PREVIEW_CHARS]
            typer.echo(
                f"{prefix} SUCCESS ({duration_ms}ms){retry_info}{limit_info} - {preview}..."
            )
            summary.successful += 1
            break

        if hit_rate_limit:
            summary.hit_rate_limit += 1
        if delay_ms > 0 and index < request_count:
            time.sleep(delay_ms / 1000)
    return summary


def _result_text(result: Any) -> str:
    get_content = getattr(result, "get_content", None)
    if callable(get_content):
        return str(get_content())
    return str(result)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
