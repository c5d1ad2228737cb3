"""Unit tests for configuration and extraction strategies."""

import os
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from reconciler.shared.config import (
    STRATEGY_PRESETS,
    Settings,
    build_fallback_chain,
    get_settings,
)
from reconciler.shared.errors import ConfigurationError


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.upper().startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoice-reconciler"
    assert settings.extraction_strategy == "hybrid"
    assert settings.provider_timeout_seconds == 30.0
    assert settings.provider_max_retries == 2
    assert settings.match_amount_tolerance == 0.25
    assert settings.match_relevance_floor == 0.3
    assert settings.anthropic_requests_per_minute == 50
    assert settings.gemini_requests_per_minute == 60


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_EXTRACTION_STRATEGY"] = "cost-optimized"
    os.environ["APP_GEMINI_ENABLED"] = "true"
    os.environ["APP_GEMINI_API_KEY"] = "g-key"
    os.environ["APP_FALLBACK_CHAIN"] = '["gemini", "traditional"]'

    settings = Settings(_env_file=None)

    assert settings.extraction_strategy == "cost-optimized"
    assert settings.provider_enabled("gemini") is True
    assert settings.fallback_chain == ["gemini", "traditional"]


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"


def test_settings_reject_invalid_threshold(clean_env: None) -> None:
    """Test that out-of-range values surface as validation errors."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, confidence_threshold=1.5)


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "invoice-reconciler"


def test_provider_enabled_requires_api_key() -> None:
    """Test that a provider without a credential is not enabled."""
    settings = Settings(_env_file=None, anthropic_enabled=True, anthropic_api_key="")

    assert settings.provider_enabled("anthropic") is False
    assert settings.provider_enabled("unknown") is False


def test_strategy_presets() -> None:
    """Test the named strategies carry their thresholds and cost caps."""
    assert set(STRATEGY_PRESETS) == {
        "llm-primary",
        "traditional-primary",
        "hybrid",
        "cost-optimized",
        "accuracy-optimized",
    }
    assert STRATEGY_PRESETS["hybrid"].confidence_threshold == 0.85
    assert STRATEGY_PRESETS["hybrid"].max_cost_per_document == 0.05
    assert STRATEGY_PRESETS["accuracy-optimized"].max_cost_per_document == 0.20


@pytest.mark.parametrize(
    ("strategy", "expected"),
    [
        ("llm-primary", ["anthropic", "gemini", "traditional"]),
        ("traditional-primary", ["traditional", "anthropic", "gemini"]),
        ("hybrid", ["anthropic", "traditional", "gemini"]),
        ("cost-optimized", ["traditional", "gemini", "anthropic"]),
        ("accuracy-optimized", ["anthropic", "gemini"]),
    ],
)
def test_build_fallback_chain(strategy: str, expected: list[str]) -> None:
    """Test chain construction for each strategy."""
    chain = build_fallback_chain(
        strategy,
        ["anthropic", "gemini", "openai"],
        {"anthropic", "gemini"},
        {"anthropic": 0.003, "gemini": 0.00015, "openai": 0.00015},
    )

    assert chain == expected


def test_build_fallback_chain_without_llms() -> None:
    """Test that accuracy-optimized falls back to traditional with no LLM enabled."""
    assert build_fallback_chain("accuracy-optimized", ["anthropic"], set()) == ["traditional"]
    assert build_fallback_chain("hybrid", ["anthropic"], set()) == ["traditional"]


def test_build_fallback_chain_unknown_strategy() -> None:
    """Test that unknown strategies are rejected."""
    with pytest.raises(ConfigurationError, match="Unknown extraction strategy"):
        build_fallback_chain("fastest", [], set())


def test_resolve_strategy_applies_overrides() -> None:
    """Test that explicit settings override preset values."""
    settings = Settings(
        _env_file=None,
        fallback_chain=["gemini", "traditional"],
        confidence_threshold=0.5,
        max_cost_per_document=0.3,
    )

    strategy = settings.resolve_strategy("llm-primary")

    assert strategy.name == "llm-primary"
    assert strategy.fallback_chain == ["gemini", "traditional"]
    assert strategy.confidence_threshold == 0.5
    assert strategy.max_cost_per_document == 0.3
    # Presets are never mutated
    assert STRATEGY_PRESETS["llm-primary"].fallback_chain == []


def test_resolve_strategy_uses_enabled_providers() -> None:
    """Test that the derived chain only includes enabled providers."""
    settings = Settings(_env_file=None, gemini_enabled=True, gemini_api_key="g-key")

    strategy = settings.resolve_strategy()

    assert strategy.name == "hybrid"
    assert strategy.fallback_chain == ["gemini", "traditional"]
    assert strategy.confidence_threshold == 0.85


def test_resolve_strategy_rejects_empty_chain() -> None:
    """Test that an explicitly empty chain is a configuration error."""
    settings = Settings(_env_file=None, fallback_chain=[])

    with pytest.raises(ConfigurationError, match="no extraction methods"):
        settings.resolve_strategy()


def test_resolve_strategy_unknown_name() -> None:
    """Test that unknown strategy names are rejected."""
    with pytest.raises(ConfigurationError):
        Settings(_env_file=None).resolve_strategy("fastest")
