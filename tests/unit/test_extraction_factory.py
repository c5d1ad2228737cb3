"""Unit tests for extraction provider factory.

Tests cover:
- Provider registry lookups
- Factory function adapter creation
- Configuration-based selection
- Error handling for unknown providers
"""

import logging

import pytest

from reconciler.extraction.anthropic_adapter import AnthropicAdapter
from reconciler.extraction.base import ProviderAdapter
from reconciler.extraction.factory import ProviderRegistry, create_adapter, create_adapters
from reconciler.extraction.gemini_adapter import GeminiAdapter
from reconciler.extraction.heuristic_adapter import HeuristicAdapter
from reconciler.extraction.rate_limiter import RateLimiter
from reconciler.extraction.schema import ExtractionRequest, ProviderResponse
from reconciler.shared.config import Settings
from reconciler.shared.errors import ConfigurationError


def test_provider_registry_default_providers() -> None:
    """Test that registry contains the heuristic parser and LLM providers."""
    providers = ProviderRegistry.list_providers()

    assert providers[:4] == ["traditional", "anthropic", "gemini", "openai"]


def test_provider_registry_get_anthropic() -> None:
    """Test getting Anthropic adapter from registry."""
    assert ProviderRegistry.get_provider_class("anthropic") == AnthropicAdapter


def test_provider_registry_unknown_provider() -> None:
    """Test that unknown provider raises ConfigurationError."""
    with pytest.raises(ConfigurationError, match="Unknown extraction provider"):
        ProviderRegistry.get_provider_class("nonexistent")


def test_provider_registry_error_message_lists_available() -> None:
    """Test that error message lists available providers."""
    with pytest.raises(ConfigurationError) as exc_info:
        ProviderRegistry.get_provider_class("invalid")

    assert "Available providers" in str(exc_info.value)
    assert "traditional" in str(exc_info.value)


def test_provider_registry_register_new_provider() -> None:
    """Test registering a new provider."""

    class TestProvider(ProviderAdapter):
        def call(self, request: ExtractionRequest) -> ProviderResponse:
            return ProviderResponse(success=False, provider="test")

        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "test"

    ProviderRegistry.register("test", TestProvider)
    try:
        assert "test" in ProviderRegistry.list_providers()
        assert ProviderRegistry.get_provider_class("test") == TestProvider
        adapter = create_adapter("test", Settings(_env_file=None), RateLimiter())
        assert isinstance(adapter, TestProvider)
    finally:
        del ProviderRegistry._providers["test"]


def test_create_adapter_heuristic_has_no_limiter() -> None:
    """Test that the heuristic adapter is built without a rate limiter."""
    adapter = create_adapter("traditional", Settings(_env_file=None), RateLimiter())

    assert isinstance(adapter, HeuristicAdapter)
    assert not hasattr(adapter, "rate_limiter")


def test_create_adapters_default_is_heuristic_only() -> None:
    """Test that with no LLM provider enabled only the heuristic parser is built."""
    adapters = create_adapters(Settings(_env_file=None))

    assert list(adapters) == ["traditional"]


def test_create_adapters_enabled_providers_share_limiter() -> None:
    """Test that every LLM adapter receives the same limiter instance."""
    settings = Settings(
        _env_file=None,
        anthropic_enabled=True,
        anthropic_api_key="a-key",
        gemini_enabled=True,
        gemini_api_key="g-key",
    )
    limiter = RateLimiter()

    adapters = create_adapters(settings, limiter)

    assert list(adapters) == ["traditional", "anthropic", "gemini"]
    assert isinstance(adapters["gemini"], GeminiAdapter)
    assert adapters["anthropic"].rate_limiter is limiter  # type: ignore[attr-defined]
    assert adapters["gemini"].rate_limiter is limiter  # type: ignore[attr-defined]


def test_create_adapters_skips_enabled_provider_without_key(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that an enabled provider with no key is left out."""
    settings = Settings(_env_file=None, openai_enabled=True)

    with caplog.at_level(logging.INFO):
        adapters = create_adapters(settings)

    assert "openai" not in adapters
    assert "Created extraction providers: traditional" in caplog.text
