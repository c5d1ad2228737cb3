"""Factory for building the extraction adapters a strategy can use.

Registry of method name -> adapter class, so new backends can be plugged in
without touching the orchestrator.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from reconciler.extraction.anthropic_adapter import AnthropicAdapter
from reconciler.extraction.base import LLMProviderAdapter, ProviderAdapter
from reconciler.extraction.gemini_adapter import GeminiAdapter
from reconciler.extraction.heuristic_adapter import HeuristicAdapter
from reconciler.extraction.openai_adapter import OpenAIAdapter
from reconciler.extraction.rate_limiter import RateLimiter
from reconciler.shared.config import TRADITIONAL_METHOD, Settings
from reconciler.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available extraction methods.

    Maps method names (as used in fallback chains) to adapter classes.
    """

    _providers: dict[str, type[ProviderAdapter]] = {
        TRADITIONAL_METHOD: HeuristicAdapter,
        "anthropic": AnthropicAdapter,
        "gemini": GeminiAdapter,
        "openai": OpenAIAdapter,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[ProviderAdapter]) -> None:
        """Register a new extraction method.

        Args:
            name: Method name used in fallback chains
            provider_class: Class implementing ProviderAdapter
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered extraction provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[ProviderAdapter]:
        """Get adapter class by method name.

        Raises:
            ConfigurationError: If the method is not registered
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ConfigurationError(
                f"Unknown extraction provider: '{name}'. Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered method names."""
        return list(cls._providers.keys())


def create_adapter(
    name: str, settings: Settings, rate_limiter: RateLimiter
) -> ProviderAdapter:
    """Instantiate one adapter by method name.

    Args:
        name: Registered method name
        settings: Application settings
        rate_limiter: Shared limiter handed to network-backed adapters

    Returns:
        Adapter instance

    Raises:
        ConfigurationError: If the method is unknown
    """
    provider_class = ProviderRegistry.get_provider_class(name)
    if issubclass(provider_class, LLMProviderAdapter):
        return provider_class(settings, rate_limiter)
    return provider_class(settings)


def create_adapters(
    settings: Settings, rate_limiter: RateLimiter | None = None
) -> dict[str, ProviderAdapter]:
    """Build the adapters for the heuristic parser and every enabled LLM provider.

    All network adapters share one RateLimiter so limits hold across
    concurrent orchestrations in the process.

    Args:
        settings: Application settings
        rate_limiter: Limiter to share; a new one is created if omitted

    Returns:
        Mapping of method name to adapter

    Example:
        >>> adapters = create_adapters(Settings(gemini_enabled=True, gemini_api_key="..."))
        >>> sorted(adapters)
        ['gemini', 'traditional']
    """
    limiter = rate_limiter or RateLimiter()
    adapters: dict[str, ProviderAdapter] = {
        TRADITIONAL_METHOD: create_adapter(TRADITIONAL_METHOD, settings, limiter)
    }

    for name in ProviderRegistry.list_providers():
        if name == TRADITIONAL_METHOD or name in adapters:
            continue
        if not settings.provider_enabled(name):
            logger.debug(f"Extraction provider '{name}' is disabled or has no API key")
            continue
        adapter = create_adapter(name, settings, limiter)
        if not adapter.is_available():
            logger.warning(
                f"Extraction provider '{name}' is not fully available. Check configuration."
            )
        adapters[name] = adapter

    logger.info(f"Created extraction providers: {', '.join(adapters)}")
    return adapters
