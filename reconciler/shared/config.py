"""Shared configuration management for the reconciliation core.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/

The extraction strategies (fallback chain, confidence threshold, per-document
cost cap) are resolved from named presets plus optional overrides. The core
treats Settings as read-only input.
"""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reconciler.shared.errors import ConfigurationError

StrategyName = Literal[
    "llm-primary",
    "traditional-primary",
    "hybrid",
    "cost-optimized",
    "accuracy-optimized",
]

TRADITIONAL_METHOD = "traditional"
LLM_PROVIDERS = ("anthropic", "gemini", "openai")


class StrategyConfig(BaseModel):
    """A named extraction strategy.

    Attributes:
        name: Strategy identifier
        description: Human-readable summary
        fallback_chain: Ordered method names to try
        confidence_threshold: Minimum confidence that ends the chain early
        max_cost_per_document: Spend cap in dollars for one document
    """

    name: str
    description: str
    fallback_chain: list[str] = Field(default_factory=list)
    confidence_threshold: float = Field(ge=0, le=1)
    max_cost_per_document: float = Field(ge=0)


STRATEGY_PRESETS: dict[str, StrategyConfig] = {
    "llm-primary": StrategyConfig(
        name="llm-primary",
        description="LLM first, traditional fallback only",
        confidence_threshold=0.8,
        max_cost_per_document=0.10,
    ),
    "traditional-primary": StrategyConfig(
        name="traditional-primary",
        description="Traditional parsing with LLM validation",
        confidence_threshold=0.7,
        max_cost_per_document=0.02,
    ),
    "hybrid": StrategyConfig(
        name="hybrid",
        description="LLM + traditional combined analysis",
        confidence_threshold=0.85,
        max_cost_per_document=0.05,
    ),
    "cost-optimized": StrategyConfig(
        name="cost-optimized",
        description="Traditional first, LLM only for low confidence",
        confidence_threshold=0.6,
        max_cost_per_document=0.01,
    ),
    "accuracy-optimized": StrategyConfig(
        name="accuracy-optimized",
        description="Most accurate LLMs only",
        confidence_threshold=0.95,
        max_cost_per_document=0.20,
    ),
}


def build_fallback_chain(
    strategy: str,
    provider_order: list[str],
    enabled: set[str],
    costs: dict[str, float] | None = None,
) -> list[str]:
    """Build the fallback chain for a strategy from the enabled providers.

    Args:
        strategy: Strategy name (one of STRATEGY_PRESETS)
        provider_order: Preferred LLM provider order
        enabled: Names of LLM providers that are enabled
        costs: Cost per 1k tokens by provider, used by cost-optimized

    Returns:
        Ordered list of method names

    Raises:
        ConfigurationError: If the strategy name is unknown
    """
    llms = [name for name in provider_order if name in enabled]

    if strategy == "llm-primary":
        return [*llms, TRADITIONAL_METHOD]
    if strategy == "traditional-primary":
        return [TRADITIONAL_METHOD, *llms]
    if strategy == "hybrid":
        return [*llms[:1], TRADITIONAL_METHOD, *llms[1:]]
    if strategy == "cost-optimized":
        prices = costs or {}
        # sorted() is stable, so equal prices keep the configured order
        by_price = sorted(llms, key=lambda name: prices.get(name, float("inf")))
        return [TRADITIONAL_METHOD, *by_price]
    if strategy == "accuracy-optimized":
        return llms or [TRADITIONAL_METHOD]

    available = ", ".join(STRATEGY_PRESETS)
    raise ConfigurationError(f"Unknown extraction strategy: '{strategy}'. Available: {available}")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_EXTRACTION_STRATEGY=cost-optimized
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="invoice-reconciler",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Extraction strategy
    extraction_strategy: StrategyName = Field(
        default="hybrid",
        description="Named strategy controlling chain order, threshold and cost cap",
    )
    fallback_chain: list[str] | None = Field(
        default=None,
        description="Explicit method order; overrides the strategy's derived chain",
    )
    confidence_threshold: float | None = Field(
        default=None,
        ge=0,
        le=1,
        description="Overrides the strategy's confidence threshold",
    )
    max_cost_per_document: float | None = Field(
        default=None,
        ge=0,
        description="Overrides the strategy's per-document cost cap (dollars)",
    )
    provider_order: list[str] = Field(
        default_factory=lambda: list(LLM_PROVIDERS),
        description="Preferred LLM provider order (accuracy first)",
    )

    # Anthropic
    anthropic_enabled: bool = Field(default=False)
    anthropic_api_key: str = Field(default="", description="Use env var APP_ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022")
    anthropic_base_url: str = Field(default="https://api.anthropic.com/v1/messages")
    anthropic_cost_per_1k: float = Field(default=0.003, ge=0)
    anthropic_requests_per_minute: int = Field(default=50, ge=1)

    # Gemini
    gemini_enabled: bool = Field(default=False)
    gemini_api_key: str = Field(default="", description="Use env var APP_GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta/models")
    gemini_cost_per_1k: float = Field(default=0.00015, ge=0)
    gemini_requests_per_minute: int = Field(default=60, ge=1)

    # OpenAI (or any OpenAI-compatible backend)
    openai_enabled: bool = Field(default=False)
    openai_api_key: str = Field(default="", description="Use env var APP_OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_base_url: str | None = Field(default=None)
    openai_cost_per_1k: float = Field(default=0.00015, ge=0)
    openai_requests_per_minute: int = Field(default=30, ge=1)

    # Provider transport
    provider_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single provider HTTP call",
    )
    provider_max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Retries for transient transport errors (not parse failures)",
    )
    default_temperature: float = Field(default=0.1, ge=0, le=2)
    default_max_tokens: int = Field(default=4000, gt=0)

    # Matching
    match_relevance_floor: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Minimum composite score for a suggestion",
    )
    match_amount_tolerance: float = Field(
        default=0.25,
        gt=0,
        description="Relative amount difference at which proximity reaches zero",
    )
    match_text_weight: float = Field(default=0.6, ge=0)
    match_amount_weight: float = Field(default=0.4, ge=0)
    match_pattern_boost: float = Field(
        default=0.2,
        ge=0,
        le=1,
        description="Score boost for a pattern-hinted target, scaled by pattern accuracy",
    )
    match_pattern_min_accuracy: float = Field(
        default=0.8,
        ge=0,
        le=1,
        description="Pattern accuracy at which a hint is suggested on its own",
    )
    pattern_lookup_timeout_seconds: float = Field(default=2.0, gt=0)

    # Batch extraction
    batch_max_workers: int = Field(
        default=3,
        ge=1,
        description="Concurrent documents in batch extraction",
    )

    def provider_enabled(self, name: str) -> bool:
        """Whether an LLM provider is switched on and has a credential."""
        if name not in LLM_PROVIDERS:
            return False
        return bool(getattr(self, f"{name}_enabled")) and bool(getattr(self, f"{name}_api_key"))

    def provider_costs(self) -> dict[str, float]:
        """Cost per 1k tokens for every known LLM provider."""
        return {name: float(getattr(self, f"{name}_cost_per_1k")) for name in LLM_PROVIDERS}

    def resolve_strategy(self, name: str | None = None) -> StrategyConfig:
        """Resolve a strategy preset with configured overrides applied.

        Args:
            name: Strategy to resolve; defaults to extraction_strategy

        Returns:
            StrategyConfig with a concrete fallback chain

        Raises:
            ConfigurationError: If the strategy is unknown or the chain is empty
        """
        strategy_name = name or self.extraction_strategy
        preset = STRATEGY_PRESETS.get(strategy_name)
        if preset is None:
            available = ", ".join(STRATEGY_PRESETS)
            raise ConfigurationError(
                f"Unknown extraction strategy: '{strategy_name}'. Available: {available}"
            )

        if self.fallback_chain is not None:
            chain = list(self.fallback_chain)
        else:
            enabled = {p for p in self.provider_order if self.provider_enabled(p)}
            chain = build_fallback_chain(
                strategy_name, self.provider_order, enabled, self.provider_costs()
            )

        if not chain:
            raise ConfigurationError(f"Strategy '{strategy_name}' has no extraction methods")

        return preset.model_copy(
            update={
                "fallback_chain": chain,
                "confidence_threshold": (
                    self.confidence_threshold
                    if self.confidence_threshold is not None
                    else preset.confidence_threshold
                ),
                "max_cost_per_document": (
                    self.max_cost_per_document
                    if self.max_cost_per_document is not None
                    else preset.max_cost_per_document
                ),
            }
        )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
