"""Extraction orchestrator: runs a document through a fallback chain.

Methods are tried in the configured order until one returns a result at or
above the strategy's confidence threshold, the per-document cost cap is
reached, or the caller cancels. The best below-threshold result is kept as
a fallback answer.

Only ConfigurationError escapes; every provider problem is recorded as a
failed ExtractionAttempt.
"""

import logging
import math
import threading
import time

from pydantic import BaseModel, Field

from reconciler.extraction.base import ProviderAdapter
from reconciler.extraction.schema import (
    DocumentAttachment,
    ExtractedInvoice,
    ExtractionContext,
    ExtractionOptions,
    ExtractionRequest,
    ParseMode,
    ProviderResponse,
    TokenUsage,
)
from reconciler.shared import metrics
from reconciler.shared.config import (
    STRATEGY_PRESETS,
    TRADITIONAL_METHOD,
    Settings,
    StrategyConfig,
)
from reconciler.shared.errors import ConfigurationError, ErrorKind

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


class ExtractionAttempt(BaseModel):
    """Audit record of one method invocation within a chain run."""

    method: str
    success: bool
    confidence: float = Field(0.0, ge=0, le=1)
    cost: float = Field(0.0, ge=0)
    error: str | None = None
    error_kind: ErrorKind | None = None
    parse_mode: ParseMode | None = None
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    latency_seconds: float = 0.0
    raw_snippet: str | None = None

    @classmethod
    def from_response(cls, method: str, response: ProviderResponse) -> "ExtractionAttempt":
        return cls(
            method=method,
            success=response.success,
            confidence=response.confidence if response.success else 0.0,
            cost=response.cost,
            error=response.error,
            error_kind=response.error_kind,
            parse_mode=response.parse_mode,
            tokens_used=response.tokens_used,
            latency_seconds=response.latency_seconds,
            raw_snippet=response.raw_snippet,
        )


class ExtractionMetadata(BaseModel):
    """Which kinds of methods a chain run touched."""

    llm_used: bool = False
    fallback_triggered: bool = False
    traditional_used: bool = False


class ExtractionResult(BaseModel):
    """Outcome of running one document through a fallback chain.

    Attributes:
        success: True if any method produced a usable result
        invoices: Records from the accepted (or best) attempt
        confidence: Confidence of the accepted attempt, 0 on failure
        total_cost: Dollars spent across all attempts
        attempts: Every invocation, in chain order
        strategy_name: Strategy that produced this result
        processing_time: Wall-clock seconds for the whole run
        cost_capped: Whether the chain stopped at the cost cap
        cancelled: Whether the chain stopped because the caller cancelled
        metadata: Which method kinds were used
    """

    success: bool
    invoices: list[ExtractedInvoice] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0, le=1)
    total_cost: float = Field(0.0, ge=0)
    attempts: list[ExtractionAttempt] = Field(default_factory=list)
    strategy_name: str
    processing_time: float = 0.0
    cost_capped: bool = False
    cancelled: bool = False
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)

    @property
    def invoice(self) -> ExtractedInvoice | None:
        """First invoice record, if any."""
        return self.invoices[0] if self.invoices else None


class ExtractionOrchestrator:
    """Runs extraction methods in fallback order under a cost cap."""

    def __init__(
        self,
        settings: Settings,
        adapters: dict[str, ProviderAdapter],
        strategy: str | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            settings: Application settings (read-only)
            adapters: Adapters by method name, typically from create_adapters()
            strategy: Strategy name; defaults to settings.extraction_strategy

        Raises:
            ConfigurationError: If the strategy is unknown, its chain is empty,
                or no method in the chain has an adapter
        """
        self.settings = settings
        self.adapters = dict(adapters)
        self.strategy = self._resolve(strategy)

        logger.info(
            f"Orchestrator initialized with strategy '{self.strategy.name}': "
            f"{' -> '.join(self.strategy.fallback_chain)}"
        )

    def _resolve(self, name: str | None) -> StrategyConfig:
        strategy = self.settings.resolve_strategy(name)
        if not any(method in self.adapters for method in strategy.fallback_chain):
            raise ConfigurationError(
                f"Strategy '{strategy.name}' has no configured extraction methods "
                f"(chain: {', '.join(strategy.fallback_chain)}; "
                f"configured: {', '.join(self.adapters) or 'none'})"
            )
        return strategy

    def _build_request(
        self,
        text: str | None,
        page_number: int,
        context: ExtractionContext | None,
        attachment: DocumentAttachment | None,
    ) -> ExtractionRequest:
        return ExtractionRequest(
            text=text,
            attachment=attachment,
            page_number=page_number,
            context=context or ExtractionContext(),
            options=ExtractionOptions(
                temperature=self.settings.default_temperature,
                max_tokens=self.settings.default_max_tokens,
            ),
        )

    def extract(
        self,
        text: str | None,
        page_number: int = 1,
        context: ExtractionContext | None = None,
        attachment: DocumentAttachment | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExtractionResult:
        """Extract invoice records with the configured strategy.

        Args:
            text: Page text (may be None when an attachment is given)
            page_number: Page the text came from
            context: Optional hints (supplier, format, project)
            attachment: Optional raw document for providers that accept files
            cancel_event: Set by the caller to stop before the next attempt

        Returns:
            ExtractionResult; success=False when every attempt failed
        """
        request = self._build_request(text, page_number, context, attachment)
        return self._run(self.strategy, request, cancel_event)

    def extract_with_strategy(
        self,
        strategy_name: str,
        text: str | None,
        page_number: int = 1,
        context: ExtractionContext | None = None,
        attachment: DocumentAttachment | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExtractionResult:
        """Extract with a named strategy without changing the default one.

        Raises:
            ConfigurationError: If the strategy is unknown or unusable
        """
        strategy = self._resolve(strategy_name)
        request = self._build_request(text, page_number, context, attachment)
        return self._run(strategy, request, cancel_event)

    def available_strategies(self) -> list[StrategyConfig]:
        """All named strategies, resolved against current settings."""
        return [self.settings.resolve_strategy(name) for name in STRATEGY_PRESETS]

    def estimate_cost(self, text: str, strategy_name: str | None = None) -> float:
        """Rough upper estimate of LLM spend for a document.

        Assumes about four characters per token and that the chain stops
        after the first Anthropic attempt. Never exceeds the cost cap.

        Args:
            text: Document text
            strategy_name: Strategy to estimate for; defaults to the active one

        Returns:
            Estimated dollars
        """
        strategy = self.strategy if strategy_name is None else self._resolve(strategy_name)
        tokens = math.ceil(len(text) / CHARS_PER_TOKEN)

        estimate = 0.0
        for method in strategy.fallback_chain:
            adapter = self.adapters.get(method)
            if method == TRADITIONAL_METHOD or adapter is None:
                continue
            estimate += tokens / 1000 * adapter.cost_per_1k
            if method == "anthropic":
                break

        return round(min(estimate, strategy.max_cost_per_document), 6)

    def _invoke(self, method: str, request: ExtractionRequest) -> ProviderResponse:
        adapter = self.adapters.get(method)
        if adapter is None:
            logger.warning(f"No adapter configured for extraction method '{method}'")
            return ProviderResponse(
                success=False,
                error=f"Extraction method not available: {method}",
                error_kind=ErrorKind.PROVIDER_UNAVAILABLE,
                provider=method,
            )

        try:
            return adapter.call(request)
        except Exception as e:
            logger.exception(f"Extraction method '{method}' raised unexpectedly")
            return ProviderResponse(
                success=False,
                error=f"{method} failed: {e}",
                error_kind=ErrorKind.UNKNOWN,
                provider=method,
            )

    def _run(
        self,
        strategy: StrategyConfig,
        request: ExtractionRequest,
        cancel_event: threading.Event | None,
    ) -> ExtractionResult:
        started = time.perf_counter()
        attempts: list[ExtractionAttempt] = []
        metadata = ExtractionMetadata()
        total_cost = 0.0
        best: ProviderResponse | None = None
        cost_capped = False
        cancelled = False

        logger.info(
            f"Starting extraction of page {request.page_number} with strategy "
            f"'{strategy.name}' (threshold {strategy.confidence_threshold}, "
            f"cap ${strategy.max_cost_per_document})"
        )

        for method in strategy.fallback_chain:
            if total_cost >= strategy.max_cost_per_document:
                logger.info(
                    f"Cost limit reached: ${total_cost:.4f} >= "
                    f"${strategy.max_cost_per_document}"
                )
                cost_capped = True
                break
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Extraction cancelled before '{method}'")
                cancelled = True
                break

            if method == TRADITIONAL_METHOD:
                metadata.traditional_used = True
            elif method in self.adapters:
                metadata.llm_used = True

            response = self._invoke(method, request)
            attempt = ExtractionAttempt.from_response(method, response)
            attempts.append(attempt)
            total_cost = round(total_cost + attempt.cost, 6)
            metrics.extraction_cost_dollars_total.labels(method=method).inc(attempt.cost)

            if not response.success:
                metrics.extraction_attempts_total.labels(method=method, outcome="failed").inc()
                logger.info(
                    f"Attempt with '{method}' failed ({response.error_kind}): {response.error}"
                )
                continue

            if response.confidence >= strategy.confidence_threshold:
                metrics.extraction_attempts_total.labels(method=method, outcome="success").inc()
                logger.info(
                    f"Extraction successful with '{method}': confidence {response.confidence}"
                )
                return self._result(
                    strategy, response, attempts, total_cost, metadata, started, False, False
                )

            metrics.extraction_attempts_total.labels(
                method=method, outcome="below_threshold"
            ).inc()
            logger.info(
                f"'{method}' confidence {response.confidence} below threshold "
                f"{strategy.confidence_threshold}, falling back"
            )
            if best is None or response.confidence > best.confidence:
                best = response
                metadata.fallback_triggered = True

        if best is not None:
            logger.info(f"Using best available result: confidence {best.confidence}")
        else:
            logger.warning(
                f"All extraction methods failed for page {request.page_number} "
                f"({len(attempts)} attempts, ${total_cost:.4f})"
            )
        return self._result(
            strategy, best, attempts, total_cost, metadata, started, cost_capped, cancelled
        )

    def _result(
        self,
        strategy: StrategyConfig,
        response: ProviderResponse | None,
        attempts: list[ExtractionAttempt],
        total_cost: float,
        metadata: ExtractionMetadata,
        started: float,
        cost_capped: bool,
        cancelled: bool,
    ) -> ExtractionResult:
        elapsed = time.perf_counter() - started
        metrics.extraction_duration_seconds.labels(strategy=strategy.name).observe(elapsed)
        return ExtractionResult(
            success=response is not None,
            invoices=response.invoices if response is not None else [],
            confidence=response.confidence if response is not None else 0.0,
            total_cost=total_cost,
            attempts=attempts,
            strategy_name=strategy.name,
            processing_time=elapsed,
            cost_capped=cost_capped,
            cancelled=cancelled,
            metadata=metadata,
        )
