"""Abstract base classes for extraction provider adapters.

Every extraction method in a fallback chain (the zero-cost heuristic parser
and each LLM backend) implements ProviderAdapter, so the orchestrator never
branches on provider identity.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

LLMProviderAdapter holds the behaviour shared by all network-backed
adapters: rate-limit admission, prompt construction, transport retries,
reply parsing/recovery, normalization and cost accounting. Concrete
adapters only implement the wire call.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from reconciler.extraction.normalize import build_invoice, mean_confidence, split_records
from reconciler.extraction.parsing import ParseFailed, RecoveredParse, parse_reply, snippet
from reconciler.extraction.rate_limiter import RateLimiter, credential_key
from reconciler.extraction.schema import (
    ExtractedInvoice,
    ExtractionRequest,
    ParseMode,
    ProviderResponse,
    TokenUsage,
)
from reconciler.shared import metrics
from reconciler.shared.config import Settings
from reconciler.shared.errors import (
    ErrorKind,
    MalformedResponse,
    ProviderRejected,
    RateLimited,
    TransportFailure,
)

logger = logging.getLogger(__name__)

RECOVERED_CONFIDENCE_FACTOR = 0.9


class ProviderAdapter(ABC):
    """Abstract base class for extraction methods.

    Example implementations:
    - HeuristicAdapter: regex parsing, no cost
    - AnthropicAdapter / GeminiAdapter / OpenAIAdapter: LLM backends
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize adapter with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def call(self, request: ExtractionRequest) -> ProviderResponse:
        """Run one extraction attempt.

        Implementations must not raise for provider-side problems; they
        report them in the response instead.

        Args:
            request: Normalized extraction request

        Returns:
            ProviderResponse with normalized invoices or an error
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter is configured (API key, model, ...).

        Returns:
            True if the adapter can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Method name used in fallback chains, logs and metrics."""
        pass

    @property
    def cost_per_1k(self) -> float:
        """Dollars per 1000 tokens; zero for local methods."""
        return 0.0

    def _failure(
        self,
        error: str,
        kind: ErrorKind,
        started: float,
        cost: float = 0.0,
        tokens: TokenUsage | None = None,
        raw_snippet: str | None = None,
        model: str | None = None,
    ) -> ProviderResponse:
        return ProviderResponse(
            success=False,
            error=error,
            error_kind=kind,
            cost=cost,
            tokens_used=tokens or TokenUsage(),
            latency_seconds=time.perf_counter() - started,
            parse_mode="failed" if kind is ErrorKind.MALFORMED_RESPONSE else None,
            raw_snippet=raw_snippet,
            provider=self.provider_name,
            model=model,
        )


@dataclass(frozen=True)
class RawReply:
    """Unparsed provider reply plus token usage."""

    text: str
    tokens: TokenUsage


def build_prompt(request: ExtractionRequest, preamble: str) -> str:
    """Build the structured extraction prompt.

    Args:
        request: Extraction request (text, page and context hints)
        preamble: Provider-specific opening line

    Returns:
        Prompt text
    """
    context = request.context
    hints = [
        f"Expected Supplier: {context.supplier_name}" if context.supplier_name else "",
        f"Format Type: {context.expected_format}" if context.expected_format else "",
        f"Project Context: {context.project_context}" if context.project_context else "",
    ]
    context_block = "\n".join(hint for hint in hints if hint) or "None provided"

    if request.text and request.text.strip():
        source = f"INVOICE TEXT (Page {request.page_number}):\n{request.text}"
    else:
        source = f"INVOICE DOCUMENT: see attached file (Page {request.page_number})"

    return f"""{preamble}

{source}

EXTRACTION REQUIREMENTS:
1. **Invoice Number**: Exact invoice/reference number
2. **Vendor Name**: Company name issuing the invoice
3. **Date**: Invoice date in YYYY-MM-DD format
4. **Amounts**: subtotal/amount (before tax), tax/GST amount, total (including tax)
5. **Line Items**: Individual items/services with quantities and prices
6. **Description**: Brief description of work/materials

CONTEXT:
{context_block}

RESPONSE FORMAT (JSON only, no additional text):
{{
  "invoiceNumber": "string",
  "vendorName": "string",
  "date": "YYYY-MM-DD",
  "description": "string",
  "amount": number,
  "tax": number,
  "total": number,
  "lineItems": [
    {{"description": "string", "quantity": number, "unitPrice": number, "total": number}}
  ],
  "confidence": number,
  "reasoning": "brief explanation of extraction decisions"
}}

If the document contains several separate invoices, return
{{"invoices": [ ...one object per invoice in the format above... ]}}.

VALIDATION RULES:
- All currency amounts should be numbers (not strings)
- Dates must be valid YYYY-MM-DD format
- Total should equal amount + tax (within $0.50 tolerance)
- Confidence should reflect extraction certainty (0.0-1.0)
- If unsure about a field, use null and lower confidence

Extract the data now:"""


class LLMProviderAdapter(ProviderAdapter):
    """Shared behaviour for network-backed LLM adapters.

    Subclasses implement _send() (one wire call, raising on transport
    errors) and _is_transient() (which exceptions deserve a retry).
    """

    preamble = (
        "You are an expert invoice data extraction system for construction projects. "
        "Extract structured data from the following invoice with high accuracy."
    )

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        """Initialize adapter.

        Args:
            settings: Application settings
            rate_limiter: Process-wide limiter shared by all adapters
        """
        super().__init__(settings)
        self.rate_limiter = rate_limiter
        self._retry_wait = wait_exponential(multiplier=0.5, max=8) + wait_random(0, 0.5)

    @property
    @abstractmethod
    def api_key(self) -> str:
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        pass

    @property
    @abstractmethod
    def requests_per_minute(self) -> int:
        pass

    @abstractmethod
    def _send(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """Perform one provider call.

        Raises:
            Exception: Transport or HTTP errors; classified by _is_transient
        """
        pass

    @abstractmethod
    def _is_transient(self, error: BaseException) -> bool:
        pass

    def is_available(self) -> bool:
        """Check the credential is configured.

        Returns:
            True if an API key is set
        """
        return bool(self.api_key)

    def calculate_cost(self, tokens: TokenUsage) -> float:
        """Estimated dollars for the given token usage."""
        return round(tokens.total / 1000 * self.cost_per_1k, 6)

    def _admit(self) -> None:
        """Take a slot in this credential's rate-limit window.

        Raises:
            RateLimited: If the window is full
        """
        key = credential_key(self.provider_name, self.api_key)
        if not self.rate_limiter.try_acquire(key, self.requests_per_minute):
            raise RateLimited(self.provider_name, self.requests_per_minute)

    def _admitted_send(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """One rate-limited network call; every retry takes its own slot."""
        self._admit()
        return self._send(prompt, request)

    def _send_with_retry(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """Call _send with bounded retries for transient transport errors only.

        Raises:
            RateLimited: If the window is full before an attempt; not retried
            TransportFailure: If the provider could not be reached
            ProviderRejected: If the provider refused the request outright
            Exception: Any other error from _send, unretried
        """
        retryer = Retrying(
            retry=retry_if_exception(self._is_transient),
            wait=self._retry_wait,
            stop=stop_after_attempt(self.settings.provider_max_retries + 1),
            reraise=True,
        )
        try:
            return retryer(self._admitted_send, prompt, request)
        except RateLimited:
            raise
        except Exception as e:
            if self._is_transient(e):
                raise TransportFailure(f"{self.provider_name} request failed: {e}") from e
            if self._is_rejection(e):
                raise ProviderRejected(f"{self.provider_name} rejected request: {e}") from e
            raise

    def call(self, request: ExtractionRequest) -> ProviderResponse:
        """Extract invoice records through the provider.

        Args:
            request: Extraction request

        Returns:
            ProviderResponse; never raises for provider problems
        """
        started = time.perf_counter()

        if not self.is_available():
            return self._failure(
                f"{self.provider_name} API key not configured",
                ErrorKind.PROVIDER_UNAVAILABLE,
                started,
                model=self.model,
            )

        if not request.has_content():
            return self._failure(
                "Empty document provided", ErrorKind.EMPTY_INPUT, started, model=self.model
            )

        prompt = build_prompt(request, self.preamble)
        try:
            reply = self._send_with_retry(prompt, request)
        except RateLimited as e:
            metrics.rate_limit_rejections_total.labels(provider=self.provider_name).inc()
            logger.warning(str(e))
            return self._failure(str(e), ErrorKind.RATE_LIMITED, started, model=self.model)
        except TransportFailure as e:
            logger.error(str(e))
            return self._failure(str(e), ErrorKind.TRANSPORT_FAILURE, started, model=self.model)
        except ProviderRejected as e:
            logger.error(str(e))
            return self._failure(str(e), ErrorKind.PROVIDER_REJECTED, started, model=self.model)
        except Exception as e:
            logger.error(f"{self.provider_name} call failed: {e}")
            return self._failure(
                f"{self.provider_name} request failed: {e}",
                ErrorKind.UNKNOWN,
                started,
                model=self.model,
            )

        # Money spent on a badly formatted answer is not refunded
        cost = self.calculate_cost(reply.tokens)
        return self._interpret(reply, request, cost, started)

    def _is_rejection(self, error: BaseException) -> bool:
        """Non-retryable error statuses (401, 403, 404, ...). None by default."""
        return False

    def _parse(
        self, reply: RawReply, request: ExtractionRequest
    ) -> tuple[list[ExtractedInvoice], ParseMode]:
        """Turn a reply into normalized invoices.

        Raises:
            MalformedResponse: If no invoice records can be recovered
        """
        outcome = parse_reply(reply.text)
        if isinstance(outcome, ParseFailed):
            raise MalformedResponse(outcome.error, outcome.raw_snippet)

        factor = 1.0
        parse_mode: ParseMode = "strict"
        if isinstance(outcome, RecoveredParse):
            logger.info(f"Recovered JSON from {self.provider_name} reply via {outcome.method}")
            factor = RECOVERED_CONFIDENCE_FACTOR
            parse_mode = "recovered"

        raw_text = request.text or ""
        try:
            invoices = [
                build_invoice(record, raw_text, request.page_number, confidence_factor=factor)
                for record in split_records(outcome.payload)
            ]
        except (ArithmeticError, ValueError) as e:
            raise MalformedResponse(
                f"Reply could not be normalized: {e}", snippet(reply.text)
            ) from e
        if not invoices:
            raise MalformedResponse("Reply contained no invoice records", snippet(reply.text))
        return invoices, parse_mode

    def _interpret(
        self,
        reply: RawReply,
        request: ExtractionRequest,
        cost: float,
        started: float,
    ) -> ProviderResponse:
        try:
            invoices, parse_mode = self._parse(reply, request)
        except MalformedResponse as e:
            logger.warning(f"{self.provider_name} returned unparseable reply: {e}")
            return self._failure(
                str(e),
                ErrorKind.MALFORMED_RESPONSE,
                started,
                cost=cost,
                tokens=reply.tokens,
                raw_snippet=e.raw_snippet,
                model=self.model,
            )

        return ProviderResponse(
            success=True,
            invoices=invoices,
            confidence=mean_confidence(invoices),
            cost=cost,
            tokens_used=reply.tokens,
            latency_seconds=time.perf_counter() - started,
            parse_mode=parse_mode,
            reasoning=invoices[0].reasoning,
            provider=self.provider_name,
            model=self.model,
        )
