"""OpenAI adapter for invoice extraction.

Uses the official OpenAI SDK in JSON mode. Works with any OpenAI-compatible
backend by setting APP_OPENAI_BASE_URL.

The SDK's own retry loop is disabled; transient errors are retried by the
shared tenacity policy so every adapter honours the same retry budget.
"""

import logging
import time

import openai
from openai import OpenAI

from reconciler.extraction.base import LLMProviderAdapter, RawReply
from reconciler.extraction.rate_limiter import RateLimiter
from reconciler.extraction.schema import ExtractionRequest, ProviderResponse, TokenUsage
from reconciler.shared.config import Settings
from reconciler.shared.errors import ErrorKind

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMProviderAdapter):
    """OpenAI-backed extraction adapter (gpt-4o-mini by default)."""

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        """Initialize OpenAI adapter.

        Args:
            settings: Application settings
            rate_limiter: Shared rate limiter
        """
        super().__init__(settings, rate_limiter)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def api_key(self) -> str:
        return self.settings.openai_api_key

    @property
    def model(self) -> str:
        return self.settings.openai_model

    @property
    def requests_per_minute(self) -> int:
        return self.settings.openai_requests_per_minute

    @property
    def cost_per_1k(self) -> float:
        return self.settings.openai_cost_per_1k

    def _get_client(self) -> OpenAI:
        """Lazily initialise the OpenAI client."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.provider_timeout_seconds,
                max_retries=0,
            )
        return self._client

    def call(self, request: ExtractionRequest) -> ProviderResponse:
        """Extract invoice records; page text is required for this backend."""
        if request.attachment is not None and not (request.text and request.text.strip()):
            return self._failure(
                "openai adapter requires page text; attachments are not supported",
                ErrorKind.EMPTY_INPUT,
                time.perf_counter(),
                model=self.model,
            )
        return super().call(request)

    def _send(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """Call chat completions in JSON mode.

        Raises:
            openai.APIError: On transport or API failure
        """
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are an invoice data extraction assistant."},
                {"role": "user", "content": prompt},
            ],
            temperature=request.options.temperature,
            max_tokens=request.options.max_tokens,
            response_format={"type": "json_object"},
        )
        text = response.choices[0].message.content or ""
        usage = response.usage
        return RawReply(
            text=text,
            tokens=TokenUsage(
                input=usage.prompt_tokens if usage else 0,
                output=usage.completion_tokens if usage else 0,
            ),
        )

    def _is_transient(self, error: BaseException) -> bool:
        return isinstance(
            error,
            (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError),
        )

    def _is_rejection(self, error: BaseException) -> bool:
        return isinstance(error, openai.APIStatusError)
