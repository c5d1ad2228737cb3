"""Google Gemini adapter.

Cost-optimized extraction with Gemini Flash for high-volume processing.
Uses the generateContent REST endpoint with JSON response mode.

See: https://ai.google.dev/api/generate-content
"""

import base64
import logging
from typing import Any

import httpx

from reconciler.extraction.base import LLMProviderAdapter, RawReply
from reconciler.extraction.rate_limiter import RateLimiter
from reconciler.extraction.schema import ExtractionRequest, TokenUsage
from reconciler.shared.config import Settings

logger = logging.getLogger(__name__)


class GeminiAdapter(LLMProviderAdapter):
    """Gemini-backed extraction adapter."""

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        """Initialize Gemini adapter.

        Args:
            settings: Application settings
            rate_limiter: Shared rate limiter
        """
        super().__init__(settings, rate_limiter)
        self._client = httpx.Client(timeout=settings.provider_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def api_key(self) -> str:
        return self.settings.gemini_api_key

    @property
    def model(self) -> str:
        return self.settings.gemini_model

    @property
    def requests_per_minute(self) -> int:
        return self.settings.gemini_requests_per_minute

    @property
    def cost_per_1k(self) -> float:
        return self.settings.gemini_cost_per_1k

    def _build_parts(self, prompt: str, request: ExtractionRequest) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if request.attachment is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": request.attachment.media_type,
                        "data": base64.b64encode(request.attachment.data).decode("ascii"),
                    }
                }
            )
        return parts

    def _send(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """POST to generateContent.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
        """
        url = f"{self.settings.gemini_base_url.rstrip('/')}/{self.model}:generateContent"
        response = self._client.post(
            url,
            headers={"x-goog-api-key": self.api_key},
            json={
                "contents": [{"parts": self._build_parts(prompt, request)}],
                "generationConfig": {
                    "temperature": request.options.temperature,
                    "maxOutputTokens": request.options.max_tokens,
                    "responseMimeType": "application/json",
                },
            },
        )
        response.raise_for_status()
        data = response.json()

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        usage = data.get("usageMetadata") or {}
        return RawReply(
            text=text,
            tokens=TokenUsage(
                input=int(usage.get("promptTokenCount", 0)),
                output=int(usage.get("candidatesTokenCount", 0)),
            ),
        )

    def _is_transient(self, error: BaseException) -> bool:
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return status == 429 or status >= 500
        return isinstance(error, httpx.TransportError)

    def _is_rejection(self, error: BaseException) -> bool:
        return isinstance(error, httpx.HTTPStatusError)
