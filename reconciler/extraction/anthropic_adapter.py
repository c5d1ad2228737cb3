"""Anthropic Claude adapter.

High-accuracy extraction through the Messages API. Supports attaching the
original PDF as a base64 document block when page text is poor or missing.

See: https://docs.anthropic.com/en/api/messages
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

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(LLMProviderAdapter):
    """Claude-backed extraction adapter."""

    preamble = (
        "You are Claude, an expert invoice data extraction system for construction projects. "
        "Extract structured data from the following invoice with high accuracy and explain "
        "your decisions in the reasoning field."
    )

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        """Initialize Anthropic adapter.

        Args:
            settings: Application settings
            rate_limiter: Shared rate limiter
        """
        super().__init__(settings, rate_limiter)
        self._client = httpx.Client(timeout=settings.provider_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def api_key(self) -> str:
        return self.settings.anthropic_api_key

    @property
    def model(self) -> str:
        return self.settings.anthropic_model

    @property
    def requests_per_minute(self) -> int:
        return self.settings.anthropic_requests_per_minute

    @property
    def cost_per_1k(self) -> float:
        return self.settings.anthropic_cost_per_1k

    def _build_content(self, prompt: str, request: ExtractionRequest) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        attachment = request.attachment
        if attachment is not None:
            block_type = "document" if attachment.media_type == "application/pdf" else "image"
            content.append(
                {
                    "type": block_type,
                    "source": {
                        "type": "base64",
                        "media_type": attachment.media_type,
                        "data": base64.b64encode(attachment.data).decode("ascii"),
                    },
                }
            )
        content.append({"type": "text", "text": prompt})
        return content

    def _send(self, prompt: str, request: ExtractionRequest) -> RawReply:
        """POST to the Messages API.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
        """
        response = self._client.post(
            self.settings.anthropic_base_url,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": request.options.max_tokens,
                "temperature": request.options.temperature,
                "messages": [
                    {"role": "user", "content": self._build_content(prompt, request)},
                ],
            },
        )
        response.raise_for_status()
        data = response.json()

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return RawReply(
            text=text,
            tokens=TokenUsage(
                input=int(usage.get("input_tokens", 0)),
                output=int(usage.get("output_tokens", 0)),
            ),
        )

    def _is_transient(self, error: BaseException) -> bool:
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return status == 429 or status >= 500
        return isinstance(error, httpx.TransportError)

    def _is_rejection(self, error: BaseException) -> bool:
        return isinstance(error, httpx.HTTPStatusError)
