"""Error taxonomy for extraction and matching.

Only ConfigurationError is meant to reach callers of the orchestrator.
The other exceptions are raised inside adapters and stores and folded
into attempt records or degraded-mode matching.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Why an extraction attempt failed."""

    RATE_LIMITED = "rate_limited"
    TRANSPORT_FAILURE = "transport_failure"
    PROVIDER_REJECTED = "provider_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    EMPTY_INPUT = "empty_input"
    NO_DATA = "no_data"
    UNKNOWN = "unknown"


class ReconcilerError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ReconcilerError):
    """Configuration is missing or unusable (no methods, unknown names)."""


class RateLimited(ReconcilerError):
    """Admission denied by the rate limiter."""

    def __init__(self, provider: str, limit: int) -> None:
        super().__init__(f"Rate limit exceeded for {provider} ({limit} requests/minute)")
        self.provider = provider
        self.limit = limit


class TransportFailure(ReconcilerError):
    """A provider could not be reached after the bounded retries."""


class ProviderRejected(ReconcilerError):
    """A provider answered with a non-retryable error status (bad key, unknown model)."""


class MalformedResponse(ReconcilerError):
    """A provider replied but the payload could not be parsed."""

    def __init__(self, message: str, raw_snippet: str = "") -> None:
        super().__init__(message)
        self.raw_snippet = raw_snippet


class PatternStoreUnavailable(ReconcilerError):
    """The pattern store timed out or failed."""
