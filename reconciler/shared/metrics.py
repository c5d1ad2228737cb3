"""Prometheus metrics for extraction and matching.

Exposes key metrics for monitoring:
- Extraction attempts by method and outcome
- Money spent per method
- Rate-limit rejections per provider
- Match classifications

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Extraction metrics
extraction_attempts_total = Counter(
    "extraction_attempts_total",
    "Total extraction attempts",
    ["method", "outcome"],  # success, below_threshold, failed
)

extraction_cost_dollars_total = Counter(
    "extraction_cost_dollars_total",
    "Estimated provider spend in dollars",
    ["method"],
)

extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "Time to run a document through the fallback chain",
    ["strategy"],
    buckets=(0.01, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Provider calls rejected by the sliding-window limiter",
    ["provider"],
)

# Matching metrics
match_classifications_total = Counter(
    "match_classifications_total",
    "Match candidates by classification",
    ["classification"],  # existing, suggested, unmatched
)

pattern_store_failures_total = Counter(
    "pattern_store_failures_total",
    "Pattern store lookups that failed or timed out",
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
