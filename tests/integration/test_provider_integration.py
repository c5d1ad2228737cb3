"""Integration tests against a live LLM provider.

These tests require:
- APP_ANTHROPIC_API_KEY environment variable set
- Internet connection to the Anthropic API

Tests are skipped if APP_ANTHROPIC_API_KEY is not available.
Use pytest -v -m integration to run only integration tests.
"""

import os

import pytest

from reconciler.extraction.factory import create_adapters
from reconciler.extraction.orchestrator import ExtractionOrchestrator
from reconciler.shared.config import Settings

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.getenv("APP_ANTHROPIC_API_KEY"),
        reason="APP_ANTHROPIC_API_KEY not set - skipping integration tests",
    ),
]


@pytest.fixture
def orchestrator() -> ExtractionOrchestrator:
    """Create an orchestrator using Anthropic first, heuristics as fallback."""
    settings = Settings(anthropic_enabled=True, extraction_strategy="llm-primary")
    return ExtractionOrchestrator(settings, create_adapters(settings))


def test_extract_invoice_from_real_text(orchestrator: ExtractionOrchestrator) -> None:
    """Test extraction with realistic invoice text."""
    invoice_text = """
    TAX INVOICE

    Invoice Number: CP-2024-118
    Date: 12/03/2024

    Acme Concrete Ltd
    14 Quarry Road, Hamilton

    Concrete pour - 50m3 - $250.00/m3 - $12,500.00
    Pump hire - 1 day - $850.00/day - $850.00

    Subtotal:        $13,350.00
    GST (15%):        $2,002.50
    Total:           $15,352.50
    """

    result = orchestrator.extract(invoice_text)

    assert result.success is True
    assert result.attempts[0].method == "anthropic"
    assert result.total_cost > 0
    assert result.total_cost <= 0.10

    invoice = result.invoice
    assert invoice is not None
    assert invoice.invoice_number is not None
    assert "CP-2024-118" in invoice.invoice_number
    assert invoice.total is not None
    assert float(invoice.total) == pytest.approx(15352.50, abs=0.5)


def test_extract_invoice_with_empty_text(orchestrator: ExtractionOrchestrator) -> None:
    """Test extraction with empty text (should fail gracefully at no cost)."""
    result = orchestrator.extract("")

    assert result.success is False
    assert result.total_cost == 0.0
    assert all(attempt.error_kind is not None for attempt in result.attempts)
