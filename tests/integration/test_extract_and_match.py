"""End-to-end tests: extract an invoice, then match its line items.

Runs offline with the heuristic parser only. Use pytest -v -m integration
to run only integration tests.
"""

from decimal import Decimal

import pytest

from reconciler.extraction.factory import create_adapters
from reconciler.extraction.orchestrator import ExtractionOrchestrator, ExtractionResult
from reconciler.matching.approval import approval_blockers, can_approve
from reconciler.matching.engine import MatchingEngine
from reconciler.matching.patterns import InMemoryPatternStore, confirm_correspondence
from reconciler.matching.schema import InvoiceLineItem, TargetLineItem
from reconciler.shared.config import Settings

pytestmark = pytest.mark.integration

INVOICE_TEXT = """
    INVOICE

    Invoice Number: INV-2024-001
    Date: January 15, 2024

    From:
    XYZ Suppliers Inc.
    456 Oak Avenue

    Description                  Quantity    Price      Total
    Office Supplies                  10      $50.00    $500.00
    Computer Equipment                5     $100.00    $500.00

    Subtotal:                                        $1,000.00
    Tax (10%):                                         $100.00
    Total Amount Due:                                $1,100.00
"""

CATALOG = [
    TargetLineItem(
        id="t-office", description="Office supplies", trade_id="trade-admin",
        material_cost=Decimal("500"),
    ),
    TargetLineItem(
        id="t-computers", description="Computer equipment", trade_id="trade-it",
        material_cost=Decimal("450"), labor_cost=Decimal("50"),
    ),
    TargetLineItem(
        id="t-demo", description="Demolition", trade_id="trade-site",
        labor_cost=Decimal("12000"),
    ),
]


@pytest.fixture
def settings() -> Settings:
    """Settings with only the heuristic parser available."""
    return Settings(_env_file=None, extraction_strategy="traditional-primary")


@pytest.fixture
def extracted(settings: Settings) -> ExtractionResult:
    orchestrator = ExtractionOrchestrator(settings, create_adapters(settings))
    return orchestrator.extract(INVOICE_TEXT)


def _line_items(result: ExtractionResult) -> list[InvoiceLineItem]:
    assert result.invoice is not None
    return [
        InvoiceLineItem(
            id=f"li-{index}",
            description=item.description,
            total=item.total,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )
        for index, item in enumerate(result.invoice.line_items, start=1)
    ]


def test_heuristic_extraction_is_free_and_accepted(extracted: ExtractionResult) -> None:
    """Test the heuristic result clears the traditional-primary threshold at no cost."""
    assert extracted.success is True
    assert extracted.strategy_name == "traditional-primary"
    assert [a.method for a in extracted.attempts] == ["traditional"]
    assert extracted.total_cost == 0.0
    assert extracted.confidence == 0.75
    assert extracted.metadata.traditional_used is True
    assert extracted.metadata.llm_used is False


def test_extracted_items_match_estimate(settings: Settings, extracted: ExtractionResult) -> None:
    """Test every extracted line is suggested against the right estimate line."""
    candidates = MatchingEngine(settings).match(_line_items(extracted), CATALOG, [])

    assert [(c.classification, c.target_line_item_id) for c in candidates] == [
        ("suggested", "t-office"),
        ("suggested", "t-computers"),
    ]
    assert can_approve(candidates) is True


def test_unrelated_catalog_blocks_approval(
    settings: Settings, extracted: ExtractionResult
) -> None:
    """Test lines with no plausible target are unmatched and block approval."""
    candidates = MatchingEngine(settings).match(_line_items(extracted), CATALOG[2:], [])

    assert [c.classification for c in candidates] == ["unmatched", "unmatched"]
    blockers = approval_blockers(candidates)
    assert len(blockers) == 2
    assert blockers[0].startswith("Line item li-1 is unmatched: no target within 25% of $500.00")


def test_confirmations_feed_later_matches(settings: Settings, extracted: ExtractionResult) -> None:
    """Test confirmed correspondences become pattern hints on the next invoice."""
    store = InMemoryPatternStore()
    items = _line_items(extracted)
    supplier = extracted.invoice.vendor_name if extracted.invoice else None
    assert supplier == "XYZ Suppliers Inc."

    for _ in range(2):
        store.record(**confirm_correspondence(supplier, items[1], CATALOG[1]).model_dump())

    candidates = MatchingEngine(settings, pattern_store=store).match(
        items, CATALOG, [], supplier_name=supplier
    )

    assert candidates[1].target_line_item_id == "t-computers"
    assert candidates[1].pattern_id is not None
    assert "learned pattern for XYZ Suppliers Inc." in candidates[1].reason
    assert candidates[0].pattern_id is None
