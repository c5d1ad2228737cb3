"""Unit tests for approval gating."""

from reconciler.matching.approval import approval_blockers, can_approve
from reconciler.matching.schema import MatchCandidate


def _candidate(item_id: str, classification: str, reason: str = "ok") -> MatchCandidate:
    return MatchCandidate(
        invoice_line_item_id=item_id,
        target_line_item_id=None if classification == "unmatched" else "t-1",
        reason=reason,
        classification=classification,  # type: ignore[arg-type]
    )


def test_existing_and_suggested_can_be_approved() -> None:
    """Test suggestions do not block approval."""
    candidates = [_candidate("li-1", "existing"), _candidate("li-2", "suggested")]

    assert can_approve(candidates) is True
    assert approval_blockers(candidates) == []


def test_unmatched_blocks_approval() -> None:
    """Test each unmatched item produces one blocker with its reason."""
    candidates = [
        _candidate("li-1", "suggested"),
        _candidate("li-2", "unmatched", "no estimate catalog available"),
    ]

    assert can_approve(candidates) is False
    assert approval_blockers(candidates) == [
        "Line item li-2 is unmatched: no estimate catalog available"
    ]


def test_empty_invoice_can_be_approved() -> None:
    """Test an invoice with no line items has nothing blocking it."""
    assert can_approve([]) is True
