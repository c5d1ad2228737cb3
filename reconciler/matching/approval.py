"""Approval gating for matched invoices.

An invoice cannot be approved while any of its line items is unmatched.
Suggested matches do not block approval; accepting or rejecting them is
left to the reviewer.
"""

from reconciler.matching.schema import MatchCandidate


def approval_blockers(candidates: list[MatchCandidate]) -> list[str]:
    """Reasons an invoice cannot be approved, one per unmatched line item."""
    return [
        f"Line item {candidate.invoice_line_item_id} is unmatched: {candidate.reason}"
        for candidate in candidates
        if candidate.classification == "unmatched"
    ]


def can_approve(candidates: list[MatchCandidate]) -> bool:
    """Whether every line item has an existing or suggested match."""
    return not approval_blockers(candidates)
