"""Data models for matching invoice line items to estimate line items."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

Classification = Literal["existing", "suggested", "unmatched"]


class TargetLineItem(BaseModel):
    """A budget line item from the project estimate. Read-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    trade_id: str
    trade_name: str = ""
    material_cost: Decimal = Decimal("0")
    labor_cost: Decimal = Decimal("0")
    equipment_cost: Decimal = Decimal("0")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def estimated_total(self) -> Decimal:
        """Material + labor + equipment."""
        return self.material_cost + self.labor_cost + self.equipment_cost


class InvoiceLineItem(BaseModel):
    """A line item from an extracted invoice, ready for matching."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    total: Decimal
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")


class ExistingCorrespondence(BaseModel):
    """A correspondence a user already confirmed."""

    model_config = ConfigDict(frozen=True)

    invoice_line_item_id: str
    target_line_item_id: str


class MatchCandidate(BaseModel):
    """Classified match for one invoice line item.

    Attributes:
        invoice_line_item_id: Invoice line being matched
        target_line_item_id: Best target, None when unmatched
        confidence: Composite score in [0, 1]
        reason: Human-readable explanation for reviewers
        classification: existing, suggested or unmatched
        text_score: Description similarity component
        amount_score: Amount proximity component
        pattern_id: Pattern that influenced the result, if any
    """

    invoice_line_item_id: str
    target_line_item_id: str | None = None
    confidence: float = Field(0.0, ge=0, le=1)
    reason: str
    classification: Classification
    text_score: float = Field(0.0, ge=0, le=1)
    amount_score: float = Field(0.0, ge=0, le=1)
    pattern_id: str | None = None


class Pattern(BaseModel):
    """A learned (supplier, description) -> trade/target association."""

    id: str
    supplier_name: str
    description_signature: str
    trade_id: str
    target_line_item_id: str | None = None
    hit_count: int = Field(1, ge=1)
    accuracy: float = Field(0.7, ge=0, le=1)
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    last_confirmed_at: datetime

    def covers_amount(self, amount: Decimal | None) -> bool:
        """Whether amount falls in the pattern's observed range (open if unset)."""
        if amount is None or self.amount_min is None or self.amount_max is None:
            return True
        return self.amount_min <= amount <= self.amount_max


class PatternWrite(BaseModel):
    """Request to record a confirmed correspondence in the pattern store."""

    model_config = ConfigDict(frozen=True)

    supplier_name: str
    description_signature: str
    amount: Decimal | None = None
    trade_id: str
    target_line_item_id: str | None = None
