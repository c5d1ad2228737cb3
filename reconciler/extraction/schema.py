"""Invoice extraction data models.

Amounts are Decimal rounded to cents; dates are datetime.date, which
serializes to the canonical ISO format (YYYY-MM-DD).
"""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from reconciler.shared.errors import ErrorKind

ExpectedFormat = Literal["nz-tax-invoice", "au-tax-invoice", "construction-invoice", "generic"]
ParseMode = Literal["strict", "recovered", "failed"]


class LineItem(BaseModel):
    """A single invoice line.

    Normalized line items always have a description and a positive total.
    """

    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class ExtractedInvoice(BaseModel):
    """Structured invoice record produced by a provider adapter."""

    invoice_number: str | None = Field(None, description="Invoice/reference number")
    vendor_name: str | None = Field(None, description="Company issuing the invoice")
    issue_date: date | None = Field(None, description="Date invoice was issued")
    description: str | None = Field(None, description="Summary of work or materials")

    # Financial details
    amount: Decimal | None = Field(None, description="Amount before tax")
    tax: Decimal | None = Field(None, description="Tax/GST amount")
    total: Decimal | None = Field(None, description="Total including tax")

    line_items: list[LineItem] = Field(default_factory=list)
    page_number: int | None = None
    confidence: float = Field(0.0, ge=0, le=1)
    raw_text: str = Field("", description="Source text retained for audit")
    reasoning: str | None = Field(None, description="Provider's explanation, if given")


class ExtractionContext(BaseModel):
    """Hints passed to providers alongside the document."""

    model_config = ConfigDict(frozen=True)

    expected_format: ExpectedFormat | None = None
    supplier_name: str | None = None
    project_context: str | None = None


class ExtractionOptions(BaseModel):
    """Per-request tuning for LLM providers."""

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(0.1, ge=0, le=2)
    max_tokens: int = Field(4000, gt=0)


class DocumentAttachment(BaseModel):
    """Raw document bytes for providers that accept file attachments."""

    model_config = ConfigDict(frozen=True)

    media_type: Literal["application/pdf", "image/jpeg", "image/png"] = "application/pdf"
    data: bytes
    filename: str | None = None


class ExtractionRequest(BaseModel):
    """One extraction attempt's input. Built once per attempt, never mutated."""

    model_config = ConfigDict(frozen=True)

    text: str | None = None
    attachment: DocumentAttachment | None = None
    page_number: int = 1
    context: ExtractionContext = Field(default_factory=ExtractionContext)
    options: ExtractionOptions = Field(default_factory=ExtractionOptions)

    def has_content(self) -> bool:
        """Whether there is any text or attachment to extract from."""
        return bool(self.text and self.text.strip()) or self.attachment is not None


class TokenUsage(BaseModel):
    """Tokens reported by a provider."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


class ProviderResponse(BaseModel):
    """Result of a single adapter call.

    Attributes:
        success: Whether at least one invoice record was produced
        invoices: Normalized invoice records (several for multi-invoice documents)
        confidence: Mean confidence across the records
        cost: Dollars charged for this call (charged even when parsing failed)
        tokens_used: Token usage reported by the provider
        latency_seconds: Wall-clock time of the call
        error: Error message if the call failed
        error_kind: Failure category
        parse_mode: How the reply was parsed (strict, recovered, failed)
        raw_snippet: Beginning of the raw reply, kept for diagnosis
        reasoning: Provider's explanation of its extraction
        provider: Adapter name
        model: Model identifier used
    """

    success: bool
    invoices: list[ExtractedInvoice] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0, le=1)
    cost: float = Field(0.0, ge=0)
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    latency_seconds: float = 0.0
    error: str | None = None
    error_kind: ErrorKind | None = None
    parse_mode: ParseMode | None = None
    raw_snippet: str | None = None
    reasoning: str | None = None
    provider: str
    model: str | None = None

    @property
    def invoice(self) -> ExtractedInvoice | None:
        """First invoice record, if any."""
        return self.invoices[0] if self.invoices else None
