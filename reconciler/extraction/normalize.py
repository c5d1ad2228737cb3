"""Normalization of raw provider records into ExtractedInvoice.

Providers answer in slightly different shapes (camelCase or snake_case keys,
numbers as strings with currency symbols, dates in local formats). Everything
is funnelled through build_invoice() so every adapter produces identical
records.
"""

import logging
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from reconciler.extraction.schema import ExtractedInvoice, LineItem

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
TOTAL_TOLERANCE = Decimal("0.50")
TOTAL_MISMATCH_FACTOR = 0.8
TOTAL_MISMATCH_FLOOR = 0.3

_CENTS = Decimal("0.01")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")

# Day-first formats are tried before month-first ones: NZ/AU invoices dominate.
# Month-first is still reached when the day-first reading is impossible (02/23/2021).
_DATE_FORMATS = (
    "%Y-%m-%d",  # 2024-01-15
    "%Y/%m/%d",  # 2024/01/15
    "%d/%m/%Y",  # 15/01/2024
    "%d-%m-%Y",  # 15-01-2024
    "%d.%m.%Y",  # 15.01.2024
    "%m/%d/%Y",  # 01/15/2024
    "%m-%d-%Y",  # 01-15-2024
    "%B %d, %Y",  # January 15, 2024
    "%b %d, %Y",  # Jan 15, 2024
    "%B %d %Y",  # January 15 2024
    "%b %d %Y",  # Jan 15 2024
    "%d %B %Y",  # 15 January 2024
    "%d %b %Y",  # 15 Jan 2024
    "%d-%b-%Y",  # 15-Jan-2024
    "%d-%B-%Y",  # 15-January-2024
)


def normalize_amount(value: Any) -> Decimal | None:
    """Convert a monetary value to Decimal rounded to cents.

    Strips currency symbols, codes and thousands separators.

    Args:
        value: Number or string such as "$1,234.56" or "NZ$ 99"

    Returns:
        Rounded Decimal, or None if no number can be read or it is too
        large to represent in cents
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        if cleaned in ("", "-", ".", "-."):
            return None
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None

    if not number.is_finite():
        return None
    try:
        return number.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the decimal context can hold at cent precision
        logger.debug(f"Discarding out-of-range amount: {value!r}")
        return None


def normalize_date(value: Any) -> date | None:
    """Parse a date in any of the common invoice formats.

    Args:
        value: date, datetime or string

    Returns:
        date, or None if unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = re.sub(r"\s+", " ", str(value).strip())
    if not text:
        return None

    # ISO timestamps: keep the date part
    iso = re.match(r"^(\d{4}-\d{2}-\d{2})[T ]", text)
    if iso:
        text = iso.group(1)

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.debug(f"Could not normalize date: {text!r}")
    return None


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Read a confidence value and clamp it to [0, 1]."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(max(number, 0.0), 1.0)


def apply_total_penalty(
    confidence: float,
    amount: Decimal | None,
    tax: Decimal | None,
    total: Decimal | None,
) -> float:
    """Penalize confidence when total != amount + tax beyond 50 cents.

    The penalty multiplies by 0.8 with a floor of 0.3; it never raises a
    confidence that was already below the floor.
    """
    if amount is None or tax is None or total is None:
        return confidence
    if abs(total - (amount + tax)) <= TOTAL_TOLERANCE:
        return confidence
    return min(confidence, max(confidence * TOTAL_MISMATCH_FACTOR, TOTAL_MISMATCH_FLOOR))


def _field(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_line_items(items: Any) -> list[LineItem]:
    """Normalize raw line items, dropping ones without description or positive total."""
    if not isinstance(items, list):
        return []

    normalized: list[LineItem] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        description = _text(_field(item, "description", "desc", "name")) or ""
        total = normalize_amount(_field(item, "total", "totalPrice", "total_price", "amount"))
        if not description or total is None or total <= 0:
            continue
        quantity = normalize_amount(_field(item, "quantity", "qty"))
        unit_price = normalize_amount(_field(item, "unitPrice", "unit_price", "price"))
        normalized.append(
            LineItem(
                description=description,
                quantity=quantity if quantity else Decimal("1"),
                unit_price=unit_price if unit_price is not None else Decimal("0"),
                total=total,
            )
        )
    return normalized


def build_invoice(
    data: dict[str, Any],
    raw_text: str,
    page_number: int | None,
    confidence_factor: float = 1.0,
) -> ExtractedInvoice:
    """Validate and normalize one raw invoice record.

    Args:
        data: Parsed provider record
        raw_text: Source text, retained for audit
        page_number: Page the record came from
        confidence_factor: Multiplier for replies that needed recovery

    Returns:
        ExtractedInvoice with normalized fields and adjusted confidence
    """
    amount = normalize_amount(_field(data, "amount", "subtotal"))
    tax = normalize_amount(_field(data, "tax", "tax_amount", "gst"))
    total = normalize_amount(_field(data, "total", "total_amount"))

    confidence = clamp_confidence(data.get("confidence")) * confidence_factor
    confidence = apply_total_penalty(confidence, amount, tax, total)

    return ExtractedInvoice(
        invoice_number=_text(_field(data, "invoiceNumber", "invoice_number")),
        vendor_name=_text(_field(data, "vendorName", "vendor_name", "supplier_name")),
        issue_date=normalize_date(_field(data, "date", "issue_date", "invoice_date")),
        description=_text(data.get("description")),
        amount=amount,
        tax=tax,
        total=total,
        line_items=normalize_line_items(_field(data, "lineItems", "line_items")),
        page_number=page_number,
        confidence=round(min(max(confidence, 0.0), 1.0), 4),
        raw_text=raw_text,
        reasoning=_text(data.get("reasoning")),
    )


def split_records(payload: Any) -> list[dict[str, Any]]:
    """Split a parsed reply into invoice records.

    Accepts a single object, a top-level array, or {"invoices": [...]}.
    """
    if isinstance(payload, list):
        return [record for record in payload if isinstance(record, dict)]
    if isinstance(payload, dict):
        invoices = payload.get("invoices")
        if isinstance(invoices, list):
            return [record for record in invoices if isinstance(record, dict)]
        return [payload]
    return []


def mean_confidence(invoices: list[ExtractedInvoice]) -> float:
    """Arithmetic mean of record confidences (0 for no records)."""
    if not invoices:
        return 0.0
    return round(sum(inv.confidence for inv in invoices) / len(invoices), 4)
