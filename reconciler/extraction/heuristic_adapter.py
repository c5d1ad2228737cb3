"""Zero-cost heuristic extraction adapter ("traditional" parsing).

Regex-based field extraction over page text. Cheap and fast, so it usually
sits at the front of cost-sensitive fallback chains; its confidence is
derived from how complete and self-consistent the extracted record is, and
capped so a well-configured threshold still escalates hard documents to an
LLM.
"""

import logging
import re
import time
from decimal import Decimal
from typing import Any

from reconciler.extraction.base import ProviderAdapter
from reconciler.extraction.normalize import build_invoice, normalize_amount
from reconciler.extraction.schema import ExtractionRequest, ProviderResponse
from reconciler.shared.config import TRADITIONAL_METHOD
from reconciler.shared.errors import ErrorKind

logger = logging.getLogger(__name__)

MAX_HEURISTIC_CONFIDENCE = 0.75

_CURRENCY = r"(?:NZ\$|AU\$|\$|AUD|NZD|USD|EUR|£|€)?"
_NUMBER = r"([\d,]+(?:\.\d+)?)"

_INVOICE_NUMBER_PATTERNS = [
    r"invoice\s*#:?\s*([A-Z0-9][A-Z0-9\-_/]*)",
    r"invoice\s*(?:number|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9\-_/]*)",
    r"\binv\.?\s*(?:#|number|no\.?)\s*:?\s*([A-Z0-9][A-Z0-9\-_/]*)",
    r"(?:reference|ref)\s*(?:#|number|no\.?)?\s*:?\s*([A-Z0-9][A-Z0-9\-_/]*)",
]
_INVOICE_NUMBER_STOPWORDS = {"date", "from", "to", "total", "tax", "number", "no"}
_DATE_LABEL = r"(?:invoice\s*date|date\s*of\s*issue|dated?|issued)\s*:?\s*"
_DATE_PATTERNS = [
    _DATE_LABEL + r"(\d{4}[-/]\d{1,2}[-/]\d{1,2})",
    _DATE_LABEL + r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})",
    _DATE_LABEL + r"([A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4})",
    _DATE_LABEL + r"(\d{1,2}[-\s][A-Za-z]{3,9}[-\s]\d{4})",
]

_VENDOR_PATTERNS = [
    r"(?:from|supplier|vendor|bill\s*from|issued\s*by)\s*:\s*([^\n\r]{3,80})",
    r"^\s*([A-Za-z][A-Za-z\s&.\-']+?(?:Ltd|Limited|Inc|Corp|Corporation|Co\.?|Pty|Company))\b",
]

_DESCRIPTION_PATTERNS = [
    r"(?:description|work\s*performed|services?|details?)\s*:\s*([^\n\r]{6,200})",
    r"\b(?:for|re)\s*:\s*([^\n\r]{10,200})",
]

_AMOUNT_PATTERNS = [
    rf"(?:subtotal|sub[-\s]total)\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
    rf"(?:net\s*amount)\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
    rf"(?:^|\n)\s*amount(?!\s*due)\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
]
_TAX_PATTERNS = [
    rf"(?:tax|gst|vat)(?:\s*\(\s*\d+(?:\.\d+)?\s*%\s*\))?\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
    rf"(?:gst|tax|vat)\s*@?\s*\d+(?:\.\d+)?%\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
]
_TOTAL_PATTERNS = [
    rf"(?:total\s+amount(?:\s+due)?|grand\s*total|amount\s*due)\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
    rf"(?:^|\n)\s*total\s*(?:\(incl\.?\s*(?:gst|tax)\))?\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
    rf"(?:balance\s*due)\s*:?\s*{_CURRENCY}\s*{_NUMBER}",
]

_LINE_ITEM_PATTERNS = [
    # Item 1: Description - Qty: 2 - $50.00 each - $100.00
    re.compile(
        r"item\s*\d*:?\s*([^\-\n]+?)\s*-\s*qty:?\s*(\d+(?:\.\d+)?)\s*-\s*\$?([\d,]+\.?\d*)"
        r"\s*(?:each|per|/\w+)?\s*-\s*\$?([\d,]+\.?\d*)",
        re.IGNORECASE,
    ),
    # Labour - 8 hours - $65.00/hour - $520.00
    re.compile(
        r"^\s*([A-Za-z][^\-\n]*?)\s*-\s*(\d+(?:\.\d+)?)\s*(?:units?|hours?|hrs?|days?)\s*-\s*"
        r"\$?([\d,]+\.?\d*)\s*(?:/\w+|each|per)?\s*-\s*\$?([\d,]+\.?\d*)",
        re.IGNORECASE | re.MULTILINE,
    ),
    # Table row: Description   10   $50.00   $500.00
    re.compile(
        r"^[ \t]*([A-Za-z][^\n$]*?)[ \t]{2,}(\d+(?:\.\d+)?)[ \t]+"
        r"\$?([\d,]+\.\d{2})[ \t]+\$?([\d,]+\.\d{2})[ \t]*$",
        re.MULTILINE,
    ),
]


class HeuristicAdapter(ProviderAdapter):
    """Regex-based invoice parser with no external calls."""

    @property
    def provider_name(self) -> str:
        return TRADITIONAL_METHOD

    def is_available(self) -> bool:
        return True

    def call(self, request: ExtractionRequest) -> ProviderResponse:
        """Parse invoice fields from page text.

        Args:
            request: Extraction request; only text is used

        Returns:
            ProviderResponse with one invoice, or a no_data failure
        """
        started = time.perf_counter()
        text = request.text or ""
        if not text.strip():
            return self._failure("Empty document text provided", ErrorKind.EMPTY_INPUT, started)

        record = self._extract_record(text, request.context.supplier_name)
        if record["total"] is None and record["amount"] is None and not record["lineItems"]:
            logger.debug(f"Heuristic parser found no amounts on page {request.page_number}")
            return self._failure("No monetary values found in text", ErrorKind.NO_DATA, started)

        record["confidence"] = self._calculate_confidence(record)
        invoice = build_invoice(record, text, request.page_number)

        return ProviderResponse(
            success=True,
            invoices=[invoice],
            confidence=invoice.confidence,
            cost=0.0,
            latency_seconds=time.perf_counter() - started,
            parse_mode="strict",
            provider=self.provider_name,
            model="regex",
        )

    def _extract_record(self, text: str, supplier_hint: str | None) -> dict[str, Any]:
        return {
            "invoiceNumber": self._extract_invoice_number(text),
            "date": _first_match(text, _DATE_PATTERNS),
            "vendorName": self._extract_vendor(text, supplier_hint),
            "description": _first_match(text, _DESCRIPTION_PATTERNS),
            "amount": _first_amount(text, _AMOUNT_PATTERNS),
            "tax": _first_amount(text, _TAX_PATTERNS),
            "total": _first_amount(text, _TOTAL_PATTERNS),
            "lineItems": self._extract_line_items(text),
        }

    def _extract_invoice_number(self, text: str) -> str | None:
        for pattern in _INVOICE_NUMBER_PATTERNS:
            for match in re.finditer(pattern, text, re.IGNORECASE):
                number = match.group(1).strip()
                if number.lower() not in _INVOICE_NUMBER_STOPWORDS and any(
                    ch.isdigit() for ch in number
                ):
                    return number
        return None

    def _extract_vendor(self, text: str, supplier_hint: str | None) -> str | None:
        if supplier_hint and supplier_hint.lower() in text.lower():
            return supplier_hint
        for pattern in _VENDOR_PATTERNS:
            match = re.search(pattern, text, re.IGNORECASE | re.MULTILINE)
            if match:
                vendor = re.sub(r"\s+", " ", match.group(1)).strip().rstrip(",:;")
                if len(vendor) > 2 and not vendor.isdigit():
                    return vendor
        return None

    def _extract_line_items(self, text: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        seen: set[tuple[str, str]] = set()
        for pattern in _LINE_ITEM_PATTERNS:
            for match in pattern.finditer(text):
                description = re.sub(r"^item\s*\d*:\s*", "", match.group(1).strip(), flags=re.I)
                if re.match(r"(?:sub[-\s]?)?total|tax|gst|vat|balance", description, re.I):
                    continue
                key = (description.lower(), match.group(4))
                if key in seen:
                    continue
                seen.add(key)
                items.append(
                    {
                        "description": description,
                        "quantity": match.group(2),
                        "unitPrice": match.group(3),
                        "total": match.group(4),
                    }
                )
        return items

    def _calculate_confidence(self, record: dict[str, Any]) -> float:
        """Confidence from field completeness and arithmetic consistency."""
        score = 0.0
        if record["invoiceNumber"]:
            score += 0.2
        if record["date"]:
            score += 0.15
        if record["vendorName"]:
            score += 0.15
        if record["total"] is not None:
            score += 0.25
        if record["lineItems"]:
            score += 0.15

        amount, tax, total = record["amount"], record["tax"], record["total"]
        if amount is not None and tax is not None and total is not None:
            if abs(total - (amount + tax)) <= 0.5:
                score += 0.1

        return round(score * MAX_HEURISTIC_CONFIDENCE, 4)


def _first_match(text: str, patterns: list[str]) -> str | None:
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def _first_amount(text: str, patterns: list[str]) -> Decimal | None:
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            value = normalize_amount(match.group(1))
            if value is not None:
                return value
    return None
