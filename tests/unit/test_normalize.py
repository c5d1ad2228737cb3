"""Unit tests for normalization of provider records."""

from datetime import date
from decimal import Decimal

import pytest

from reconciler.extraction.normalize import (
    apply_total_penalty,
    build_invoice,
    clamp_confidence,
    mean_confidence,
    normalize_amount,
    normalize_date,
    normalize_line_items,
    split_records,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("NZ$ 99", Decimal("99.00")),
        (12.345, Decimal("12.35")),
        (100, Decimal("100.00")),
        ("-50.5", Decimal("-50.50")),
    ],
)
def test_normalize_amount(raw: object, expected: Decimal) -> None:
    """Test currency symbols and separators are stripped and cents rounded."""
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "N/A", True, "-"])
def test_normalize_amount_unreadable(raw: object) -> None:
    """Test values without a number normalize to None."""
    assert normalize_amount(raw) is None


@pytest.mark.parametrize("raw", [1e30, "1234567890123456789012345678901", Decimal("9E+40")])
def test_normalize_amount_out_of_range(raw: object) -> None:
    """Test amounts too large to hold at cent precision normalize to None."""
    assert normalize_amount(raw) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-15", date(2024, 1, 15)),
        ("2024-01-15T10:30:00Z", date(2024, 1, 15)),
        ("15/01/2024", date(2024, 1, 15)),
        ("02/23/2021", date(2021, 2, 23)),
        ("January 15, 2024", date(2024, 1, 15)),
        ("15 Jan 2024", date(2024, 1, 15)),
    ],
)
def test_normalize_date(raw: str, expected: date) -> None:
    """Test non-canonical dates normalize to the same calendar date."""
    assert normalize_date(raw) == expected


def test_normalize_date_ambiguous_is_day_first() -> None:
    """Test that ambiguous numeric dates are read day-first."""
    assert normalize_date("03/04/2024") == date(2024, 4, 3)


def test_normalize_date_invalid() -> None:
    """Test unparseable dates normalize to None."""
    assert normalize_date("sometime last week") is None
    assert normalize_date(None) is None


def test_clamp_confidence() -> None:
    """Test confidence clamping and defaults."""
    assert clamp_confidence(1.7) == 1.0
    assert clamp_confidence(-0.2) == 0.0
    assert clamp_confidence(None) == 0.8
    assert clamp_confidence("high") == 0.8
    assert clamp_confidence(0) == 0.0


def test_total_penalty_applied() -> None:
    """Test the penalty when total differs from amount + tax by more than 50 cents."""
    penalized = apply_total_penalty(0.9, Decimal("100"), Decimal("15"), Decimal("120"))

    assert penalized == pytest.approx(0.72)


def test_total_penalty_floor() -> None:
    """Test the penalty floor and that low confidences are never raised."""
    assert apply_total_penalty(0.35, Decimal("100"), Decimal("15"), Decimal("120")) == 0.3
    assert apply_total_penalty(0.2, Decimal("100"), Decimal("15"), Decimal("120")) == 0.2


def test_total_penalty_within_tolerance() -> None:
    """Test no penalty within the 50 cent tolerance or with missing fields."""
    assert apply_total_penalty(0.9, Decimal("100"), Decimal("15"), Decimal("115.50")) == 0.9
    assert apply_total_penalty(0.9, Decimal("100"), None, Decimal("120")) == 0.9


def test_normalize_line_items_drops_invalid() -> None:
    """Test line items without description or positive total are dropped."""
    items = normalize_line_items(
        [
            {"description": "Concrete", "quantity": 2, "unitPrice": "$50", "total": "$100"},
            {"description": "", "total": 10},
            {"description": "Credit", "total": -5},
            {"description": "Free delivery", "total": 0},
            {"desc": "Labour", "qty": 0, "total_price": 65},
            "not a dict",
        ]
    )

    assert [item.description for item in items] == ["Concrete", "Labour"]
    assert items[0].unit_price == Decimal("50.00")
    assert items[1].quantity == Decimal("1")
    assert items[1].total == Decimal("65.00")


def test_build_invoice_from_camel_case() -> None:
    """Test a typical LLM record is normalized end to end."""
    invoice = build_invoice(
        {
            "invoiceNumber": " INV-2024-001 ",
            "vendorName": "Acme Concrete Ltd",
            "date": "15/01/2024",
            "amount": "$1,000.00",
            "tax": 150,
            "total": "1150",
            "lineItems": [{"description": "Concrete pour", "total": 1000}],
            "confidence": 0.92,
            "reasoning": "Clear layout",
        },
        raw_text="INVOICE ...",
        page_number=2,
    )

    assert invoice.invoice_number == "INV-2024-001"
    assert invoice.issue_date == date(2024, 1, 15)
    assert invoice.amount == Decimal("1000.00")
    assert invoice.total == Decimal("1150.00")
    assert invoice.confidence == 0.92
    assert invoice.page_number == 2
    assert invoice.reasoning == "Clear layout"
    assert invoice.model_dump(mode="json")["issue_date"] == "2024-01-15"


def test_build_invoice_applies_penalty_and_factor() -> None:
    """Test that the recovery factor and total penalty compose."""
    invoice = build_invoice(
        {"amount": 100, "tax": 15, "total": 200, "confidence": 1.0},
        raw_text="",
        page_number=1,
        confidence_factor=0.9,
    )

    assert invoice.confidence == pytest.approx(0.72)


def test_split_records_shapes() -> None:
    """Test single objects, arrays and invoice wrappers are all accepted."""
    assert split_records({"total": 1}) == [{"total": 1}]
    assert split_records([{"total": 1}, "junk", {"total": 2}]) == [{"total": 1}, {"total": 2}]
    assert split_records({"invoices": [{"total": 1}]}) == [{"total": 1}]
    assert split_records("text") == []


def test_mean_confidence() -> None:
    """Test mean confidence across records."""
    invoices = [
        build_invoice({"confidence": 0.9}, "", 1),
        build_invoice({"confidence": 0.7}, "", 1),
    ]

    assert mean_confidence(invoices) == 0.8
    assert mean_confidence([]) == 0.0
