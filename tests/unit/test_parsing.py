"""Unit tests for reply parsing and JSON recovery."""

from reconciler.extraction.parsing import (
    ParseFailed,
    RecoveredParse,
    StrictParse,
    find_balanced_json,
    parse_reply,
)


def test_strict_parse() -> None:
    """Test that a clean JSON reply parses strictly."""
    outcome = parse_reply('{"invoiceNumber": "INV-1", "total": 10}')

    assert isinstance(outcome, StrictParse)
    assert outcome.payload["invoiceNumber"] == "INV-1"


def test_recovers_from_code_fence() -> None:
    """Test recovery of JSON wrapped in a markdown fence."""
    reply = 'Here is the data:\n```json\n{"total": 110.0}\n```\nLet me know.'

    outcome = parse_reply(reply)

    assert isinstance(outcome, RecoveredParse)
    assert outcome.method == "code_fence"
    assert outcome.payload == {"total": 110.0}


def test_recovers_outermost_object_from_prose() -> None:
    """Test recovery of the outermost balanced object embedded in prose."""
    reply = 'Sure! {"vendorName": "Acme {Ltd}", "lineItems": [{"total": 5}]} Hope this helps.'

    outcome = parse_reply(reply)

    assert isinstance(outcome, RecoveredParse)
    assert outcome.method == "balanced_scan"
    assert outcome.payload["vendorName"] == "Acme {Ltd}"
    assert outcome.payload["lineItems"] == [{"total": 5}]


def test_recovers_array() -> None:
    """Test recovery of a top-level array."""
    outcome = parse_reply('Invoices: [{"total": 1}, {"total": 2}]')

    assert isinstance(outcome, RecoveredParse)
    assert len(outcome.payload) == 2


def test_parse_failure_keeps_snippet() -> None:
    """Test that unparseable replies carry a bounded raw snippet."""
    reply = "I could not find an invoice. " * 40

    outcome = parse_reply(reply)

    assert isinstance(outcome, ParseFailed)
    assert "No JSON" in outcome.error
    assert len(outcome.raw_snippet) == 500
    assert reply.startswith(outcome.raw_snippet)


def test_parse_failure_on_broken_json() -> None:
    """Test that balanced but invalid JSON is reported as a failure."""
    outcome = parse_reply("result: {total: 10, vendor: 'x'}")

    assert isinstance(outcome, ParseFailed)
    assert "JSON parsing failed" in outcome.error


def test_empty_reply() -> None:
    """Test that empty replies fail without a snippet."""
    outcome = parse_reply("   ")

    assert isinstance(outcome, ParseFailed)
    assert outcome.raw_snippet == ""


def test_find_balanced_json_ignores_brackets_in_strings() -> None:
    """Test that brackets inside string literals do not affect matching."""
    text = 'prefix {"note": "use } and ] freely", "n": 1} suffix'

    assert find_balanced_json(text) == '{"note": "use } and ] freely", "n": 1}'


def test_find_balanced_json_skips_unclosed_prefix() -> None:
    """Test that an unclosed bracket is skipped in favour of a later span."""
    assert find_balanced_json('oops { then {"a": 1}') == '{"a": 1}'
    assert find_balanced_json("no json here") is None
