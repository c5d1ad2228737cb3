"""Structured-reply parsing with best-effort recovery.

LLMs often wrap JSON in prose or markdown fences. parse_reply() returns a
tagged result so callers can tell a trusted structured reply from one that
was salvaged heuristically:

- StrictParse: the whole reply was valid JSON
- RecoveredParse: JSON was found inside a code fence or as the outermost
  balanced object/array in the text
- ParseFailed: nothing parseable was found
"""

import json
import re
from dataclasses import dataclass
from typing import Any

SNIPPET_LENGTH = 500

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass(frozen=True)
class StrictParse:
    payload: Any


@dataclass(frozen=True)
class RecoveredParse:
    payload: Any
    method: str  # code_fence, balanced_scan


@dataclass(frozen=True)
class ParseFailed:
    error: str
    raw_snippet: str


ParseOutcome = StrictParse | RecoveredParse | ParseFailed


def snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
    """Leading part of a raw reply for diagnostics."""
    return text[:length]


def find_balanced_json(text: str) -> str | None:
    """Return the outermost balanced {...} or [...] span in text.

    Brackets inside JSON string literals are ignored. Scanning starts at the
    first opening bracket; if that span never closes, the next opening
    bracket is tried.

    Args:
        text: Free-form text possibly containing JSON

    Returns:
        The balanced substring, or None if there is none
    """
    start = 0
    while True:
        positions = [p for p in (text.find("{", start), text.find("[", start)) if p != -1]
        if not positions:
            return None
        begin = min(positions)
        end = _match_closing(text, begin)
        if end is not None:
            return text[begin : end + 1]
        start = begin + 1


def _match_closing(text: str, begin: int) -> int | None:
    pairs = {"{": "}", "[": "]"}
    stack: list[str] = []
    in_string = False
    escaped = False

    for index in range(begin, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in pairs:
            stack.append(pairs[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index
    return None


def parse_reply(text: str | None) -> ParseOutcome:
    """Parse a provider reply into JSON, recovering where possible.

    Args:
        text: Raw reply text

    Returns:
        StrictParse, RecoveredParse or ParseFailed
    """
    if not text or not text.strip():
        return ParseFailed(error="Empty response from provider", raw_snippet="")

    try:
        return StrictParse(payload=json.loads(text))
    except json.JSONDecodeError:
        pass

    fence = _CODE_FENCE.search(text)
    if fence:
        try:
            return RecoveredParse(payload=json.loads(fence.group(1).strip()), method="code_fence")
        except json.JSONDecodeError:
            pass

    candidate = find_balanced_json(text)
    if candidate is None:
        return ParseFailed(error="No JSON object found in response", raw_snippet=snippet(text))

    try:
        return RecoveredParse(payload=json.loads(candidate), method="balanced_scan")
    except json.JSONDecodeError as e:
        return ParseFailed(error=f"JSON parsing failed: {e}", raw_snippet=snippet(text))
