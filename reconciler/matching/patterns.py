"""Pattern store: learned supplier/description -> trade associations.

The matching engine only reads from a PatternStore; callers write to it
after a correspondence is confirmed (see confirm_correspondence). Storage
is a collaborator concern, so the contract is a Protocol. InMemoryPatternStore
is a thread-safe reference implementation for tests and single-process use.

Learning rules:
- First confirmation creates a pattern with accuracy 0.7
- Repeating an identical confirmation strengthens it (+1 hit, +0.1 accuracy)
- A conflicting confirmation creates a competing pattern; nothing is
  overwritten or deleted
- A correction multiplies the wrong pattern's accuracy by 0.9
"""

import itertools
import logging
import math
import threading
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from reconciler.matching.schema import InvoiceLineItem, Pattern, PatternWrite, TargetLineItem
from reconciler.matching.similarity import description_signature

logger = logging.getLogger(__name__)

INITIAL_ACCURACY = 0.7
ACCURACY_STEP = 0.1
CORRECTION_FACTOR = 0.9


@runtime_checkable
class PatternStore(Protocol):
    """Narrow interface the matching engine depends on."""

    def lookup(
        self, supplier_name: str, description_signature: str, amount: Decimal | None
    ) -> list[Pattern]:
        """Ranked hints: accuracy desc, hit count desc, most recent first.

        Raises:
            PatternStoreUnavailable: If the backing store cannot be reached
        """
        ...

    def record(
        self,
        supplier_name: str,
        description_signature: str,
        amount: Decimal | None,
        trade_id: str,
        target_line_item_id: str | None = None,
    ) -> Pattern:
        """Persist a confirmed correspondence and return the affected pattern."""
        ...


class PatternStats(BaseModel):
    """Summary of what the store has learned."""

    total_patterns: int = 0
    total_hits: int = 0
    mean_accuracy: float = 0.0
    top_suppliers: list[tuple[str, int]] = Field(default_factory=list)


def supplier_key(name: str) -> str:
    """Case- and whitespace-insensitive supplier key."""
    return " ".join(name.lower().split())


def amount_bucket(amount: Decimal) -> tuple[Decimal, Decimal]:
    """Range bucket around an amount: $50 steps under $100, $200 under $1000, else $1000."""
    size = 50 if amount < 100 else 200 if amount < 1000 else 1000
    low = Decimal(math.floor(amount / size) * size)
    return low, low + size


def _rank_key(pattern: Pattern) -> tuple[float, int, float, str]:
    return (
        -pattern.accuracy,
        -pattern.hit_count,
        -pattern.last_confirmed_at.timestamp(),
        pattern.id,
    )


class InMemoryPatternStore:
    """Thread-safe in-memory PatternStore."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize store.

        Args:
            clock: Source of confirmation timestamps; defaults to UTC now
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._patterns: dict[str, Pattern] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def lookup(
        self, supplier_name: str, description_signature: str, amount: Decimal | None
    ) -> list[Pattern]:
        """Find patterns for a supplier and description signature.

        Falls back to the supplier's patterns whose amount range covers the
        amount when nothing matches the signature.

        Returns:
            Copies of matching patterns, best first
        """
        supplier = supplier_key(supplier_name)
        with self._lock:
            candidates = [p for p in self._patterns.values() if p.supplier_name == supplier]
            matches = [p for p in candidates if p.description_signature == description_signature]
            if not matches:
                matches = [p for p in candidates if p.covers_amount(amount)]
            return [p.model_copy() for p in sorted(matches, key=_rank_key)]

    def record(
        self,
        supplier_name: str,
        description_signature: str,
        amount: Decimal | None,
        trade_id: str,
        target_line_item_id: str | None = None,
    ) -> Pattern:
        """Create or strengthen the pattern for a confirmed correspondence."""
        supplier = supplier_key(supplier_name)
        now = self._clock()
        with self._lock:
            for pattern in self._patterns.values():
                if (
                    pattern.supplier_name == supplier
                    and pattern.description_signature == description_signature
                    and pattern.trade_id == trade_id
                    and pattern.target_line_item_id == target_line_item_id
                ):
                    pattern.hit_count += 1
                    pattern.accuracy = round(min(1.0, pattern.accuracy + ACCURACY_STEP), 4)
                    pattern.last_confirmed_at = now
                    if amount is not None:
                        low, high = amount_bucket(amount)
                        if pattern.amount_min is None or pattern.amount_max is None:
                            pattern.amount_min, pattern.amount_max = low, high
                        else:
                            pattern.amount_min = min(pattern.amount_min, low)
                            pattern.amount_max = max(pattern.amount_max, high)
                    logger.debug(
                        f"Strengthened pattern {pattern.id}: {supplier} / "
                        f"'{description_signature}' -> trade {trade_id} "
                        f"(hits={pattern.hit_count}, accuracy={pattern.accuracy})"
                    )
                    return pattern.model_copy()

            low, high = amount_bucket(amount) if amount is not None else (None, None)
            pattern = Pattern(
                id=f"pat-{next(self._ids)}",
                supplier_name=supplier,
                description_signature=description_signature,
                trade_id=trade_id,
                target_line_item_id=target_line_item_id,
                hit_count=1,
                accuracy=INITIAL_ACCURACY,
                amount_min=low,
                amount_max=high,
                last_confirmed_at=now,
            )
            self._patterns[pattern.id] = pattern
            logger.info(
                f"Learned pattern {pattern.id}: {supplier} / '{description_signature}' "
                f"-> trade {trade_id}"
            )
            return pattern.model_copy()

    def penalize(self, pattern_id: str) -> Pattern:
        """Reduce a pattern's accuracy after it produced a wrong suggestion.

        Raises:
            KeyError: If the pattern does not exist
        """
        with self._lock:
            pattern = self._patterns[pattern_id]
            pattern.accuracy = round(pattern.accuracy * CORRECTION_FACTOR, 4)
            logger.info(f"Penalized pattern {pattern_id}: accuracy now {pattern.accuracy}")
            return pattern.model_copy()

    def correct(self, pattern_id: str, write: PatternWrite) -> Pattern:
        """Penalize a wrong pattern and record the corrected correspondence.

        Returns:
            The pattern for the corrected correspondence
        """
        self.penalize(pattern_id)
        return self.record(**write.model_dump())

    def stats(self, top: int = 10) -> PatternStats:
        """Totals, mean accuracy and the suppliers with the most confirmations."""
        with self._lock:
            patterns = list(self._patterns.values())
        if not patterns:
            return PatternStats()

        hits_by_supplier: Counter[str] = Counter()
        for pattern in patterns:
            hits_by_supplier[pattern.supplier_name] += pattern.hit_count

        return PatternStats(
            total_patterns=len(patterns),
            total_hits=sum(p.hit_count for p in patterns),
            mean_accuracy=round(sum(p.accuracy for p in patterns) / len(patterns), 4),
            top_suppliers=sorted(hits_by_supplier.items(), key=lambda kv: (-kv[1], kv[0]))[:top],
        )


def confirm_correspondence(
    supplier_name: str,
    invoice_line_item: InvoiceLineItem,
    target: TargetLineItem,
) -> PatternWrite:
    """Build the pattern write for a correspondence a user just confirmed.

    Example:
        >>> write = confirm_correspondence("Acme Concrete", item, target)
        >>> store.record(**write.model_dump())
    """
    return PatternWrite(
        supplier_name=supplier_name,
        description_signature=description_signature(invoice_line_item.description),
        amount=invoice_line_item.total,
        trade_id=target.trade_id,
        target_line_item_id=target.id,
    )
