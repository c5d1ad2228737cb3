"""Matching engine: classify invoice line items against an estimate catalog.

For each invoice line item, in document order:
1. A confirmed correspondence is pinned as `existing` (confidence 1.0)
2. Every catalog target gets a composite of description similarity and
   amount proximity
3. A learned pattern for (supplier, description signature) boosts its
   target; a sufficiently accurate pattern for the same signature is
   suggested on its own
4. Ties prefer the trade most recently matched for this supplier, then
   catalog order
5. The best target is `suggested` above the relevance floor, otherwise
   the item is `unmatched` with an explanation

The engine keeps no state between runs; identical inputs give identical
output. Pattern store failures degrade to geometric scoring.
"""

import concurrent.futures
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from reconciler.matching.patterns import PatternStore
from reconciler.matching.schema import (
    ExistingCorrespondence,
    InvoiceLineItem,
    MatchCandidate,
    Pattern,
    TargetLineItem,
)
from reconciler.matching.similarity import (
    amount_proximity,
    composite_score,
    description_signature,
    text_similarity,
)
from reconciler.shared import metrics
from reconciler.shared.config import Settings

logger = logging.getLogger(__name__)

ConfidenceBand = Literal["high", "medium", "low", "none"]

SCORE_PRECISION = 6


def confidence_band(confidence: float) -> ConfidenceBand:
    """Review band for a match confidence: high >= 0.8, medium >= 0.5, low >= 0.3."""
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.5:
        return "medium"
    if confidence >= 0.3:
        return "low"
    return "none"


@dataclass
class _Scored:
    """Scores for one (invoice item, target) pair."""

    target: TargetLineItem
    index: int
    text: float
    amount: float
    score: float


class _Run:
    """Mutable state for a single match() call."""

    def __init__(self, existing: dict[str, str], catalog_by_id: dict[str, TargetLineItem]):
        self.existing = existing
        self.catalog_by_id = catalog_by_id
        self.degraded = False
        self.trade_recency: dict[str, int] = {}
        self._sequence = 0

    def touch_trade(self, trade_id: str) -> None:
        self._sequence += 1
        self.trade_recency[trade_id] = self._sequence


class MatchingEngine:
    """Scores and classifies invoice line items against estimate targets."""

    def __init__(self, settings: Settings, pattern_store: PatternStore | None = None) -> None:
        """Initialize engine.

        Args:
            settings: Application settings (weights, tolerance, floor, pattern policy)
            pattern_store: Optional source of learned hints (read-only here)
        """
        self.settings = settings
        self.pattern_store = pattern_store

    def match(
        self,
        invoice_line_items: list[InvoiceLineItem],
        target_catalog: list[TargetLineItem],
        existing_correspondences: list[ExistingCorrespondence],
        supplier_name: str | None = None,
    ) -> list[MatchCandidate]:
        """Classify every invoice line item.

        Args:
            invoice_line_items: Items to match, in document order
            target_catalog: Estimate line items, in catalog order
            existing_correspondences: Confirmed correspondences, oldest first
            supplier_name: Invoice supplier, used for pattern hints and tie-breaks

        Returns:
            One MatchCandidate per invoice line item, in input order
        """
        catalog_by_id = {target.id: target for target in target_catalog}
        existing = {
            c.invoice_line_item_id: c.target_line_item_id for c in existing_correspondences
        }
        run = _Run(existing, catalog_by_id)

        for correspondence in existing_correspondences:
            target = catalog_by_id.get(correspondence.target_line_item_id)
            if target is not None:
                run.touch_trade(target.trade_id)

        executor = None
        if self.pattern_store is not None and supplier_name:
            executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)

        try:
            candidates = [
                self._match_item(item, target_catalog, supplier_name, run, executor)
                for item in invoice_line_items
            ]
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        for candidate in candidates:
            metrics.match_classifications_total.labels(
                classification=candidate.classification
            ).inc()

        logger.info(
            f"Matched {len(candidates)} line items: "
            f"{sum(c.classification == 'existing' for c in candidates)} existing, "
            f"{sum(c.classification == 'suggested' for c in candidates)} suggested, "
            f"{sum(c.classification == 'unmatched' for c in candidates)} unmatched"
        )
        return candidates

    def _match_item(
        self,
        item: InvoiceLineItem,
        catalog: list[TargetLineItem],
        supplier_name: str | None,
        run: _Run,
        executor: concurrent.futures.ThreadPoolExecutor | None,
    ) -> MatchCandidate:
        pinned = run.existing.get(item.id)
        if pinned is not None:
            target = run.catalog_by_id.get(pinned)
            if target is not None:
                run.touch_trade(target.trade_id)
            return MatchCandidate(
                invoice_line_item_id=item.id,
                target_line_item_id=pinned,
                confidence=1.0,
                reason="Previously matched",
                classification="existing",
                text_score=1.0,
                amount_score=1.0,
            )

        if not catalog:
            return MatchCandidate(
                invoice_line_item_id=item.id,
                reason="no estimate catalog available",
                classification="unmatched",
            )

        scored = [self._score(item, target, index) for index, target in enumerate(catalog)]

        pattern = None
        hinted: _Scored | None = None
        if executor is not None and supplier_name:
            pattern, hinted = self._apply_pattern(item, supplier_name, scored, run, executor)

        best = min(scored, key=lambda s: self._rank_key(s, run))

        # Only a pattern learned for this exact description may decide on its own;
        # supplier/amount fallback hints just boost
        if (
            pattern is not None
            and hinted is not None
            and pattern.accuracy >= self.settings.match_pattern_min_accuracy
            and pattern.description_signature == description_signature(item.description)
        ):
            chosen = hinted
            confidence = max(hinted.score, pattern.accuracy)
        else:
            chosen = best
            confidence = best.score
        confidence = round(min(confidence, 1.0), SCORE_PRECISION)

        chosen_pattern = pattern if hinted is chosen else None

        if confidence < self.settings.match_relevance_floor:
            return MatchCandidate(
                invoice_line_item_id=item.id,
                confidence=confidence,
                reason=self._unmatched_reason(item, chosen, confidence),
                classification="unmatched",
                text_score=round(chosen.text, SCORE_PRECISION),
                amount_score=round(chosen.amount, SCORE_PRECISION),
            )

        run.touch_trade(chosen.target.trade_id)
        return MatchCandidate(
            invoice_line_item_id=item.id,
            target_line_item_id=chosen.target.id,
            confidence=confidence,
            reason=self._suggested_reason(item, chosen, chosen_pattern, supplier_name),
            classification="suggested",
            text_score=round(chosen.text, SCORE_PRECISION),
            amount_score=round(chosen.amount, SCORE_PRECISION),
            pattern_id=chosen_pattern.id if chosen_pattern is not None else None,
        )

    def _score(self, item: InvoiceLineItem, target: TargetLineItem, index: int) -> _Scored:
        text = text_similarity(item.description, target.description)
        amount = amount_proximity(
            item.total, target.estimated_total, self.settings.match_amount_tolerance
        )
        score = composite_score(
            text,
            amount,
            self.settings.match_text_weight,
            self.settings.match_amount_weight,
        )
        return _Scored(target, index, text, amount, score)

    @staticmethod
    def _rank_key(scored: _Scored, run: _Run) -> tuple[float, int, int]:
        # Highest score, then most recently matched trade, then catalog order
        return (
            -round(scored.score, SCORE_PRECISION),
            -run.trade_recency.get(scored.target.trade_id, 0),
            scored.index,
        )

    def _apply_pattern(
        self,
        item: InvoiceLineItem,
        supplier_name: str,
        scored: list[_Scored],
        run: _Run,
        executor: concurrent.futures.ThreadPoolExecutor,
    ) -> tuple[Pattern | None, _Scored | None]:
        """Boost the target of the best usable pattern hint, if any."""
        patterns = self._lookup(item, supplier_name, run, executor)
        for pattern in patterns:
            hinted = self._resolve_hint(pattern, scored)
            if hinted is None:
                continue
            boost = self.settings.match_pattern_boost * pattern.accuracy
            hinted.score = min(1.0, hinted.score + boost)
            return pattern, hinted
        return None, None

    @staticmethod
    def _resolve_hint(pattern: Pattern, scored: list[_Scored]) -> _Scored | None:
        if pattern.target_line_item_id is not None:
            for entry in scored:
                if entry.target.id == pattern.target_line_item_id:
                    return entry
        for entry in scored:
            if entry.target.trade_id == pattern.trade_id:
                return entry
        return None

    def _lookup(
        self,
        item: InvoiceLineItem,
        supplier_name: str,
        run: _Run,
        executor: concurrent.futures.ThreadPoolExecutor,
    ) -> list[Pattern]:
        if run.degraded or self.pattern_store is None:
            return []

        signature = description_signature(item.description)
        future = executor.submit(self.pattern_store.lookup, supplier_name, signature, item.total)
        try:
            return list(future.result(timeout=self.settings.pattern_lookup_timeout_seconds))
        except Exception as e:
            run.degraded = True
            metrics.pattern_store_failures_total.inc()
            reason = "timed out" if isinstance(e, concurrent.futures.TimeoutError) else str(e)
            logger.warning(
                f"Pattern store unavailable ({reason}); matching on description and amount only"
            )
            return []

    def _suggested_reason(
        self,
        item: InvoiceLineItem,
        chosen: _Scored,
        pattern: Pattern | None,
        supplier_name: str | None,
    ) -> str:
        target = chosen.target
        parts = [
            f"Description similarity {chosen.text:.2f} with '{target.description}'",
            f"amount {_money(item.total)} vs estimate {_money(target.estimated_total)} "
            f"(proximity {chosen.amount:.2f})",
        ]
        if pattern is not None:
            parts.append(
                f"learned pattern for {supplier_name}: {pattern.hit_count} confirmation(s), "
                f"{pattern.accuracy:.0%} accuracy"
            )
        return "; ".join(parts)

    def _unmatched_reason(self, item: InvoiceLineItem, best: _Scored, confidence: float) -> str:
        tolerance = self.settings.match_amount_tolerance
        return (
            f"no target within {tolerance:.0%} of {_money(item.total)} "
            f"(best: '{best.target.description}' at {confidence:.2f})"
        )


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"
