"""Bounded-concurrency extraction across independent documents.

Each document runs its own fallback chain sequentially; documents run in
parallel on a thread pool sized by settings.batch_max_workers. All workers
share the orchestrator (and therefore the adapters' RateLimiter).
"""

import concurrent.futures
import logging
import threading

from pydantic import BaseModel, ConfigDict, Field

from reconciler.extraction.orchestrator import ExtractionOrchestrator, ExtractionResult
from reconciler.extraction.schema import DocumentAttachment, ExtractionContext

logger = logging.getLogger(__name__)


class BatchDocument(BaseModel):
    """One document (or page) queued for extraction."""

    model_config = ConfigDict(frozen=True)

    text: str | None = None
    attachment: DocumentAttachment | None = None
    page_number: int = 1
    context: ExtractionContext = Field(default_factory=ExtractionContext)
    document_id: str | None = None


class BatchExtractor:
    """Runs many documents through one orchestrator concurrently."""

    def __init__(
        self, orchestrator: ExtractionOrchestrator, max_workers: int | None = None
    ) -> None:
        """Initialize batch extractor.

        Args:
            orchestrator: Shared orchestrator
            max_workers: Pool size; defaults to settings.batch_max_workers
        """
        self.orchestrator = orchestrator
        self.max_workers = max_workers or orchestrator.settings.batch_max_workers

    def _extract_one(
        self, document: BatchDocument, cancel_event: threading.Event
    ) -> ExtractionResult:
        logger.debug(f"Extracting document {document.document_id or '<unnamed>'}")
        return self.orchestrator.extract(
            document.text,
            page_number=document.page_number,
            context=document.context,
            attachment=document.attachment,
            cancel_event=cancel_event,
        )

    def extract_all(
        self,
        documents: list[BatchDocument],
        cancel_event: threading.Event | None = None,
    ) -> list[ExtractionResult]:
        """Extract every document, preserving input order in the results.

        Once cancel_event is set, in-flight documents stop before their next
        attempt and documents not yet started return cancelled results
        without calling any provider.

        Args:
            documents: Documents to extract
            cancel_event: Optional shared cancellation signal

        Returns:
            One ExtractionResult per document, in input order
        """
        if not documents:
            return []

        event = cancel_event or threading.Event()
        workers = min(self.max_workers, len(documents))
        logger.info(f"Extracting {len(documents)} documents with {workers} workers")

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._extract_one, doc, event) for doc in documents]
            results = [future.result() for future in futures]

        succeeded = sum(1 for result in results if result.success)
        total_cost = sum(result.total_cost for result in results)
        logger.info(
            f"Batch complete: {succeeded}/{len(results)} succeeded, "
            f"total cost ${total_cost:.4f}"
        )
        return results
