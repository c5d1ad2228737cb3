"""Command-line extraction of a single invoice document.

Usage:
    reconciler-extract invoice.txt
    reconciler-extract scan.pdf --strategy accuracy-optimized --supplier "Acme Concrete"

Text files are sent as page text; PDF and image files are sent as
attachments to providers that accept them. The ExtractionResult is
printed as JSON.
"""

import argparse
import logging
import sys
from pathlib import Path

from reconciler.extraction.factory import create_adapters
from reconciler.extraction.orchestrator import ExtractionOrchestrator
from reconciler.extraction.schema import DocumentAttachment, ExtractionContext
from reconciler.shared.config import STRATEGY_PRESETS, get_settings
from reconciler.shared.errors import ConfigurationError
from reconciler.shared.logging_config import configure_logging

logger = logging.getLogger(__name__)

ATTACHMENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract invoice data from a document")
    parser.add_argument("path", type=Path, help="Text, PDF or image file")
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGY_PRESETS),
        default=None,
        help="Extraction strategy (defaults to APP_EXTRACTION_STRATEGY)",
    )
    parser.add_argument("--page", type=int, default=1, help="Page number of the document")
    parser.add_argument("--supplier", default=None, help="Expected supplier name")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one extraction and print the result.

    Returns:
        0 on success, 1 if every attempt failed, 2 on configuration errors
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    text = None
    attachment = None
    media_type = ATTACHMENT_TYPES.get(args.path.suffix.lower())
    if media_type:
        attachment = DocumentAttachment(
            media_type=media_type, data=args.path.read_bytes(), filename=args.path.name
        )
    else:
        text = args.path.read_text(encoding="utf-8", errors="replace")

    try:
        orchestrator = ExtractionOrchestrator(settings, create_adapters(settings), args.strategy)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    result = orchestrator.extract(
        text,
        page_number=args.page,
        context=ExtractionContext(supplier_name=args.supplier),
        attachment=attachment,
    )
    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
