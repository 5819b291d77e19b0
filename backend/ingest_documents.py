"""
Document ingestion script for the Aera backend.

Runs the ingestion pipeline outside the API, e.g. after changing embedding
models or to backfill a workspace:

    python ingest_documents.py --document <id>
    python ingest_documents.py --workspace <id> [--quality premium] [--limit 100]
    python ingest_documents.py --workspace <id> --status
"""
import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from config import REPROCESS_DEFAULT_LIMIT
from services.container import build_services

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Process or reprocess stored documents")
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--document", help="document id to process")
    target.add_argument("--workspace", help="workspace whose images are reprocessed")
    ap.add_argument("--quality", choices=["standard", "premium"], default="standard")
    ap.add_argument("--limit", type=int, default=REPROCESS_DEFAULT_LIMIT)
    ap.add_argument("--status", action="store_true", help="only report reprocessing status")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        services = build_services()

        if args.document:
            report = services.ingestion.process(args.document, quality=args.quality)
            logger.info(f"Fields written: {', '.join(report.fields_written)}")
            if report.fallback_used:
                logger.warning("Analysis fell back to the document title")
            return 0

        if args.status:
            status = services.ingestion.reprocess_status(args.workspace)
            logger.info(
                f"Workspace {args.workspace}: {status['needs_reprocessing']} images need analysis, "
                f"{status['already_processed']} already analyzed"
            )
            return 0

        summary = services.ingestion.reprocess_workspace(
            args.workspace, quality=args.quality, limit=args.limit
        )
        logger.info(f"Processed {summary['processed']} documents, {summary['errors']} errors")
        for error in summary["error_details"]:
            logger.error(f"  - {error['id']}: {error['error']}")
        return 1 if summary["errors"] else 0

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
