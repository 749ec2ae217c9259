#!/usr/bin/env python
"""Rebuild passage embeddings for stored documents.

Usage:
    python scripts/reindex.py                       # Reindex every document
    python scripts/reindex.py --document-id <uuid>  # Reindex selected documents
    python scripts/reindex.py --verbose             # Show detailed progress
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from study_assistant import config, db
from study_assistant.rag.indexer import EmbeddingIndexer, reindex_documents
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, document_id: str):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {document_id[:8]}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Reindexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📄 Documents processed:  {stats['documents_processed']}")
        print(f"  ❓ Documents missing:    {stats['documents_missing']}")
        print(f"  🧮 Passages stored:      {stats['passages_stored']}")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if stats["documents_without_passages"] > 0:
            print(
                f"⚠️  Warning: {stats['documents_without_passages']} document(s) "
                "have no passages and will use fallback context."
            )
            print(f"   Check logs for details.\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Rebuild passage embeddings for uploaded documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py                        # Every document
  python scripts/reindex.py --document-id <uuid>   # One document (repeatable)
  python scripts/reindex.py --verbose              # Show detailed progress
        """,
    )

    parser.add_argument(
        "--document-id",
        action="append",
        dest="document_ids",
        default=None,
        help="Document to reindex (may be given several times)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()

    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\n📋 Configuration:")
        print(f"   Database:            {config.DB_PATH}")
        print(f"   Embedding provider:  {config.EMBEDDING_PROVIDER}")
        print(f"   Chunk size:          {config.CHUNK_SIZE} chars")

        db.init_database()
        indexer = EmbeddingIndexer()
        print(f"   Embedding model:     {indexer.embedder.embedding_model}")

        progress.start("Reindexing Documents")

        stats = await reindex_documents(
            indexer,
            document_ids=args.document_ids,
            progress_callback=progress.update,
        )

        progress.finish(stats)

        if stats["documents_missing"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Reindexing cancelled by user.\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
