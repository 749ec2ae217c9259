"""Embedding indexer for uploaded documents.

Orchestrates:
- Text chunking
- Per-chunk embedding generation
- Passage storage

Indexing is best-effort: it is an optimization for retrieval, which falls
back to raw document text when a document has no passages. Nothing here
raises to the caller; failures end up in the logs only.
"""
import asyncio
from typing import Dict, List, Optional, Set

import numpy as np
import structlog

from study_assistant import config, db
from study_assistant.llm_client import AIProvider, get_embedding_provider
from study_assistant.rag.chunker import TextChunker
from study_assistant.rag.store import Passage, PassageStore

logger = structlog.get_logger()


class EmbeddingIndexer:
    """Chunks a document, embeds every chunk and stores the results."""

    def __init__(
        self,
        embedder: Optional[AIProvider] = None,
        store: Optional[PassageStore] = None,
        chunk_size: Optional[int] = None,
        embed_timeout: Optional[float] = None,
    ):
        """Initialize the indexer.

        Args:
            embedder: Provider used to embed chunks (default: shared provider)
            store: Passage store (default: SQLite-backed store)
            chunk_size: Maximum chunk length in characters (default from config)
            embed_timeout: Seconds allowed per embedding call (default from config)
        """
        self.embedder = embedder or get_embedding_provider()
        self.store = store or PassageStore()
        self.chunker = TextChunker(max_chunk_size=chunk_size)
        self.embed_timeout = embed_timeout or config.EMBED_TIMEOUT

        self._pending: Set[asyncio.Task] = set()

    async def _embed_chunks(self, document_id: str, chunks: List[str]) -> List[Passage]:
        """Embed chunks one by one, skipping the ones that fail."""
        passages = []

        for index, chunk in enumerate(chunks):
            try:
                vector = await asyncio.wait_for(
                    self.embedder.embed(chunk), timeout=self.embed_timeout
                )
            except Exception as e:
                logger.warning(
                    "passage_embedding_failed",
                    document_id=document_id,
                    chunk_index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            passages.append(
                Passage(
                    document_id=document_id,
                    content=chunk,
                    embedding=np.asarray(vector, dtype=np.float32),
                    chunk_index=index,
                    chunk_count=len(chunks),
                    embedding_model=self.embedder.embedding_model,
                )
            )

        return passages

    async def index(
        self, document_id: str, content: str, replace_existing: bool = False
    ) -> None:
        """Index a document's text. Never raises.

        Args:
            document_id: Document the passages belong to
            content: Extracted document text
            replace_existing: Delete the document's current passages first
        """
        try:
            chunks = self.chunker.chunk_text(content)

            if not chunks:
                logger.warning("no_chunks_created", document_id=document_id)
                return

            logger.info(
                "indexing_started",
                document_id=document_id,
                chunk_count=len(chunks),
            )

            passages = await self._embed_chunks(document_id, chunks)

            # Keep the old passages if nothing could be embedded this time
            if replace_existing and passages:
                self.store.delete_for_document(document_id)

            stored = self.store.add_passages(passages)

            log = logger.info if stored == len(chunks) else logger.warning
            log(
                "indexing_completed",
                document_id=document_id,
                chunk_count=len(chunks),
                passages_stored=stored,
                chunks_failed=len(chunks) - stored,
            )

        except Exception as e:
            logger.error(
                "indexing_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    def schedule(self, document_id: str, content: str) -> asyncio.Task:
        """Dispatch ``index`` as a background task and return immediately.

        Must be called from within a running event loop. The task is kept
        referenced until it finishes.
        """
        task = asyncio.get_running_loop().create_task(
            self.index(document_id, content),
            name=f"index-{document_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

        logger.info("indexing_scheduled", document_id=document_id)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)

        if task.cancelled():
            logger.warning("indexing_cancelled", task=task.get_name())
            return

        error = task.exception()
        if error is not None:
            logger.error(
                "indexing_task_crashed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_for_pending(self) -> None:
        """Wait for every scheduled indexing task to finish."""
        if self._pending:
            logger.info("waiting_for_indexing_tasks", count=len(self._pending))
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def reindex_documents(
    indexer: EmbeddingIndexer,
    document_ids: Optional[List[str]] = None,
    progress_callback=None,
) -> Dict[str, int]:
    """Re-chunk and re-embed stored documents, replacing their passages.

    Args:
        indexer: Indexer to run
        document_ids: Documents to reindex (default: every document)
        progress_callback: Optional callback function(current, total, document_id)

    Returns:
        Dictionary with reindexing statistics
    """
    if document_ids is None:
        document_ids = db.list_all_document_ids()

    stats = {
        "documents_processed": 0,
        "documents_missing": 0,
        "documents_without_passages": 0,
        "passages_stored": 0,
    }

    for idx, document_id in enumerate(document_ids, 1):
        if progress_callback:
            progress_callback(idx, len(document_ids), document_id)

        document = db.get_document(document_id)
        if document is None:
            logger.warning("reindex_document_missing", document_id=document_id)
            stats["documents_missing"] += 1
            continue

        await indexer.index(document_id, document["content"], replace_existing=True)

        count = indexer.store.count(document_id)
        stats["documents_processed"] += 1
        stats["passages_stored"] += count
        if count == 0:
            stats["documents_without_passages"] += 1

    logger.info("reindex_completed", stats=stats)
    return stats


# Singleton instance for convenience
_indexer_instance: Optional[EmbeddingIndexer] = None


def get_indexer() -> EmbeddingIndexer:
    """Get or create a singleton indexer instance."""
    global _indexer_instance
    if _indexer_instance is None:
        _indexer_instance = EmbeddingIndexer()
    return _indexer_instance
