"""Retriever for semantic search over a user's documents.

Handles:
- Query embedding generation
- Cosine ranking of the stored passages of the requested documents
- Fallback to truncated raw document text when no passages are usable
- Context formatting for the LLM prompt
"""
import asyncio
from typing import List, Iterable, Optional
from dataclasses import dataclass

import structlog

from study_assistant import config, db
from study_assistant.llm_client import AIProvider, get_embedding_provider
from study_assistant.rag.similarity import rank
from study_assistant.rag.store import PassageStore

logger = structlog.get_logger()


def _validate_top_k(top_k: int) -> int:
    if top_k < 0:
        raise ValueError(f"top_k must not be negative, got {top_k}")
    return top_k


@dataclass
class RetrievalResult:
    """A single piece of context with its similarity to the query."""

    content: str
    similarity: float

    def to_dict(self) -> dict:
        return {"content": self.content, "similarity": self.similarity}


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        embedder: Optional[AIProvider] = None,
        store: Optional[PassageStore] = None,
        top_k: Optional[int] = None,
        fallback_chars: Optional[int] = None,
        embed_timeout: Optional[float] = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Provider used to embed queries (default: shared provider)
            store: Passage store (default: SQLite-backed store)
            top_k: Number of results to retrieve (default from config)
            fallback_chars: Characters kept per document in fallback mode
            embed_timeout: Seconds allowed for the query embedding call
        """
        self.embedder = embedder or get_embedding_provider()
        self.store = store or PassageStore()
        self.top_k = _validate_top_k(config.RETRIEVAL_TOP_K if top_k is None else top_k)
        self.fallback_chars = fallback_chars or config.FALLBACK_CONTEXT_CHARS
        self.embed_timeout = embed_timeout or config.EMBED_TIMEOUT

    async def _rank_passages(
        self, query: str, document_ids: List[str], top_k: int
    ) -> List[RetrievalResult]:
        """Embed the query and rank stored passages against it."""
        query_embedding = await asyncio.wait_for(
            self.embedder.embed(query), timeout=self.embed_timeout
        )

        passages = self.store.get_passages(document_ids)
        if not passages:
            logger.info("no_passages_indexed", document_count=len(document_ids))
            return []

        comparable = [p for p in passages if p.dimension == len(query_embedding)]
        if len(comparable) < len(passages):
            logger.warning(
                "passages_dimension_mismatch",
                skipped=len(passages) - len(comparable),
                query_dimension=len(query_embedding),
            )

        ranked = rank(query_embedding, comparable, lambda p: p.embedding)

        return [
            RetrievalResult(content=passage.content, similarity=score)
            for score, passage in ranked[:top_k]
        ]

    def _fallback(self, document_ids: List[str]) -> List[RetrievalResult]:
        """Use the head of every document as one coarse context block."""
        documents = db.get_documents(document_ids)

        if not documents:
            logger.info("no_documents_found", document_count=len(document_ids))
            return []

        context = "\n\n".join(
            f"[{i}] {doc['content'][: self.fallback_chars]}"
            for i, doc in enumerate(documents, 1)
        )

        logger.info(
            "retrieval_fallback_used",
            document_count=len(documents),
            context_length=len(context),
        )

        return [RetrievalResult(content=context, similarity=1.0)]

    async def retrieve(
        self,
        query: str,
        document_ids: Iterable[str],
        top_k: Optional[int] = None,
    ) -> List[RetrievalResult]:
        """Retrieve the best available context for a query.

        Args:
            query: User query text
            document_ids: Documents to search (ownership is checked by the caller)
            top_k: Number of results to return (overrides default)

        Returns:
            Passages sorted by descending similarity, at most ``top_k`` of
            them; or a single fallback entry with similarity 1.0 when no
            passages are available; or an empty list when no documents exist
            or ``top_k`` is 0

        Raises:
            ValueError: If ``top_k`` is negative
        """
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            logger.warning("no_document_ids_provided")
            return []

        top_k = self.top_k if top_k is None else _validate_top_k(top_k)
        if top_k == 0:
            return []

        logger.info(
            "retrieval_started",
            query_length=len(query),
            document_count=len(ids),
            top_k=top_k,
        )

        try:
            results = await self._rank_passages(query, ids, top_k)
        except Exception as e:
            # Embedding problems must never reach the user
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            results = []

        if not results:
            return self._fallback(ids)

        logger.info(
            "retrieval_completed",
            results_returned=len(results),
            top_similarity=results[0].similarity,
        )

        return results


def format_context(results: List[RetrievalResult]) -> str:
    """Render results as numbered blocks for an LLM prompt.

    Args:
        results: Retrieval results, best first

    Returns:
        ``[1] ...``, ``[2] ...`` blocks separated by blank lines
    """
    return "\n\n".join(
        f"[{i}] {result.content}" for i, result in enumerate(results, 1)
    )


# Singleton instance for convenience
_retriever_instance: Optional[Retriever] = None


def get_retriever() -> Retriever:
    """Get or create a singleton retriever instance."""
    global _retriever_instance
    if _retriever_instance is None:
        _retriever_instance = Retriever()
    return _retriever_instance
