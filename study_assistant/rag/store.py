"""Passage store: embedded document chunks persisted in SQLite.

Vectors are kept as packed float32 arrays. Passages are only ever created
in batches, read back in bulk per document set, or deleted per document.
"""
from dataclasses import dataclass
from typing import List, Dict, Any, Iterable, Optional

import numpy as np
import structlog

from study_assistant import db

logger = structlog.get_logger()


@dataclass
class Passage:
    """An embedded slice of a document."""

    document_id: str
    content: str
    embedding: np.ndarray
    chunk_index: int
    chunk_count: int
    embedding_model: Optional[str] = None
    id: Optional[int] = None

    @property
    def dimension(self) -> int:
        return int(len(self.embedding))

    @property
    def metadata(self) -> Dict[str, int]:
        """Ordinal position of the passage within its document."""
        return {"chunk_index": self.chunk_index, "chunk_count": self.chunk_count}


class PassageStore:
    """Thin typed layer over the passage table."""

    def add_passages(self, passages: List[Passage]) -> int:
        """Bulk insert passages.

        Returns:
            Number of passages stored
        """
        inserted = db.insert_passages([
            {
                "document_id": p.document_id,
                "chunk_index": p.chunk_index,
                "chunk_count": p.chunk_count,
                "content": p.content,
                "embedding": p.embedding,
                "embedding_model": p.embedding_model,
            }
            for p in passages
        ])
        if inserted:
            logger.info(
                "passages_stored",
                count=inserted,
                document_ids=sorted({p.document_id for p in passages}),
            )
        return inserted

    def get_passages(self, document_ids: Iterable[str]) -> List[Passage]:
        """All passages of the given documents, in storage order."""
        return [self._from_row(row) for row in db.get_passages_by_document_ids(document_ids)]

    def delete_for_document(self, document_id: str) -> int:
        return db.delete_passages_for_document(document_id)

    def count(self, document_id: Optional[str] = None) -> int:
        return db.get_passage_count(document_id)

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Passage:
        return Passage(
            id=row["id"],
            document_id=row["document_id"],
            content=row["content"],
            embedding=row["embedding"],
            chunk_index=row["chunk_index"],
            chunk_count=row["chunk_count"],
            embedding_model=row.get("embedding_model"),
        )
