"""Sentence-based text chunking for the RAG pipeline.

Text is split on sentence-terminal punctuation and sentences are packed
greedily into chunks of bounded length. A sentence is never split, so a
single sentence longer than the limit becomes a chunk of its own.
"""
import re
from typing import List, Optional

import structlog

from study_assistant import config

logger = structlog.get_logger()

# One or more of . ! ? ends a sentence
SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
SENTENCE_JOINER = ". "


class TextChunker:
    """Greedy sentence packer with a character limit per chunk."""

    def __init__(self, max_chunk_size: Optional[int] = None):
        """Initialize the text chunker.

        Args:
            max_chunk_size: Maximum chunk length in characters (default from config)
        """
        self.max_chunk_size = (
            config.CHUNK_SIZE if max_chunk_size is None else max_chunk_size
        )

        if self.max_chunk_size <= 0:
            raise ValueError(
                f"Chunk size must be positive, got {self.max_chunk_size}"
            )

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split text into trimmed, non-empty sentences (punctuation dropped)."""
        sentences = (part.strip() for part in SENTENCE_BOUNDARY.split(text))
        return [sentence for sentence in sentences if sentence]

    def chunk_text(self, text: str) -> List[str]:
        """Split text into chunks along sentence boundaries.

        Args:
            text: Text to chunk

        Returns:
            Ordered list of chunk strings (empty for empty input)
        """
        if not text:
            return []

        chunks: List[str] = []
        current = ""

        for sentence in self.split_sentences(text):
            if not current:
                current = sentence
            elif len(current) + len(SENTENCE_JOINER) + len(sentence) > self.max_chunk_size:
                chunks.append(current)
                current = sentence
            else:
                current = f"{current}{SENTENCE_JOINER}{sentence}"

        if current:
            chunks.append(current)

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            max_chunk_size=self.max_chunk_size,
        )

        return chunks


def chunk_text(text: str, max_chunk_size: Optional[int] = None) -> List[str]:
    """Chunk text with a one-off chunker (convenience function).

    Args:
        text: Text to chunk
        max_chunk_size: Maximum chunk length (default from config)

    Returns:
        List of chunk strings
    """
    return TextChunker(max_chunk_size=max_chunk_size).chunk_text(text)
