"""Tests for best-effort embedding indexing."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from study_assistant import db
from study_assistant.rag.indexer import EmbeddingIndexer, reindex_documents
from study_assistant.rag.store import PassageStore

# Ten sentences that each become their own chunk at chunk_size=45
TEN_SENTENCES = " ".join(
    f"Sentence number {i} talks about topic {i}." for i in range(1, 11)
)


@pytest.fixture
def indexer(mock_embedder, temp_db) -> EmbeddingIndexer:
    return EmbeddingIndexer(embedder=mock_embedder, store=PassageStore(), chunk_size=45)


@pytest.mark.asyncio
async def test_every_chunk_is_stored_with_ordinal_metadata(indexer, make_document):
    """Test a clean run stores one passage per chunk."""
    doc_id = make_document(TEN_SENTENCES)

    await indexer.index(doc_id, TEN_SENTENCES)

    passages = indexer.store.get_passages([doc_id])
    assert len(passages) == 10
    assert [p.chunk_index for p in passages] == list(range(10))
    assert all(p.chunk_count == 10 for p in passages)
    assert passages[0].content == "Sentence number 1 talks about topic 1"
    assert passages[0].embedding_model == "test-embed"


@pytest.mark.asyncio
async def test_failed_chunks_are_skipped(indexer, mock_embedder, make_document):
    """Test that chunks 2 and 5 failing leaves the other eight stored."""
    doc_id = make_document(TEN_SENTENCES)
    vector = [0.5, 0.5, 0.0]
    mock_embedder.embed = AsyncMock(side_effect=[
        vector, vector, RuntimeError("rate limited"), vector, vector,
        ConnectionError("reset"), vector, vector, vector, vector,
    ])

    await indexer.index(doc_id, TEN_SENTENCES)

    passages = indexer.store.get_passages([doc_id])
    assert [p.chunk_index for p in passages] == [0, 1, 3, 4, 6, 7, 8, 9]
    assert all(p.chunk_count == 10 for p in passages)
    assert mock_embedder.embed.await_count == 10


@pytest.mark.asyncio
async def test_total_embedder_outage_does_not_raise(indexer, mock_embedder, make_document):
    """Test that a dead embedder leaves the document without passages."""
    doc_id = make_document(TEN_SENTENCES)
    mock_embedder.embed = AsyncMock(side_effect=ConnectionError("unreachable"))

    await indexer.index(doc_id, TEN_SENTENCES)

    assert indexer.store.count(doc_id) == 0


@pytest.mark.asyncio
async def test_slow_embedding_counts_as_chunk_failure(mock_embedder, make_document, temp_db):
    """Test that a chunk whose embedding times out is skipped."""
    doc_id = make_document("Quick one. Slow one. Quick again.")

    async def embed(text):
        if text.startswith("Slow"):
            await asyncio.sleep(1)
        return [1.0, 0.0]

    mock_embedder.embed = embed
    indexer = EmbeddingIndexer(
        embedder=mock_embedder, store=PassageStore(), chunk_size=5, embed_timeout=0.05
    )

    await indexer.index(doc_id, "Quick one. Slow one. Quick again.")

    passages = indexer.store.get_passages([doc_id])
    assert [p.content for p in passages] == ["Quick one", "Quick again"]


@pytest.mark.asyncio
async def test_store_failure_is_swallowed(mock_embedder):
    """Test that a failing store write never reaches the caller."""
    store = MagicMock()
    store.add_passages.side_effect = RuntimeError("disk full")
    indexer = EmbeddingIndexer(embedder=mock_embedder, store=store)

    await indexer.index("doc-1", "Some text. More text.")

    store.add_passages.assert_called_once()


@pytest.mark.asyncio
async def test_empty_content_stores_nothing(indexer, mock_embedder, make_document):
    """Test that text without sentences is not embedded."""
    doc_id = make_document("...")

    await indexer.index(doc_id, "...")

    mock_embedder.embed.assert_not_awaited()
    assert indexer.store.count(doc_id) == 0


@pytest.mark.asyncio
async def test_repeated_indexing_duplicates_passages(indexer, make_document):
    """Test that two plain runs for one document both persist."""
    doc_id = make_document(TEN_SENTENCES)

    await indexer.index(doc_id, TEN_SENTENCES)
    await indexer.index(doc_id, TEN_SENTENCES)

    assert indexer.store.count(doc_id) == 20


@pytest.mark.asyncio
async def test_replace_existing_swaps_passages(indexer, make_document):
    """Test that a replacing run leaves exactly one passage set."""
    doc_id = make_document(TEN_SENTENCES)

    await indexer.index(doc_id, TEN_SENTENCES)
    await indexer.index(doc_id, TEN_SENTENCES, replace_existing=True)

    assert indexer.store.count(doc_id) == 10


@pytest.mark.asyncio
async def test_replace_keeps_old_passages_when_nothing_embeds(indexer, mock_embedder, make_document):
    """Test that a failed replacing run does not wipe the index."""
    doc_id = make_document(TEN_SENTENCES)
    await indexer.index(doc_id, TEN_SENTENCES)
    mock_embedder.embed = AsyncMock(side_effect=ConnectionError("unreachable"))

    await indexer.index(doc_id, TEN_SENTENCES, replace_existing=True)

    assert indexer.store.count(doc_id) == 10


@pytest.mark.asyncio
async def test_schedule_runs_in_background(indexer, make_document):
    """Test that scheduling returns a task the caller need not await."""
    doc_id = make_document(TEN_SENTENCES)

    task = indexer.schedule(doc_id, TEN_SENTENCES)

    assert isinstance(task, asyncio.Task)
    assert indexer.pending_count == 1

    await indexer.wait_for_pending()

    assert indexer.pending_count == 0
    assert indexer.store.count(doc_id) == 10


@pytest.mark.asyncio
async def test_wait_for_pending_with_nothing_scheduled(indexer):
    """Test that draining an idle indexer returns immediately."""
    await indexer.wait_for_pending()

    assert indexer.pending_count == 0


@pytest.mark.asyncio
async def test_reindex_documents_replaces_and_reports(indexer, make_document):
    """Test the reindex helper over stored documents."""
    first = make_document(TEN_SENTENCES)
    second = make_document("Only one sentence here.")
    await indexer.index(first, TEN_SENTENCES)
    progress = MagicMock()

    stats = await reindex_documents(
        indexer, document_ids=[first, second, "missing"], progress_callback=progress
    )

    assert stats == {
        "documents_processed": 2,
        "documents_missing": 1,
        "documents_without_passages": 0,
        "passages_stored": 11,
    }
    assert progress.call_count == 3
    progress.assert_any_call(3, 3, "missing")


@pytest.mark.asyncio
async def test_reindex_defaults_to_every_document(indexer, make_document):
    """Test that reindexing without IDs covers all documents."""
    make_document("Alpha text.")
    make_document("Beta text.")

    stats = await reindex_documents(indexer)

    assert stats["documents_processed"] == 2
    assert db.get_passage_count() == 2
