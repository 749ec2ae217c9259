"""Pytest configuration and shared fixtures."""
import os
import tempfile

# Keep the auto-created database out of the source tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="study-assistant-tests-"))

from unittest.mock import AsyncMock, MagicMock

import pytest

from study_assistant import db


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the database module at a fresh SQLite file."""
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "test.sqlite")
    db.init_database()
    return db.DB_PATH


@pytest.fixture
def mock_embedder() -> MagicMock:
    """Embedding provider returning a fixed 3-dimensional vector."""
    embedder = MagicMock()
    embedder.name = "test"
    embedder.embedding_model = "test-embed"
    embedder.embed = AsyncMock(return_value=[1.0, 0.0, 0.0])
    return embedder


@pytest.fixture
def mock_completer() -> MagicMock:
    """Chat provider returning a canned completion."""
    completer = MagicMock()
    completer.name = "test"
    completer.complete = AsyncMock(return_value="A canned answer [1].")
    return completer


@pytest.fixture
def make_document(temp_db):
    """Factory inserting a document and returning its ID."""

    def _make(content: str = "Cells are the unit of life.", user_id: str = "user-1", **kwargs):
        fields = {
            "title": "notes.txt",
            "filename": "123-notes.txt",
            "file_type": "text/plain",
            "file_size": len(content),
        }
        fields.update(kwargs)
        return db.insert_document(user_id=user_id, content=content, **fields)

    return _make
