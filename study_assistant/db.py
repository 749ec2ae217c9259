"""Database initialization and helpers for the study assistant.

SQLite database for storing:
- Uploaded documents with their extracted text and cached summary
- Passages (document chunks) with their embedding vectors
- Conversations and their messages
- Generated practice questions
"""
import json
import sqlite3
import uuid
from typing import Optional, List, Dict, Any, Iterable
from datetime import datetime, timezone

import numpy as np
import structlog

from study_assistant import config

logger = structlog.get_logger()

DB_PATH = config.DB_PATH

# Columns returned for document listings (full text excluded)
_DOCUMENT_SUMMARY_COLUMNS = """
    id, user_id, title, filename, file_type, file_size,
    subject, description, created_at
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection() -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row and
        foreign key enforcement enabled (needed for cascading deletes)
    """
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - documents: uploaded documents owned by a user
    - passages: embedded chunks of a document, deleted with their document
    - conversations, messages: chat history, messages deleted with their conversation
    - questions: saved practice questions
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                filename TEXT NOT NULL,
                filepath TEXT,
                file_type TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                subject TEXT,
                description TEXT,
                content TEXT NOT NULL,
                summary TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # Vectors are packed float32 blobs; dimension and model are kept
        # alongside so vectors from different embedders are never compared
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS passages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id TEXT NOT NULL
                    REFERENCES documents(id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                chunk_count INTEGER NOT NULL,
                content TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                embedding_model TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_passages_document_id
            ON passages(document_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_user_id
            ON documents(user_id)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL
                    REFERENCES conversations(id) ON DELETE CASCADE,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                sources TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
            ON messages(conversation_id)
        """)

        # Generated practice questions outlive the document they came from
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS questions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                document_id TEXT
                    REFERENCES documents(id) ON DELETE SET NULL,
                question TEXT NOT NULL,
                options TEXT NOT NULL,
                answer TEXT NOT NULL,
                difficulty TEXT,
                subject TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_questions_user_id
            ON questions(user_id)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(DB_PATH))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


# --------------------------------------------------------------------------
# Documents
# --------------------------------------------------------------------------


def insert_document(
    user_id: str,
    title: str,
    filename: str,
    file_type: str,
    file_size: int,
    content: str,
    filepath: Optional[str] = None,
    subject: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """Insert an uploaded document.

    Args:
        user_id: Owner of the document
        title: Display title (usually the original file name)
        filename: Name of the stored file
        file_type: MIME type of the upload
        file_size: Size of the upload in bytes
        content: Extracted plain text
        filepath: Location of the stored file, if kept on disk
        subject: Optional subject label
        description: Optional free-text description

    Returns:
        ID of the new document
    """
    document_id = str(uuid.uuid4())
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            INSERT INTO documents (
                id, user_id, title, filename, filepath, file_type,
                file_size, subject, description, content, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            document_id,
            user_id,
            title,
            filename,
            filepath,
            file_type,
            file_size,
            subject or None,
            description or None,
            content,
            _now(),
        ))

        conn.commit()
        logger.info(
            "document_inserted",
            document_id=document_id,
            user_id=user_id,
            content_length=len(content),
        )
        return document_id

    except Exception as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


def get_document(document_id: str) -> Optional[Dict[str, Any]]:
    """Get a single document including its full text, or None."""
    conn = get_connection()

    try:
        row = conn.execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return dict(row) if row else None

    except Exception as e:
        logger.error("document_retrieval_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def get_documents(
    document_ids: Iterable[str], user_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Retrieve documents by ID, in the order the IDs were given.

    Args:
        document_ids: IDs to fetch (duplicates and unknown IDs are ignored)
        user_id: If given, only documents owned by this user are returned

    Returns:
        List of document dictionaries with all fields
    """
    ids = list(dict.fromkeys(document_ids))
    if not ids:
        return []

    conn = get_connection()

    try:
        placeholders = ",".join("?" * len(ids))
        query = f"SELECT * FROM documents WHERE id IN ({placeholders})"
        params: List[Any] = list(ids)
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)

        rows = {row["id"]: dict(row) for row in conn.execute(query, params)}
        return [rows[doc_id] for doc_id in ids if doc_id in rows]

    except Exception as e:
        logger.error("documents_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def list_documents(user_id: str) -> List[Dict[str, Any]]:
    """List a user's documents, newest first, without their full text.

    Each entry carries a ``passage_count`` with the number of stored passages.
    """
    conn = get_connection()

    try:
        rows = conn.execute(f"""
            SELECT {_DOCUMENT_SUMMARY_COLUMNS},
                (summary IS NOT NULL) AS has_summary,
                (SELECT COUNT(*) FROM passages p WHERE p.document_id = documents.id)
                    AS passage_count
            FROM documents
            WHERE user_id = ?
            ORDER BY created_at DESC
        """, (user_id,)).fetchall()
        return [dict(row) for row in rows]

    except Exception as e:
        logger.error("documents_list_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


def list_all_document_ids() -> List[str]:
    """Get every document ID, oldest first."""
    conn = get_connection()

    try:
        rows = conn.execute("SELECT id FROM documents ORDER BY created_at").fetchall()
        return [row["id"] for row in rows]
    finally:
        conn.close()


def update_document_summary(document_id: str, summary: str) -> None:
    """Store the generated summary for a document."""
    conn = get_connection()

    try:
        conn.execute(
            "UPDATE documents SET summary = ? WHERE id = ?", (summary, document_id)
        )
        conn.commit()
        logger.info("document_summary_saved", document_id=document_id)

    except Exception as e:
        conn.rollback()
        logger.error("document_summary_update_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def delete_document(document_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Delete a user's document; its passages are removed by cascade.

    Returns:
        The deleted document row (without content), or None if the
        document does not exist or belongs to another user
    """
    conn = get_connection()

    try:
        row = conn.execute(
            f"SELECT {_DOCUMENT_SUMMARY_COLUMNS}, filepath FROM documents "
            "WHERE id = ? AND user_id = ?",
            (document_id, user_id),
        ).fetchone()
        if row is None:
            return None

        conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        conn.commit()
        logger.info("document_deleted", document_id=document_id, user_id=user_id)
        return dict(row)

    except Exception as e:
        conn.rollback()
        logger.error("document_delete_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


# --------------------------------------------------------------------------
# Passages
# --------------------------------------------------------------------------


def insert_passages(passages: List[Dict[str, Any]]) -> int:
    """Bulk insert passages in a single transaction.

    Args:
        passages: Dicts with document_id, chunk_index, chunk_count, content,
            embedding (sequence of floats) and optional embedding_model

    Returns:
        Number of passages inserted
    """
    if not passages:
        return 0

    rows = []
    created_at = _now()
    for passage in passages:
        vector = np.asarray(passage["embedding"], dtype=np.float32)
        rows.append((
            passage["document_id"],
            passage["chunk_index"],
            passage["chunk_count"],
            passage["content"],
            vector.tobytes(),
            int(vector.shape[0]),
            passage.get("embedding_model"),
            created_at,
        ))

    conn = get_connection()

    try:
        conn.executemany("""
            INSERT INTO passages (
                document_id, chunk_index, chunk_count, content,
                embedding, dimension, embedding_model, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, rows)
        conn.commit()
        return len(rows)

    except Exception as e:
        conn.rollback()
        logger.error("passages_insert_failed", error=str(e), count=len(rows))
        raise
    finally:
        conn.close()


def get_passages_by_document_ids(document_ids: Iterable[str]) -> List[Dict[str, Any]]:
    """Retrieve all passages belonging to any of the given documents.

    Rows come back in insertion order. The ``embedding`` field is decoded
    into a float32 numpy array.
    """
    ids = list(dict.fromkeys(document_ids))
    if not ids:
        return []

    conn = get_connection()

    try:
        placeholders = ",".join("?" * len(ids))
        rows = conn.execute(f"""
            SELECT
                id, document_id, chunk_index, chunk_count, content,
                embedding, dimension, embedding_model, created_at
            FROM passages
            WHERE document_id IN ({placeholders})
            ORDER BY id
        """, ids).fetchall()

        passages = []
        for row in rows:
            passage = dict(row)
            passage["embedding"] = np.frombuffer(passage["embedding"], dtype=np.float32)
            passages.append(passage)

        return passages

    except Exception as e:
        logger.error("passages_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def delete_passages_for_document(document_id: str) -> int:
    """Delete every passage of a document.

    Returns:
        Number of passages deleted
    """
    conn = get_connection()

    try:
        cursor = conn.execute(
            "DELETE FROM passages WHERE document_id = ?", (document_id,)
        )
        conn.commit()
        logger.info("passages_cleared", document_id=document_id, count=cursor.rowcount)
        return cursor.rowcount

    except Exception as e:
        conn.rollback()
        logger.error("passages_clear_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def get_passage_count(document_id: Optional[str] = None) -> int:
    """Get the number of stored passages, optionally for one document."""
    conn = get_connection()

    try:
        if document_id is None:
            row = conn.execute("SELECT COUNT(*) FROM passages").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM passages WHERE document_id = ?", (document_id,)
            ).fetchone()
        return row[0]

    except Exception as e:
        logger.error("passage_count_failed", error=str(e))
        raise
    finally:
        conn.close()


# --------------------------------------------------------------------------
# Conversations
# --------------------------------------------------------------------------


def create_conversation(user_id: str, title: Optional[str] = None) -> str:
    """Create a conversation for a user.

    Returns:
        ID of the new conversation
    """
    conversation_id = str(uuid.uuid4())
    now = _now()
    conn = get_connection()

    try:
        conn.execute("""
            INSERT INTO conversations (id, user_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """, (conversation_id, user_id, title, now, now))
        conn.commit()
        return conversation_id

    except Exception as e:
        conn.rollback()
        logger.error("conversation_create_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


def get_conversation(conversation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Get a user's conversation, or None if it is missing or not theirs."""
    conn = get_connection()

    try:
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_conversations(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """List a user's conversations, most recently active first."""
    conn = get_connection()

    try:
        rows = conn.execute("""
            SELECT c.id, c.title, c.created_at, c.updated_at,
                (SELECT COUNT(*) FROM messages m WHERE m.conversation_id = c.id)
                    AS message_count
            FROM conversations c
            WHERE c.user_id = ?
            ORDER BY c.updated_at DESC, c.rowid DESC
            LIMIT ?
        """, (user_id, limit)).fetchall()
        return [dict(row) for row in rows]

    except Exception as e:
        logger.error("conversations_list_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


def delete_conversation(conversation_id: str, user_id: str) -> bool:
    """Delete a user's conversation; its messages are removed by cascade.

    Returns:
        True if deleted, False if not found
    """
    conn = get_connection()

    try:
        cursor = conn.execute(
            "DELETE FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    except Exception as e:
        conn.rollback()
        logger.error("conversation_delete_failed", error=str(e), conversation_id=conversation_id)
        raise
    finally:
        conn.close()


def add_message(
    conversation_id: str,
    role: str,
    content: str,
    sources: Optional[List[Dict[str, Any]]] = None,
) -> int:
    """Append a message to a conversation and bump its activity time.

    Args:
        conversation_id: Conversation the message belongs to
        role: 'user' or 'assistant'
        content: Message text
        sources: Optional retrieval sources, stored as JSON

    Returns:
        ID of the inserted message
    """
    now = _now()
    conn = get_connection()

    try:
        cursor = conn.execute("""
            INSERT INTO messages (conversation_id, role, content, sources, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            conversation_id,
            role,
            content,
            json.dumps(sources) if sources is not None else None,
            now,
        ))
        conn.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?", (now, conversation_id)
        )
        conn.commit()
        return cursor.lastrowid

    except Exception as e:
        conn.rollback()
        logger.error("message_insert_failed", error=str(e), conversation_id=conversation_id)
        raise
    finally:
        conn.close()


def get_messages(conversation_id: str) -> List[Dict[str, Any]]:
    """Get every message of a conversation in chronological order."""
    conn = get_connection()

    try:
        rows = conn.execute("""
            SELECT id, role, content, sources, created_at
            FROM messages
            WHERE conversation_id = ?
            ORDER BY id
        """, (conversation_id,)).fetchall()

        messages = []
        for row in rows:
            message = dict(row)
            message["sources"] = json.loads(message["sources"]) if message["sources"] else []
            messages.append(message)
        return messages

    except Exception as e:
        logger.error("messages_retrieval_failed", error=str(e), conversation_id=conversation_id)
        raise
    finally:
        conn.close()


# --------------------------------------------------------------------------
# Practice questions
# --------------------------------------------------------------------------


def insert_questions(
    user_id: str,
    questions: List[Dict[str, Any]],
    document_id: Optional[str] = None,
    subject: Optional[str] = None,
    difficulty: Optional[str] = None,
) -> List[int]:
    """Save generated practice questions in a single transaction.

    Args:
        user_id: Owner of the questions
        questions: Dicts with question, options (list), answer and optional difficulty
        document_id: Document the questions were generated from
        subject: Subject label copied from the document
        difficulty: Difficulty used when a question does not state its own

    Returns:
        IDs of the inserted questions, in input order
    """
    if not questions:
        return []

    created_at = _now()
    conn = get_connection()
    cursor = conn.cursor()

    try:
        ids = []
        for question in questions:
            cursor.execute("""
                INSERT INTO questions (
                    user_id, document_id, question, options, answer,
                    difficulty, subject, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                user_id,
                document_id,
                question["question"],
                json.dumps(question["options"]),
                question["answer"],
                question.get("difficulty") or difficulty,
                subject,
                created_at,
            ))
            ids.append(cursor.lastrowid)

        conn.commit()
        logger.info("questions_saved", count=len(ids), user_id=user_id, document_id=document_id)
        return ids

    except Exception as e:
        conn.rollback()
        logger.error("questions_insert_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


def list_questions(user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    """List a user's saved questions, newest first, with options decoded."""
    conn = get_connection()

    try:
        rows = conn.execute("""
            SELECT id, document_id, question, options, answer, difficulty, subject, created_at
            FROM questions
            WHERE user_id = ?
            ORDER BY id DESC
            LIMIT ?
        """, (user_id, limit)).fetchall()

        questions = []
        for row in rows:
            question = dict(row)
            question["options"] = json.loads(question["options"])
            questions.append(question)
        return questions

    except Exception as e:
        logger.error("questions_list_failed", error=str(e), user_id=user_id)
        raise
    finally:
        conn.close()


# Initialize database on module import if it doesn't exist
if not DB_PATH.exists():
    init_database()
    logger.info("database_auto_initialized", db_path=str(DB_PATH))
