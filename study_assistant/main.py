"""Main Quart application for the study assistant.

The HTTP layer stays thin: it resolves the calling user from the
``X-User-Id`` header, checks document ownership, and hands off to the
extractor, the background indexer and the study assistant.
"""
import logging
import math
import time
from pathlib import Path

import httpx
import structlog
from quart import Quart, request, jsonify
from werkzeug.utils import secure_filename

from study_assistant import config, db
from study_assistant.conversations import get_conversation_manager
from study_assistant.llm_client import ProviderError, get_embedding_provider
from study_assistant.rag.extractor import (
    ExtractionError,
    UnsupportedFormatError,
    extract_text,
)
from study_assistant.rag.indexer import get_indexer
from study_assistant.study import get_study_assistant

logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

# Initialize Quart app
app = Quart(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

USER_HEADER = "X-User-Id"
MAX_MESSAGE_LENGTH = 2000
SOURCE_PREVIEW_CHARS = 200


def _current_user_id():
    """Return the calling user's ID, or None if the header is missing."""
    user_id = request.headers.get(USER_HEADER, "").strip()
    return user_id or None


def _unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def _ai_error(error: Exception, event: str):
    logger.error(event, error=str(error), error_type=type(error).__name__)
    return jsonify({"error": "The AI service is unavailable. Please try again later."}), 502


def _format_source(result) -> dict:
    similarity = result.similarity
    preview = result.content
    if len(preview) > SOURCE_PREVIEW_CHARS:
        preview = preview[:SOURCE_PREVIEW_CHARS] + "..."
    return {
        "content_preview": preview,
        "similarity": None if math.isnan(similarity) else round(similarity, 3),
    }


@app.before_serving
async def startup():
    db.init_database()


@app.after_serving
async def shutdown():
    await get_indexer().wait_for_pending()


@app.route("/api/documents/upload", methods=["POST"])
async def upload_document():
    """Upload a document, extract its text and schedule indexing.

    Expects multipart form data with ``file`` and optional ``subject`` and
    ``description`` fields.

    Returns JSON:
    {
        "message": "File uploaded successfully",
        "documentId": "uuid"
    }
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    files = await request.files
    form = await request.form
    upload = files.get("file")

    if upload is None or not upload.filename:
        return jsonify({"error": "No file provided"}), 400

    data = upload.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        return jsonify({"error": "File too large"}), 413

    mime_type = upload.mimetype or ""

    try:
        content = extract_text(data, mime_type)
    except UnsupportedFormatError as e:
        logger.warning("upload_rejected_unsupported", user_id=user_id, mime_type=e.mime_type)
        return jsonify({"error": str(e)}), 415
    except ExtractionError as e:
        logger.warning("upload_rejected_unreadable", user_id=user_id, error=str(e))
        return jsonify({"error": str(e)}), 422

    filename = f"{int(time.time() * 1000)}-{secure_filename(upload.filename) or 'upload'}"
    filepath = config.UPLOADS_DIR / filename

    try:
        filepath.write_bytes(data)

        document_id = db.insert_document(
            user_id=user_id,
            title=upload.filename,
            filename=filename,
            filepath=str(filepath),
            file_type=mime_type,
            file_size=len(data),
            content=content,
            subject=form.get("subject"),
            description=form.get("description"),
        )
    except Exception as e:
        logger.error("upload_failed", user_id=user_id, error=str(e), error_type=type(e).__name__)
        # No document row points at the file
        try:
            filepath.unlink(missing_ok=True)
        except OSError as unlink_error:
            logger.warning("upload_file_cleanup_failed", path=str(filepath), error=str(unlink_error))
        return jsonify({"error": "Failed to upload file"}), 500

    # Fire-and-forget: the response never waits for embeddings
    get_indexer().schedule(document_id, content)

    logger.info("document_uploaded", document_id=document_id, user_id=user_id)

    return jsonify({
        "message": "File uploaded successfully",
        "documentId": document_id,
    })


@app.route("/api/documents", methods=["GET"])
async def list_documents():
    """List the caller's documents (without full text)."""
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    documents = db.list_documents(user_id)
    for document in documents:
        document["has_summary"] = bool(document["has_summary"])
    return jsonify({"documents": documents})


@app.route("/api/documents/<document_id>", methods=["DELETE"])
async def delete_document(document_id: str):
    """Delete a document, its passages and its stored file.

    Returns:
        204 No Content if successful
        404 Not Found if the caller has no such document
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    deleted = db.delete_document(document_id, user_id)
    if deleted is None:
        return jsonify({"error": "Document not found"}), 404

    if deleted.get("filepath"):
        try:
            Path(deleted["filepath"]).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("upload_file_delete_failed", path=deleted["filepath"], error=str(e))

    return "", 204


@app.route("/api/chat", methods=["POST"])
async def chat():
    """Answer a question from the caller's documents.

    Expects JSON body:
    {
        "message": "user question",
        "documentIds": ["uuid", ...],
        "conversationId": "uuid"  // optional, a new conversation is started without it
    }

    Returns JSON:
    {
        "conversationId": "uuid",
        "answer": "assistant response text",
        "sources": [{"content_preview": "...", "similarity": 0.87}, ...]
    }
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    data = await request.get_json(silent=True) or {}
    message = data.get("message") or ""
    document_ids = data.get("documentIds") or []
    conversation_id = data.get("conversationId")

    if (
        not isinstance(message, str)
        or not message.strip()
        or not isinstance(document_ids, list)
        or not document_ids
        or not all(isinstance(document_id, str) for document_id in document_ids)
    ):
        return jsonify({"error": "Missing required fields"}), 400

    message = message.strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        return jsonify({"error": f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"}), 400

    if conversation_id is not None and not isinstance(conversation_id, str):
        return jsonify({"error": "Invalid conversationId"}), 400

    requested = list(dict.fromkeys(document_ids))
    owned = db.get_documents(requested, user_id=user_id)
    if len(owned) != len(requested):
        logger.warning("chat_document_access_denied", user_id=user_id)
        return jsonify({"error": "Invalid document access"}), 403

    conversations = get_conversation_manager()
    if conversation_id:
        if conversations.get_conversation(conversation_id, user_id) is None:
            return jsonify({"error": "Conversation not found"}), 404
    else:
        conversation_id = conversations.start_conversation(user_id, message)

    logger.info(
        "chat_request_received",
        user_id=user_id,
        conversation_id=conversation_id,
        message_length=len(message),
        document_count=len(requested),
    )

    conversations.add_message(conversation_id, "user", message)

    try:
        answer = await get_study_assistant().generate_answer(message, requested)
    except (httpx.HTTPError, ProviderError) as e:
        return _ai_error(e, "chat_generation_failed")

    sources = [_format_source(result) for result in answer.sources]
    conversations.add_message(conversation_id, "assistant", answer.text, sources)

    return jsonify({
        "conversationId": conversation_id,
        "answer": answer.text,
        "sources": sources,
    })


@app.route("/api/conversations", methods=["GET"])
async def list_conversations():
    """List the caller's conversations.

    Returns JSON:
    {
        "conversations": [
            {"id": "uuid", "title": "title", "message_count": 2, ...},
            ...
        ]
    }
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    return jsonify({"conversations": get_conversation_manager().list_conversations(user_id)})


@app.route("/api/conversations/<conversation_id>/messages", methods=["GET"])
async def get_conversation_messages(conversation_id: str):
    """Get all messages of one of the caller's conversations."""
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    conversations = get_conversation_manager()
    if conversations.get_conversation(conversation_id, user_id) is None:
        return jsonify({"error": "Conversation not found"}), 404

    return jsonify({"messages": conversations.get_messages(conversation_id)})


@app.route("/api/conversations/<conversation_id>", methods=["DELETE"])
async def delete_conversation(conversation_id: str):
    """Delete a conversation and all its messages.

    Returns:
        204 No Content if successful
        404 Not Found if the caller has no such conversation
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    if not get_conversation_manager().delete_conversation(conversation_id, user_id):
        return jsonify({"error": "Conversation not found"}), 404

    return "", 204


@app.route("/api/summarize", methods=["POST"])
async def summarize():
    """Return the (cached) summary of one of the caller's documents.

    Expects JSON body: {"documentId": "uuid"}
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    data = await request.get_json(silent=True) or {}
    document_id = data.get("documentId")
    if not isinstance(document_id, str) or not document_id:
        return jsonify({"error": "Missing documentId"}), 400

    if not db.get_documents([document_id], user_id=user_id):
        return jsonify({"error": "Document not found"}), 404

    try:
        summary = await get_study_assistant().summarize_document(document_id)
    except (httpx.HTTPError, ProviderError) as e:
        return _ai_error(e, "summary_generation_failed")

    return jsonify({"summary": summary})


@app.route("/api/questions/generate", methods=["POST"])
async def generate_questions():
    """Generate practice questions from one of the caller's documents.

    Expects JSON body:
    {
        "documentId": "uuid",
        "difficulty": "easy" | "medium" | "hard",  // optional, default medium
        "count": 5  // optional
    }
    """
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    data = await request.get_json(silent=True) or {}
    document_id = data.get("documentId")
    if not isinstance(document_id, str) or not document_id:
        return jsonify({"error": "Missing documentId"}), 400

    documents = db.get_documents([document_id], user_id=user_id)
    if not documents:
        return jsonify({"error": "Document not found"}), 404

    difficulty = data.get("difficulty", "medium")

    try:
        count = int(data.get("count", 5))
        questions = await get_study_assistant().generate_questions(
            documents[0]["content"],
            difficulty=difficulty,
            count=count,
        )
    except (ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    except (httpx.HTTPError, ProviderError) as e:
        return _ai_error(e, "question_generation_failed")

    db.insert_questions(
        user_id,
        questions,
        document_id=document_id,
        subject=documents[0]["subject"],
        difficulty=difficulty,
    )

    return jsonify({"questions": questions})


@app.route("/api/questions", methods=["GET"])
async def list_questions():
    """List the caller's saved practice questions, newest first."""
    user_id = _current_user_id()
    if user_id is None:
        return _unauthorized()

    return jsonify({"questions": db.list_questions(user_id)})


@app.route("/health/ready")
async def health_ready():
    """Readiness check: verify that the embedding provider is reachable."""
    provider = get_embedding_provider()
    healthy = await provider.health_check()

    checks = {
        "status": "healthy" if healthy else "unhealthy",
        "embedding_provider": provider.name,
        "embedding_model": provider.embedding_model,
    }
    return jsonify(checks), 200 if healthy else 503


@app.route("/health/live")
async def health_live():
    """Liveness check: the app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(413)
async def too_large(error):
    """Handle oversized request bodies."""
    return jsonify({"error": "File too large"}), 413


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="0.0.0.0", port=5000, debug=True)
