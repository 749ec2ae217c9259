"""Conversation history for the chat endpoint.

Conversations belong to a user and hold the question/answer messages of
a chat, with the retrieval sources of every answer.
"""
from typing import List, Dict, Any, Optional

import structlog

from study_assistant import db

logger = structlog.get_logger()

TITLE_MAX_CHARS = 50


def make_title(first_message: str) -> str:
    """Create a brief title from the first user message.

    Messages longer than the limit are cut at the last word boundary and
    end with an ellipsis.
    """
    message = " ".join(first_message.split())
    if len(message) <= TITLE_MAX_CHARS:
        return message

    title = message[:TITLE_MAX_CHARS].rsplit(" ", 1)[0]
    return title + "..."


class ConversationManager:
    """Manages a user's conversations and their messages."""

    def start_conversation(self, user_id: str, first_message: str) -> str:
        """Create a conversation titled after its first message.

        Returns:
            The created conversation ID
        """
        conversation_id = db.create_conversation(user_id, make_title(first_message))
        logger.info("conversation_created", conversation_id=conversation_id, user_id=user_id)
        return conversation_id

    def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return db.get_conversation(conversation_id, user_id)

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        sources: Optional[List[Dict[str, Any]]] = None,
    ) -> int:
        """Add a message to a conversation.

        Args:
            conversation_id: The conversation to add the message to
            role: Message role ('user' or 'assistant')
            content: The message content
            sources: Optional list of sources used for the answer

        Returns:
            ID of the inserted message
        """
        message_id = db.add_message(conversation_id, role, content, sources)
        logger.info(
            "conversation_message_added",
            conversation_id=conversation_id,
            role=role,
            message_id=message_id,
        )
        return message_id

    def get_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        return db.get_messages(conversation_id)

    def list_conversations(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """List a user's conversations, most recently active first."""
        return db.list_conversations(user_id, limit)

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a user's conversation and all its messages.

        Returns:
            True if deleted, False if not found
        """
        deleted = db.delete_conversation(conversation_id, user_id)
        if deleted:
            logger.info("conversation_deleted", conversation_id=conversation_id, user_id=user_id)
        return deleted


# Singleton instance for convenience
_manager_instance: Optional[ConversationManager] = None


def get_conversation_manager() -> ConversationManager:
    """Get or create a singleton conversation manager."""
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = ConversationManager()
    return _manager_instance
