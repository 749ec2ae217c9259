"""Tests for conversation history management."""
from study_assistant.conversations import ConversationManager, make_title


def test_short_message_is_used_as_title():
    assert make_title("  What is   osmosis? ") == "What is osmosis?"


def test_long_message_title_is_cut_at_a_word():
    message = "Explain the difference between mitosis and meiosis in eukaryotic cells"

    title = make_title(message)

    assert title == "Explain the difference between mitosis and..."
    assert len(title) <= 53


def test_conversation_lifecycle(temp_db):
    """Test start, message, list and delete through the manager."""
    manager = ConversationManager()

    conversation_id = manager.start_conversation("alice", "What is ATP?")
    manager.add_message(conversation_id, "user", "What is ATP?")
    manager.add_message(conversation_id, "assistant", "Energy currency.", [])

    assert manager.get_conversation(conversation_id, "alice")["title"] == "What is ATP?"
    assert [m["role"] for m in manager.get_messages(conversation_id)] == ["user", "assistant"]
    assert [c["id"] for c in manager.list_conversations("alice")] == [conversation_id]

    assert manager.delete_conversation(conversation_id, "alice") is True
    assert manager.list_conversations("alice") == []
