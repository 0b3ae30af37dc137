"""
Unit tests for message windowing functionality (add_message helper).

These tests verify the FIFO windowing behavior and the truncation of long
messages in the add_message helper used for session history.
"""

from agent.state.helpers import MAX_MESSAGE_LENGTH, MAX_MESSAGES, add_message, format_history
from agent.state.schemas import Session


def test_add_single_message_to_empty_session():
    """Test adding a single message to an empty session."""
    session = Session(session_id="test-001")

    turn = add_message(session, "user", "Hello")

    assert len(session.conversation_history) == 1
    assert session.conversation_history[0] is turn
    assert turn.content == "Hello"
    assert turn.role == "user"
    assert turn.timestamp is not None


def test_window_keeps_newest_messages():
    """Test that adding MAX_MESSAGES + 1 messages drops only the oldest (FIFO)."""
    session = Session(session_id="test-002")

    for i in range(1, MAX_MESSAGES + 2):
        add_message(session, "user", f"Message {i}")

    assert len(session.conversation_history) == MAX_MESSAGES
    assert session.conversation_history[0].content == "Message 2"
    assert session.conversation_history[-1].content == f"Message {MAX_MESSAGES + 1}"


def test_fifo_ordering_alternating_roles():
    """Test FIFO ordering with alternating user/assistant messages."""
    session = Session(session_id="test-003")

    for i in range(1, MAX_MESSAGES // 2 + 2):
        add_message(session, "user", f"User message {i}")
        add_message(session, "assistant", f"Assistant message {i}")

    assert len(session.conversation_history) == MAX_MESSAGES
    # First user/assistant pair dropped
    assert session.conversation_history[0].content == "User message 2"
    assert session.conversation_history[1].role == "assistant"


def test_long_message_truncated():
    """Test that messages over the limit keep their head and tail."""
    session = Session(session_id="test-004")
    content = "a" * 800 + "b" * 1000 + "c" * 800

    turn = add_message(session, "user", content)

    assert len(content) > MAX_MESSAGE_LENGTH
    assert turn.content.startswith("a" * 800)
    assert turn.content.endswith("c" * 800)
    assert "[... 1000 characters omitted ...]" in turn.content
    assert "b" not in turn.content


def test_message_at_limit_not_truncated():
    session = Session(session_id="test-005")
    content = "x" * MAX_MESSAGE_LENGTH

    assert add_message(session, "user", content).content == content


def test_last_activity_refreshed():
    session = Session(session_id="test-006")
    before = session.last_activity

    add_message(session, "user", "Hi")

    assert session.last_activity >= before


def test_format_history_uses_last_turns():
    session = Session(session_id="test-007")
    for i in range(1, 5):
        add_message(session, "user", f"Q{i}")
        add_message(session, "assistant", f"A{i}")

    assert format_history(session, limit=2) == "user: Q4\nassistant: A4"
    assert format_history(Session(session_id="empty")) == ""
