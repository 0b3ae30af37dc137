"""
Conversation history helpers for Session.

Implements FIFO windowing so a long chat never grows the history (and the
prompts built from it) without bound.
"""

import logging
from datetime import UTC, datetime
from typing import Literal

from agent.state.schemas import ConversationTurn, Session

logger = logging.getLogger(__name__)

# Maximum number of turns retained in a session
MAX_MESSAGES = 20

# Maximum character length for a single message (prevents token overflow)
MAX_MESSAGE_LENGTH = 2000


def add_message(
    session: Session,
    role: Literal["user", "assistant"],
    content: str,
) -> ConversationTurn:
    """
    Append a turn to the session history with FIFO windowing and length limits.

    Messages longer than MAX_MESSAGE_LENGTH keep their first and last 800
    characters. Also refreshes session.last_activity.

    Example:
        >>> session = Session(session_id="abc")
        >>> _ = add_message(session, "user", "Hello")
        >>> session.conversation_history[0].content
        'Hello'
    """
    truncated_content = content
    if len(content) > MAX_MESSAGE_LENGTH:
        logger.warning(
            f"Message exceeds {MAX_MESSAGE_LENGTH} chars ({len(content)} chars), "
            f"truncating for session {session.session_id}",
            extra={"session_id": session.session_id},
        )
        truncated_content = (
            content[:800]
            + f"\n\n[... {len(content) - 1600} characters omitted ...]\n\n"
            + content[-800:]
        )

    turn = ConversationTurn(role=role, content=truncated_content)
    session.conversation_history.append(turn)

    if len(session.conversation_history) > MAX_MESSAGES:
        del session.conversation_history[:-MAX_MESSAGES]

    session.last_activity = datetime.now(UTC)
    return turn


def format_history(session: Session, limit: int = 6) -> str:
    """Render the last `limit` turns as "role: content" lines for prompts."""
    turns = session.conversation_history[-limit:]
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)
