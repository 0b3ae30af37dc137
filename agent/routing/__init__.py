"""
Inbound routing layer.

- MessageHandler: guardrail gate, confirmation flow or conversation agent,
  one turn at a time per session
- InMemorySessionStore: process-local session storage
"""

from agent.routing.message_handler import (
    ConversationAgent,
    GuardrailGate,
    GuardrailResult,
    InMemorySessionStore,
    MessageHandler,
    MessageResult,
    SessionNotFoundError,
)

__all__ = [
    "ConversationAgent",
    "GuardrailGate",
    "GuardrailResult",
    "InMemorySessionStore",
    "MessageHandler",
    "MessageResult",
    "SessionNotFoundError",
]
