"""
Inbound message handling.

handle_message() is the single entry point for a guest message:

    raw text -> guardrail gate -> pending confirmation?
        yes -> ConfirmationService.process_confirmation()
               (unclear replies are handed on to the conversation agent)
        no  -> ConversationAgent.respond()

Turns of the same session are serialized with a per-session asyncio.Lock, so
two quick messages can never both act on the same pending confirmation.
Turns of different sessions run concurrently.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from agent.services.confirmation_service import ConfirmationService
from agent.state.helpers import add_message
from agent.state.schemas import ConfirmationState, Language, Session
from agent.state.tenant import TenantContext
from shared.config import get_settings

logger = logging.getLogger(__name__)

BLOCKED_RESPONSE = "I'm sorry, I can only help with restaurant reservations and related questions."


@dataclass
class MessageResult:
    response: str
    has_booking: bool = False
    reservation_id: int | None = None
    blocked: bool = False
    block_reason: str | None = None


@dataclass
class GuardrailResult:
    allowed: bool
    reason: str | None = None
    category: str | None = None


class GuardrailGate(Protocol):
    """Pre-filter deciding whether a message may reach the AI layer."""

    async def check(self, message: str, session: Session) -> GuardrailResult: ...


class ConversationAgent(Protocol):
    """Handles every turn that is not a confirmation answer."""

    async def respond(self, message: str, session: Session) -> MessageResult: ...


class InMemorySessionStore:
    """Process-local session storage."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def save(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    async def create(
        self,
        session_id: str,
        tenant_context: TenantContext | None = None,
        language: Language = Language.EN,
        platform: str = "web",
    ) -> Session:
        timezone = get_settings().DEFAULT_TIMEZONE
        if tenant_context is not None and tenant_context.restaurant.timezone:
            timezone = tenant_context.restaurant.timezone

        session = Session(
            session_id=session_id,
            tenant_context=tenant_context,
            language=language,
            platform=platform,
            timezone=timezone,
        )
        self._sessions[session_id] = session
        logger.info(
            f"Session created | session={session_id} | restaurant_id={session.restaurant_id}",
            extra={"session_id": session_id},
        )
        return session


class SessionNotFoundError(Exception):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class MessageHandler:
    """
    Routes guest messages to the confirmation flow or the conversation agent.

    Args:
        session_store: Session persistence (get / save / create)
        confirmation_service: Pending confirmation state machine
        conversation_agent: Handles non-confirmation turns
        guardrail: Optional pre-filter; blocked messages never reach the AI layer
    """

    def __init__(
        self,
        session_store: InMemorySessionStore,
        confirmation_service: ConfirmationService,
        conversation_agent: ConversationAgent,
        guardrail: GuardrailGate | None = None,
    ):
        self.session_store = session_store
        self.confirmation_service = confirmation_service
        self.conversation_agent = conversation_agent
        self.guardrail = guardrail
        # One lock per session with turns queued or running; dropped when the last one ends
        self.locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def handle_message(self, session_id: str, raw_text: str) -> MessageResult:
        """
        Process one guest message and return the reply.

        Raises:
            SessionNotFoundError: Unknown session id.
            AccessDeniedError: Tenant not entitled to AI features.
        """
        lock = self.locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                return await self._handle_turn(session_id, raw_text)
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] == 0:
                del self._lock_users[session_id]
                del self.locks[session_id]

    async def _handle_turn(self, session_id: str, raw_text: str) -> MessageResult:
        """Run one turn; the caller holds the session lock."""
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        text = raw_text.strip()

        if self.guardrail is not None:
            verdict = await self.guardrail.check(text, session)
            if not verdict.allowed:
                logger.warning(
                    f"Message blocked by guardrail | session={session_id} | "
                    f"reason={verdict.reason} | category={verdict.category}",
                    extra={"session_id": session_id},
                )
                return MessageResult(
                    response=await self.confirmation_service.translator.translate(
                        BLOCKED_RESPONSE, session.language, "error", session.tenant_context
                    ),
                    blocked=True,
                    block_reason=verdict.reason,
                )

        add_message(session, "user", text)

        if session.confirmation_state is not ConfirmationState.NONE:
            outcome = await self.confirmation_service.process_confirmation(text, session)
            if outcome.reprocess:
                logger.info(
                    f"Reply was not a confirmation answer, reprocessing | session={session_id}",
                    extra={"session_id": session_id},
                )
                result = await self.conversation_agent.respond(outcome.response, session)
            else:
                result = MessageResult(
                    response=outcome.response,
                    has_booking=outcome.has_booking,
                    reservation_id=outcome.reservation_id,
                )
        else:
            result = await self.conversation_agent.respond(text, session)

        add_message(session, "assistant", result.response)
        await self.session_store.save(session)
        return result
