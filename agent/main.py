"""
Assistant service entry point.

Wires the provider router, translation helper, confirmation flow and
message handler together. Transports (web widget, Telegram) build one
MessageHandler at startup and call handle_message() per incoming message.
"""

import logging

from agent.providers.router import create_router
from agent.routing.message_handler import (
    ConversationAgent,
    GuardrailGate,
    InMemorySessionStore,
    MessageHandler,
)
from agent.services.confirmation_service import ConfirmationService
from agent.services.translation_service import TranslationHelper
from agent.tools.booking_tools import BookingActions
from shared.config import Settings, get_settings
from shared.logging_config import configure_logging
from shared.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def build_message_handler(
    booking_actions: BookingActions,
    conversation_agent: ConversationAgent,
    guardrail: GuardrailGate | None = None,
    settings: Settings | None = None,
) -> MessageHandler:
    """
    Configure logging and assemble the conversation core.

    Args:
        booking_actions: Reservation backend executed after confirmation
        conversation_agent: Handles turns with nothing pending
        guardrail: Optional input gate run before any routing
        settings: Overrides get_settings()
    """
    settings = settings or get_settings()
    configure_logging()

    router = create_router(settings)
    translator = TranslationHelper(router)
    confirmation_service = ConfirmationService(
        router, booking_actions, translator=translator, settings=settings
    )

    logger.info(
        f"Assistant initialized | primary={settings.DEFAULT_PRIMARY_MODEL} | "
        f"fallback={settings.DEFAULT_FALLBACK_MODEL} | usage_store={settings.USAGE_STORE_BACKEND}"
    )
    return MessageHandler(
        InMemorySessionStore(),
        confirmation_service,
        conversation_agent,
        guardrail=guardrail,
    )


async def shutdown(settings: Settings | None = None) -> None:
    """Release shared connections on service stop."""
    settings = settings or get_settings()
    if settings.USAGE_STORE_BACKEND == "redis":
        await close_redis_client()
    logger.info("Assistant shut down")
