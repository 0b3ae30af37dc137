"""
Confirmation service - explicit confirmation before any booking side effect.

A booking or cancellation is never executed on the strength of a single
model output. The conversation layer first parks the action on the session
(pending_confirmation) and asks the guest; the guest's next message is
processed here:

    NONE --request_*_confirmation--> AWAITING_CONFIRMATION
    AWAITING_CONFIRMATION --positive--> execute action --> NONE
                            (or AWAITING_NAME_CLARIFICATION on name mismatch)
    AWAITING_CONFIRMATION --negative--> NONE (cancellation acknowledged)
    AWAITING_CONFIRMATION --unclear--> NONE (message handed back for reprocessing)
    AWAITING_NAME_CLARIFICATION --resolved / timeout / attempts cap--> retry action
    AWAITING_NAME_CLARIFICATION --ambiguous--> same state, attempts += 1, re-ask

Pending state is cleared BEFORE the action executes, so a repeated
process_confirmation() call for the same turn is rejected with
NoPendingConfirmationError instead of booking twice.

Failure handling:
- AccessDeniedError propagates to the caller
- Anything else is logged and answered with a localized generic apology;
  raw error text never reaches the guest
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable

from agent.providers.errors import AccessDeniedError
from agent.providers.models import GenerationOptions
from agent.providers.router import ProviderRouter
from agent.services.name_clarification import extract_name_choice
from agent.services.translation_service import TranslationHelper
from agent.state.schemas import (
    ActionName,
    ConfirmationState,
    Language,
    PendingAction,
    PendingConfirmation,
    PendingNameClarification,
    Session,
)
from agent.tools.booking_tools import BookingActions, ToolResult
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


class NoPendingConfirmationError(Exception):
    """process_confirmation() was called for a session with nothing pending."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No pending confirmation found for session {session_id}")


@dataclass
class ConfirmationResult:
    """
    Outcome of one confirmation turn.

    Attributes:
        response: Text for the guest (already localized)
        has_booking: True when a reservation was created this turn
        reservation_id: Id of the created reservation
        reprocess: The reply was not a confirmation answer; the caller should
            run `response` (the guest's raw message) through the normal agent
    """
    response: str
    has_booking: bool = False
    reservation_id: int | None = None
    reprocess: bool = False


# ============================================================================
# Fixed texts (English source, translated per session)
# ============================================================================

CANCELLED_BY_USER_TEXT = "Okay, operation cancelled. How else can I help you?"
GENERIC_ERROR_TEXT = "Sorry, I had trouble processing your confirmation. Please try again."
ACTION_FAILED_TEXT = "Sorry, I couldn't complete the operation. Please try again or contact the restaurant."

NAME_CLARIFICATION_QUESTION = (
    'I see you\'ve booked with us before under the name "{db_name}". '
    'For this reservation, would you like to use "{request_name}" or keep "{db_name}"?'
)
NAME_CLARIFICATION_REASK = (
    'I need to clarify which name to use. Please choose:\n\n'
    '1. "{request_name}" (new name)\n'
    '2. "{db_name}" (from your profile)\n\n'
    'Just type the name you prefer, or "1" or "2".'
)

CANCELLATION_QUESTION = (
    "Just to confirm: do you want to cancel reservation #{reservation_id}? "
    "Please reply yes or no."
)
CANCELLATION_DONE_TEXT = (
    "✅ Your reservation #{reservation_id} has been cancelled. "
    "Is there anything else I can help you with?"
)

DETAILED_CONFIRMATION_TEMPLATES: dict[Language, str] = {
    Language.EN: (
        "🎉 Reservation Confirmed!\n\n"
        "📋 **Booking Details:**\n"
        "• Confirmation #: {reservation_id}\n"
        "• Guest: {name}\n"
        "• Phone: {phone}\n"
        "• Date: {date}\n"
        "• Time: {time}\n"
        "• Guests: {guests}\n"
        "{comments_line}\n"
        "✅ All details validated and confirmed.\n"
        "📞 We'll call if any changes are needed."
    ),
    Language.RU: (
        "🎉 Бронь подтверждена!\n\n"
        "📋 **Детали бронирования:**\n"
        "• Номер: {reservation_id}\n"
        "• Гость: {name}\n"
        "• Телефон: {phone}\n"
        "• Дата: {date}\n"
        "• Время: {time}\n"
        "• Гостей: {guests}\n"
        "{comments_line}\n"
        "✅ Все данные проверены и подтверждены.\n"
        "📞 Перезвоним при необходимости."
    ),
    Language.SR: (
        "🎉 Rezervacija potvrđena!\n\n"
        "📋 **Detalji rezervacije:**\n"
        "• Broj: {reservation_id}\n"
        "• Gost: {name}\n"
        "• Telefon: {phone}\n"
        "• Datum: {date}\n"
        "• Vreme: {time}\n"
        "• Gostiju: {guests}\n"
        "{comments_line}\n"
        "✅ Svi podaci provereni i potvrđeni.\n"
        "📞 Pozvaćemo ako su potrebne izmene."
    ),
    Language.HU: (
        "🎉 Foglalás megerősítve!\n\n"
        "📋 **Foglalás részletei:**\n"
        "• Szám: {reservation_id}\n"
        "• Vendég: {name}\n"
        "• Telefon: {phone}\n"
        "• Dátum: {date}\n"
        "• Idő: {time}\n"
        "• Vendégek: {guests}\n"
        "{comments_line}\n"
        "✅ Minden adat ellenőrizve és megerősítve.\n"
        "📞 Felhívjuk, ha változásokra van szükség."
    ),
}

SPECIAL_REQUESTS_LABELS: dict[Language, str] = {
    Language.EN: "Special requests",
    Language.RU: "Особые пожелания",
    Language.SR: "Posebni zahtevi",
    Language.HU: "Különleges kérések",
}

# Internal annotations that must never be echoed back to guests
INTERNAL_COMMENT_PATTERNS = [
    re.compile(rf"{re.escape(marker)}[^\n.;]*[.;]?", re.IGNORECASE)
    for marker in (
        "User repeated ambiguous time",
        "AI reasoning:",
        "System note:",
        "Validation flag:",
    )
]

# Replies that confirm without carrying any correction
SHORT_CONFIRMATIONS = frozenset({
    "yes", "y", "yeah", "yep", "yup", "ok", "okay", "sure", "confirm", "confirmed",
    "yes please", "go ahead", "sounds good", "perfect", "correct", "right",
    "да", "ага", "ок", "хорошо", "подтверждаю", "верно",
    "da", "može", "moze", "potvrđujem", "u redu",
    "igen", "rendben", "jó", "persze", "mehet",
    "ja", "oui", "si", "sí", "sim",
})

CONFIRMATION_STATUSES = frozenset({"positive", "negative", "unclear"})

CONFIRMATION_PROMPT = """You are the Confirmation Agent of a restaurant booking assistant.
The guest was asked to confirm {summary}.

Guest reply: "{message}"
Conversation language: {language}

Classify the reply:
- "positive": the guest agrees (e.g. "yes", "да", "igen", "sounds good", "yes, and note it's a birthday")
- "negative": the guest declines (e.g. "no", "нет", "nem", "cancel that", "not anymore")
- "unclear": the reply is not an answer to the question (e.g. "what time do you close?",
  "can I change the time to 20:00?", "hmm, let me think")

Examples:
- "Yes, please confirm" -> positive
- "Igen, köszönöm" -> positive
- "Да, подтверждаю" -> positive
- "No, I changed my mind" -> negative
- "Nem, mégsem" -> negative
- "Нет, не надо" -> negative
- "Can I bring a dog?" -> unclear

Return JSON: {{"confirmationStatus": "positive" | "negative" | "unclear", "reasoning": "<short>"}}"""

MODIFICATION_EXTRACTION_PROMPT = """The guest confirmed a restaurant booking with this reply: "{message}"

Extract ONLY explicit corrections or additions contained in the reply:
- guestName: a different name for the booking
- specialRequests: a special request or note

Examples:
- "да нужно на имя Петров" -> {{"guestName": "Петров"}}
- "Yes, and please note it's a birthday." -> {{"specialRequests": "birthday"}}
- "Sounds good" -> {{}}

Return a JSON object with only the fields that are present."""


def sanitize_internal_comments(text: str | None) -> str:
    """
    Remove internal annotations (validation notes, AI reasoning) from
    guest-visible text such as special requests.

    Examples:
        >>> sanitize_internal_comments("Window seat. System note: flagged twice.")
        'Window seat.'
    """
    if not text:
        return ""
    cleaned = text
    for pattern in INTERNAL_COMMENT_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return " ".join(cleaned.split()).strip(" ,;")


def is_short_confirmation(message: str) -> bool:
    """True for bare yes-style replies that cannot carry corrections."""
    normalized = " ".join(re.sub(r"[^\w\s]", " ", message.lower()).split())
    return normalized in SHORT_CONFIRMATIONS


def generate_detailed_confirmation(
    reservation_id: int | str | None,
    details: dict[str, Any],
    language: Language | str | None,
) -> str:
    """Post-booking summary; languages without a template use English."""
    try:
        target = Language(language) if language else Language.EN
    except ValueError:
        target = Language.EN
    if target not in DETAILED_CONFIRMATION_TEMPLATES:
        target = Language.EN

    comments = sanitize_internal_comments(details.get("comments"))
    comments_line = f"• {SPECIAL_REQUESTS_LABELS[target]}: {comments}\n" if comments else ""

    return DETAILED_CONFIRMATION_TEMPLATES[target].format(
        reservation_id=reservation_id,
        name=details.get("name", ""),
        phone=details.get("phone", ""),
        date=details.get("date", ""),
        time=details.get("time", ""),
        guests=details.get("guests", ""),
        comments_line=comments_line,
    )


def build_booking_summary(arguments: dict[str, Any]) -> str:
    return (
        f"a reservation for {arguments.get('guests')} people for {arguments.get('guest_name')} "
        f"on {arguments.get('date')} at {arguments.get('time')}"
    )


class ConfirmationService:
    """
    Pending confirmation / name clarification state machine for one process.

    Args:
        router: Provider router (intent analysis, extractions)
        booking_actions: Reservation backend
        translator: Localizes fixed texts (defaults to TranslationHelper(router))
        settings: Timeouts and thresholds
        clock: Epoch seconds, injectable for timeout tests
    """

    def __init__(
        self,
        router: ProviderRouter,
        booking_actions: BookingActions,
        translator: TranslationHelper | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.router = router
        self.booking_actions = booking_actions
        self.translator = translator or TranslationHelper(router)
        self.settings = settings or get_settings()
        self._clock = clock

    async def _localize(self, text: str, session: Session, context: str) -> str:
        return await self.translator.translate(text, session.language, context, session.tenant_context)

    # ========================================================================
    # Entry points
    # ========================================================================

    async def request_booking_confirmation(
        self,
        booking_data: dict[str, Any],
        session: Session,
        function_context: dict[str, Any] | None = None,
    ) -> str:
        """
        Park a create_reservation action and return the confirmation question.

        booking_data uses the gathering_info keys (name, phone, date, time,
        guests, comments).
        """
        comments = sanitize_internal_comments(booking_data.get("comments"))
        arguments = {
            "guest_name": booking_data.get("name", ""),
            "guest_phone": booking_data.get("phone", ""),
            "date": booking_data.get("date", ""),
            "time": booking_data.get("time", ""),
            "guests": booking_data.get("guests", 0),
            "special_requests": comments or None,
        }

        session.set_pending_confirmation(
            PendingConfirmation(
                action=PendingAction(ActionName.CREATE_RESERVATION, arguments),
                function_context=function_context or self._function_context(session),
                summary=build_booking_summary(arguments),
                summary_data=dict(arguments),
            )
        )

        lines = [
            "I have all the details for your reservation:",
            "",
            "📋 **Booking Summary:**",
            f"• {arguments['guests']} guests",
            f"• {arguments['date']} at {arguments['time']}",
            f"• Name: {arguments['guest_name']}",
            f"• Phone: {arguments['guest_phone']}",
        ]
        if comments:
            lines.append(f"• Special requests: {comments}")
        lines += ["", "Shall I go ahead and confirm this booking?"]

        logger.info(
            f"Booking confirmation requested | session={session.session_id} | "
            f"date={arguments['date']} | time={arguments['time']} | guests={arguments['guests']}",
            extra={"session_id": session.session_id},
        )
        return await self._localize("\n".join(lines), session, "confirmation")

    async def request_cancellation_confirmation(
        self,
        reservation_id: int,
        session: Session,
        reason: str | None = None,
    ) -> str:
        """Park a cancel_reservation action and return the confirmation question."""
        arguments = {"reservation_id": reservation_id, "reason": reason}
        session.set_pending_confirmation(
            PendingConfirmation(
                action=PendingAction(ActionName.CANCEL_RESERVATION, arguments),
                function_context=self._function_context(session),
                summary=f"cancellation of reservation #{reservation_id}",
                summary_data=dict(arguments),
            )
        )
        logger.info(
            f"Cancellation confirmation requested | session={session.session_id} | "
            f"reservation_id={reservation_id}",
            extra={"session_id": session.session_id},
        )
        return await self._localize(
            CANCELLATION_QUESTION.format(reservation_id=reservation_id), session, "confirmation"
        )

    async def process_confirmation(self, message: str, session: Session) -> ConfirmationResult:
        """
        Handle the guest's reply while a confirmation or name clarification is pending.

        Raises:
            NoPendingConfirmationError: Nothing is pending for this session.
            AccessDeniedError: Tenant not entitled to AI features.
        """
        state = session.confirmation_state
        if state is ConfirmationState.NONE:
            raise NoPendingConfirmationError(session.session_id)

        try:
            if state is ConfirmationState.AWAITING_NAME_CLARIFICATION:
                return await self._process_name_clarification(message, session)
            return await self._process_pending_confirmation(message, session)

        except AccessDeniedError:
            raise
        except Exception as e:
            logger.error(
                f"Confirmation processing failed for session {session.session_id}: {e}",
                exc_info=True,
                extra={"session_id": session.session_id},
            )
            session.clear_pending()
            return ConfirmationResult(
                response=await self._localize(GENERIC_ERROR_TEXT, session, "error")
            )

    # ========================================================================
    # AWAITING_CONFIRMATION
    # ========================================================================

    async def _process_pending_confirmation(
        self, message: str, session: Session
    ) -> ConfirmationResult:
        pending = session.pending_confirmation
        status = await self._classify_confirmation(message, pending, session)

        logger.info(
            f"Confirmation reply classified | session={session.session_id} | "
            f"status={status} | action={pending.action.name.value}",
            extra={"session_id": session.session_id},
        )

        if status == "positive":
            if pending.action.name is ActionName.CREATE_RESERVATION and not is_short_confirmation(message):
                corrections = await self._extract_corrections(message, session)
                self._apply_corrections(corrections, pending, session)

            # Cleared before execution so a repeated call cannot execute twice
            session.pending_confirmation = None
            return await self.execute_confirmed_action(pending, session)

        if status == "negative":
            session.clear_pending()
            return ConfirmationResult(
                response=await self._localize(CANCELLED_BY_USER_TEXT, session, "success")
            )

        session.clear_pending()
        return ConfirmationResult(response=message, reprocess=True)

    async def _classify_confirmation(
        self, message: str, pending: PendingConfirmation, session: Session
    ) -> str:
        prompt = CONFIRMATION_PROMPT.format(
            summary=pending.summary,
            message=message,
            language=session.language.value,
        )
        analysis = await self.router.generate_json(
            prompt,
            GenerationOptions(
                context="ConfirmationAgent",
                max_tokens=200,
                temperature=0.0,
                agent=session.current_agent,
            ),
            session.tenant_context,
            schema={"type": "object", "required": ["confirmationStatus"]},
        )
        status = str(analysis.get("confirmationStatus", "unclear")).strip().lower()
        return status if status in CONFIRMATION_STATUSES else "unclear"

    async def _extract_corrections(self, message: str, session: Session) -> dict[str, Any]:
        corrections = await self.router.generate_json(
            MODIFICATION_EXTRACTION_PROMPT.format(message=message),
            GenerationOptions(
                context="confirmation-modification-extraction",
                max_tokens=150,
                temperature=0.0,
            ),
            session.tenant_context,
            schema={"type": "object"},
        )
        return {
            key: value
            for key, value in corrections.items()
            if key in ("guestName", "specialRequests") and isinstance(value, str) and value.strip()
        }

    @staticmethod
    def _apply_corrections(
        corrections: dict[str, Any], pending: PendingConfirmation, session: Session
    ) -> None:
        """Merge corrections into the pending action AND the gathered booking info."""
        if not corrections:
            return

        arguments = pending.action.arguments
        if "guestName" in corrections:
            name = corrections["guestName"].strip()
            arguments["guest_name"] = name
            session.gathering_info["name"] = name
        if "specialRequests" in corrections:
            requests = sanitize_internal_comments(corrections["specialRequests"])
            arguments["special_requests"] = requests or None
            session.gathering_info["comments"] = requests

        logger.info(
            f"Applied confirmation corrections | session={session.session_id} | "
            f"fields={sorted(corrections)}",
            extra={"session_id": session.session_id},
        )

    # ========================================================================
    # AWAITING_NAME_CLARIFICATION
    # ========================================================================

    async def _process_name_clarification(
        self, message: str, session: Session
    ) -> ConfirmationResult:
        pending = session.pending_name_clarification
        now = self._clock()

        timed_out = now - pending.timestamp > self.settings.NAME_CLARIFICATION_TIMEOUT_SECONDS
        capped = pending.attempts >= self.settings.NAME_CLARIFICATION_MAX_ATTEMPTS

        if timed_out or capped:
            logger.warning(
                f"Name clarification unresolved, using name on file | session={session.session_id} "
                f"| timed_out={timed_out} | attempts={pending.attempts}",
                extra={"session_id": session.session_id},
            )
            return await self.retry_booking_with_confirmed_name(pending, pending.db_name, session)

        chosen = await extract_name_choice(
            self.router,
            message,
            pending.db_name,
            pending.request_name,
            session.tenant_context,
            min_confidence=self.settings.NAME_CHOICE_MIN_CONFIDENCE,
        )

        if chosen is None:
            pending.attempts += 1
            pending.timestamp = now
            logger.info(
                f"Name choice still ambiguous | session={session.session_id} | "
                f"attempts={pending.attempts}",
                extra={"session_id": session.session_id},
            )
            text = NAME_CLARIFICATION_REASK.format(
                db_name=pending.db_name, request_name=pending.request_name
            )
            return ConfirmationResult(response=await self._localize(text, session, "question"))

        return await self.retry_booking_with_confirmed_name(pending, chosen, session)

    async def retry_booking_with_confirmed_name(
        self,
        pending: PendingNameClarification,
        confirmed_name: str,
        session: Session,
    ) -> ConfirmationResult:
        """Clear the clarification and re-run the original action with the chosen name."""
        session.pending_name_clarification = None
        session.confirmed_name = confirmed_name
        session.gathering_info["name"] = confirmed_name

        arguments = {**pending.original_action.arguments, "guest_name": confirmed_name}
        context = {**pending.original_context, "name_confirmed": True}

        logger.info(
            f"Retrying {pending.original_action.name.value} with confirmed name | "
            f"session={session.session_id} | name={confirmed_name}",
            extra={"session_id": session.session_id},
        )
        return await self.execute_confirmed_action(
            PendingConfirmation(
                action=PendingAction(pending.original_action.name, arguments),
                function_context=context,
            ),
            session,
        )

    # ========================================================================
    # Execution
    # ========================================================================

    async def execute_confirmed_action(
        self, pending: PendingConfirmation, session: Session
    ) -> ConfirmationResult:
        """Run the confirmed action against the booking backend."""
        action = pending.action
        arguments = dict(action.arguments)
        context = {**self._function_context(session), **pending.function_context}

        if action.name is ActionName.CREATE_RESERVATION:
            if session.confirmed_name:
                arguments["guest_name"] = session.confirmed_name
            result = await self.booking_actions.create_reservation(
                guest_name=arguments.get("guest_name", ""),
                guest_phone=arguments.get("guest_phone", ""),
                date=arguments.get("date", ""),
                time=arguments.get("time", ""),
                guests=arguments.get("guests", 0),
                special_requests=arguments.get("special_requests"),
                context=context,
            )
        else:
            result = await self.booking_actions.cancel_reservation(
                reservation_id=arguments["reservation_id"],
                reason=arguments.get("reason"),
                confirmed=True,
                context=context,
            )

        session.confirmed_name = None
        return await self.process_tool_result(result, action.name, arguments, context, session)

    async def process_tool_result(
        self,
        result: ToolResult,
        action_name: ActionName,
        arguments: dict[str, Any],
        context: dict[str, Any],
        session: Session,
    ) -> ConfirmationResult:
        """Update the session from an action result and build the guest reply."""
        if result.is_success:
            data = result.data or {}
            session.current_agent = "conductor"

            if action_name is ActionName.CANCEL_RESERVATION:
                reservation_id = data.get("reservation_id") or arguments.get("reservation_id")
                session.has_active_reservation = None
                logger.info(
                    f"Reservation cancelled | session={session.session_id} | "
                    f"reservation_id={reservation_id}",
                    extra={"session_id": session.session_id, "event": "booking_cancelled"},
                )
                text = CANCELLATION_DONE_TEXT.format(reservation_id=reservation_id)
                return ConfirmationResult(response=await self._localize(text, session, "success"))

            reservation_id = data.get("reservation_id") or data.get("id")
            details = {
                "name": data.get("guest_name") or arguments.get("guest_name", ""),
                "phone": data.get("guest_phone") or arguments.get("guest_phone", ""),
                "date": data.get("date") or arguments.get("date", ""),
                "time": data.get("time") or arguments.get("time", ""),
                "guests": data.get("guests") or arguments.get("guests", ""),
                "comments": data.get("comments") or arguments.get("special_requests") or "",
            }

            session.has_active_reservation = reservation_id
            # Keep the guest's identity for the next booking, drop the rest
            session.gathering_info = {"name": details["name"], "phone": details["phone"]}

            logger.info(
                f"Reservation created | session={session.session_id} | "
                f"reservation_id={reservation_id}",
                extra={"session_id": session.session_id, "event": "booking_created"},
            )
            response = generate_detailed_confirmation(reservation_id, details, session.language)
            if session.language not in DETAILED_CONFIRMATION_TEMPLATES:
                response = await self._localize(response, session, "success")
            return ConfirmationResult(
                response=response,
                has_booking=True,
                reservation_id=reservation_id,
            )

        if result.needs_name_clarification:
            details = result.error.details
            db_name = details.get("db_name") or details.get("dbName", "")
            request_name = details.get("request_name") or details.get("requestName", "")

            session.set_pending_name_clarification(
                PendingNameClarification(
                    db_name=db_name,
                    request_name=request_name,
                    original_action=PendingAction(action_name, dict(arguments)),
                    original_context=dict(context),
                    attempts=0,
                    timestamp=self._clock(),
                )
            )
            logger.info(
                f"Name clarification needed | session={session.session_id} | "
                f"db_name={db_name} | request_name={request_name}",
                extra={"session_id": session.session_id},
            )
            text = NAME_CLARIFICATION_QUESTION.format(db_name=db_name, request_name=request_name)
            return ConfirmationResult(response=await self._localize(text, session, "question"))

        error_message = result.error.message if result.error else "unknown error"
        logger.error(
            f"{action_name.value} failed | session={session.session_id} | "
            f"code={result.error_code} | error={error_message}",
            extra={"session_id": session.session_id},
        )
        return ConfirmationResult(response=await self._localize(ACTION_FAILED_TEXT, session, "error"))

    @staticmethod
    def _function_context(session: Session) -> dict[str, Any]:
        return {
            "restaurant_id": session.restaurant_id,
            "session_id": session.session_id,
            "language": session.language.value,
            "timezone": session.timezone,
            "source": session.platform,
        }
