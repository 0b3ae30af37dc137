"""
Session schema - the unit of conversational state threaded through the core.

The session is owned by the conversation layer (MessageHandler + session
store); the provider router and the confirmation service only read and
mutate it during a turn.

Pending sub-protocol:
    A session carries at most one of pending_confirmation and
    pending_name_clarification. Use the set_pending_* / clear_pending helpers
    instead of assigning the fields directly so the two never coexist.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal, TypedDict

from agent.state.tenant import TenantContext


class Language(str, Enum):
    """Languages the assistant can converse in."""

    EN = "en"
    RU = "ru"
    SR = "sr"
    HU = "hu"
    DE = "de"
    FR = "fr"
    ES = "es"
    IT = "it"
    PT = "pt"
    NL = "nl"
    AUTO = "auto"


LANGUAGE_NAMES: dict[Language, str] = {
    Language.EN: "English",
    Language.RU: "Russian",
    Language.SR: "Serbian",
    Language.HU: "Hungarian",
    Language.DE: "German",
    Language.FR: "French",
    Language.ES: "Spanish",
    Language.IT: "Italian",
    Language.PT: "Portuguese",
    Language.NL: "Dutch",
    Language.AUTO: "English",
}


class ActionName(str, Enum):
    """Booking actions that require explicit user confirmation."""

    CREATE_RESERVATION = "create_reservation"
    CANCEL_RESERVATION = "cancel_reservation"


class ConfirmationState(str, Enum):
    """Confirmation sub-protocol state of a session."""

    NONE = "none"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_NAME_CLARIFICATION = "awaiting_name_clarification"


class GatheringInfo(TypedDict, total=False):
    """Booking fields collected progressively during the conversation."""

    name: str
    phone: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    guests: int
    comments: str


@dataclass
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class PendingAction:
    """A completed-but-unconfirmed booking action."""

    name: ActionName
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingConfirmation:
    """
    Action awaiting an explicit yes/no.

    Attributes:
        action: The booking/cancellation to execute on a positive reply
        function_context: Execution context passed through to the action
        summary: Human-readable description used in the intent prompt
        summary_data: Structured details the summary was built from
    """

    action: PendingAction
    function_context: dict[str, Any] = field(default_factory=dict)
    summary: str = "the requested action"
    summary_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PendingNameClarification:
    """
    Name mismatch sub-dialogue state.

    attempts only grows; the record is dropped once resolved, after the
    timeout, or once attempts reaches the cap (falling back to db_name).
    """

    db_name: str
    request_name: str
    original_action: PendingAction
    original_context: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    timestamp: float = 0.0  # epoch seconds


@dataclass
class Session:
    """
    Conversational state for one chat.

    Fields:
        session_id: Transport-level conversation id
        tenant_context: Restaurant entitlement/config (required for AI calls)
        language: Reply language
        platform: "web" | "telegram"
        timezone: Restaurant timezone
        conversation_history: Ordered turns (windowed, see agent.state.helpers)
        gathering_info: Partially filled booking fields
        current_agent: Agent currently owning the dialogue
        pending_confirmation / pending_name_clarification: mutually exclusive
        confirmed_name: Name chosen during clarification, applied on execution
        has_active_reservation: Id of the reservation created in this session
    """

    session_id: str
    tenant_context: TenantContext | None = None
    language: Language = Language.EN
    platform: Literal["web", "telegram"] = "web"
    timezone: str = "Europe/Belgrade"
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    gathering_info: GatheringInfo = field(default_factory=dict)
    current_agent: str = "booking"
    pending_confirmation: PendingConfirmation | None = None
    pending_name_clarification: PendingNameClarification | None = None
    confirmed_name: str | None = None
    has_active_reservation: int | None = None
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def confirmation_state(self) -> ConfirmationState:
        if self.pending_name_clarification is not None:
            return ConfirmationState.AWAITING_NAME_CLARIFICATION
        if self.pending_confirmation is not None:
            return ConfirmationState.AWAITING_CONFIRMATION
        return ConfirmationState.NONE

    @property
    def restaurant_id(self) -> int | None:
        if self.tenant_context is None:
            return None
        return self.tenant_context.restaurant.id

    def set_pending_confirmation(self, pending: PendingConfirmation) -> None:
        self.pending_name_clarification = None
        self.pending_confirmation = pending

    def set_pending_name_clarification(self, pending: PendingNameClarification) -> None:
        self.pending_confirmation = None
        self.pending_name_clarification = pending

    def clear_pending(self) -> None:
        """Drop any pending state and the clarification-chosen name."""
        self.pending_confirmation = None
        self.pending_name_clarification = None
        self.confirmed_name = None
