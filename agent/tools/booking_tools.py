"""
Booking action contract.

The confirmation flow never talks to reservation storage directly: it calls
a BookingActions implementation (HTTP client, DB service, test double) and
interprets the ToolResult it returns.

ToolResult envelope:
    {"tool_status": "SUCCESS" | "ERROR" | "FAILURE",
     "data": {...} | None,
     "error": {"type", "message", "code", "details"} | None}

A create_reservation call for a returning guest whose requested name differs
from the name on file fails with error.code == NAME_CLARIFICATION_NEEDED and
error.details == {"db_name": ..., "request_name": ...}. Passing
context["name_confirmed"] = True skips that check.
"""

import logging
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

NAME_CLARIFICATION_NEEDED = "NAME_CLARIFICATION_NEEDED"


class ToolStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    FAILURE = "FAILURE"


class ToolError(BaseModel):
    """Structured error of a failed booking action."""

    type: str = "BUSINESS_RULE"
    message: str
    code: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of a booking action."""

    tool_status: ToolStatus
    data: dict[str, Any] | None = None
    error: ToolError | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_success(self) -> bool:
        return self.tool_status is ToolStatus.SUCCESS

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    @property
    def needs_name_clarification(self) -> bool:
        return not self.is_success and self.error_code == NAME_CLARIFICATION_NEEDED

    @classmethod
    def success(cls, data: dict[str, Any] | None = None) -> "ToolResult":
        return cls(tool_status=ToolStatus.SUCCESS, data=data or {})

    @classmethod
    def failure(
        cls,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        error_type: str = "BUSINESS_RULE",
    ) -> "ToolResult":
        return cls(
            tool_status=ToolStatus.FAILURE,
            error=ToolError(type=error_type, message=message, code=code, details=details or {}),
        )


class BookingActions(Protocol):
    """Outbound reservation operations executed after explicit confirmation."""

    async def create_reservation(
        self,
        guest_name: str,
        guest_phone: str,
        date: str,
        time: str,
        guests: int,
        special_requests: str | None,
        context: dict[str, Any],
    ) -> ToolResult: ...

    async def cancel_reservation(
        self,
        reservation_id: int,
        reason: str | None,
        confirmed: bool,
        context: dict[str, Any],
    ) -> ToolResult: ...


# ============================================================================
# Tool schemas (OpenAI function format, for generate_chat_completion)
# ============================================================================


class CreateReservationSchema(BaseModel):
    """Parameters of create_reservation."""

    guest_name: str = Field(description="Guest's full name for the reservation")
    guest_phone: str = Field(description="Guest's phone number in international format")
    date: str = Field(description="Reservation date (YYYY-MM-DD)")
    time: str = Field(description="Reservation time (HH:MM, 24h)")
    guests: int = Field(ge=1, description="Number of guests")
    special_requests: str | None = Field(
        default=None,
        description="Special requests (allergies, occasion, seating preferences)"
    )


class CancelReservationSchema(BaseModel):
    """Parameters of cancel_reservation."""

    reservation_id: int = Field(description="Id of the reservation to cancel")
    reason: str | None = Field(default=None, description="Cancellation reason, if given")


def _tool_spec(name: str, description: str, schema: type[BaseModel]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": schema.model_json_schema(),
        },
    }


def booking_tool_specs() -> list[dict[str, Any]]:
    """OpenAI-shaped tool definitions for the booking actions."""
    return [
        _tool_spec(
            "create_reservation",
            "Create a table reservation once every booking detail is known.",
            CreateReservationSchema,
        ),
        _tool_spec(
            "cancel_reservation",
            "Cancel an existing reservation by id.",
            CancelReservationSchema,
        ),
    ]
