"""
Booking action contract used by the confirmation flow.

- BookingActions: protocol implemented by the reservation backend
- ToolResult / ToolError / ToolStatus: uniform action result envelope
- booking_tool_specs: OpenAI-shaped tool definitions for chat completions
"""

from agent.tools.booking_tools import (
    NAME_CLARIFICATION_NEEDED,
    BookingActions,
    CancelReservationSchema,
    CreateReservationSchema,
    ToolError,
    ToolResult,
    ToolStatus,
    booking_tool_specs,
)

__all__ = [
    "NAME_CLARIFICATION_NEEDED",
    "BookingActions",
    "CancelReservationSchema",
    "CreateReservationSchema",
    "ToolError",
    "ToolResult",
    "ToolStatus",
    "booking_tool_specs",
]
