"""
Agent services module.

Services:
- confirmation_service: explicit confirmation before booking side effects
- name_clarification: resolves which guest name to book under
- translation_service: localizes fixed service texts
"""

from agent.services.confirmation_service import (
    ConfirmationResult,
    ConfirmationService,
    NoPendingConfirmationError,
    generate_detailed_confirmation,
    sanitize_internal_comments,
)
from agent.services.name_clarification import extract_name_choice, match_name_choice
from agent.services.translation_service import TranslationHelper

__all__ = [
    # Confirmation service
    "ConfirmationResult",
    "ConfirmationService",
    "NoPendingConfirmationError",
    "generate_detailed_confirmation",
    "sanitize_internal_comments",
    # Name clarification
    "extract_name_choice",
    "match_name_choice",
    # Translation
    "TranslationHelper",
]
