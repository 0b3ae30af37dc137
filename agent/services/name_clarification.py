"""
Name choice extraction for the name clarification sub-dialogue.

When a returning guest books under a different name than the one on file,
they are asked which one to use. Their reply is resolved in three steps:
1. Direct mention of one of the two candidate names
2. Multilingual choice words ("1"/"yes"/"new" -> new name,
   "2"/"no"/"old"/"keep" -> name on file)
3. AI extraction constrained to the two candidates, accepted only with
   confidence >= NAME_CHOICE_MIN_CONFIDENCE

Returns None when the reply stays ambiguous; the caller re-asks.
"""

import logging
import re
from typing import Literal

from agent.providers.models import GenerationOptions
from agent.providers.router import ProviderRouter
from agent.state.tenant import TenantContext

logger = logging.getLogger(__name__)

NameChoice = Literal["request", "db"]

# Choice words per language: "request" = the new name, "db" = the name on file
NAME_CHOICE_PATTERNS: dict[str, dict[str, NameChoice]] = {
    "en": {
        "yes": "request", "new": "request", "first": "request", "1": "request",
        "no": "db", "old": "db", "keep": "db", "second": "db", "2": "db",
    },
    "ru": {
        "да": "request", "новое": "request", "новое имя": "request", "первое": "request",
        "нет": "db", "старое": "db", "старое имя": "db", "второе": "db", "оставить": "db",
    },
    "hu": {
        "igen": "request", "új": "request", "első": "request",
        "nem": "db", "régi": "db", "második": "db", "marad": "db",
    },
    "sr": {
        "da": "request", "novo": "request", "prvo": "request",
        "ne": "db", "staro": "db", "drugo": "db", "zadrži": "db",
    },
}

NAME_CHOICE_PROMPT = """A restaurant guest was asked which name to use for their reservation.

Option 1 (new name): "{request_name}"
Option 2 (name on file): "{db_name}"

Guest reply: "{message}"

Decide which of the two names the guest chose. The chosen name MUST be exactly
one of the two options above, or null if the reply does not clearly choose.

Return JSON:
{{"chosen_name": "<exact option or null>", "confidence": <0.0-1.0>, "reasoning": "<short>"}}"""

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)


def _normalize(text: str) -> str:
    return " ".join(_PUNCTUATION_RE.sub(" ", text.lower()).split())


def _contains_phrase(haystack: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", haystack) is not None


def match_name_choice(message: str, db_name: str, request_name: str) -> str | None:
    """
    Deterministic name choice: candidate mention, then choice words.

    Examples:
        >>> match_name_choice("2", "Ivan Petrov", "John Smith")
        'Ivan Petrov'
        >>> match_name_choice("use John Smith please", "Ivan Petrov", "John Smith")
        'John Smith'
    """
    normalized = _normalize(message)
    if not normalized:
        return None

    # Longer name first so "Ivan Petrov" wins over a contained "Ivan"
    candidates = sorted(
        [(db_name, "db"), (request_name, "request")],
        key=lambda item: len(item[0]),
        reverse=True,
    )
    for name, _ in candidates:
        normalized_name = _normalize(name)
        if normalized_name and _contains_phrase(normalized, normalized_name):
            return name

    choices: set[NameChoice] = set()
    for patterns in NAME_CHOICE_PATTERNS.values():
        for phrase, choice in patterns.items():
            if _contains_phrase(normalized, phrase):
                choices.add(choice)

    if len(choices) != 1:
        # Nothing matched, or contradicting words ("no, the new one")
        return None

    return request_name if choices.pop() == "request" else db_name


async def extract_name_choice(
    router: ProviderRouter,
    message: str,
    db_name: str,
    request_name: str,
    tenant_context: TenantContext | None,
    min_confidence: float = 0.8,
) -> str | None:
    """
    Resolve the guest's name choice, using AI only when word matching fails.

    Raises:
        AccessDeniedError: Propagated from the router.
    """
    chosen = match_name_choice(message, db_name, request_name)
    if chosen is not None:
        logger.info(f"Name choice matched directly: {chosen}")
        return chosen

    prompt = NAME_CHOICE_PROMPT.format(db_name=db_name, request_name=request_name, message=message)
    result = await router.generate_json(
        prompt,
        GenerationOptions(context="name-choice-extraction", max_tokens=150, temperature=0.0),
        tenant_context,
        schema={"type": "object"},
    )

    chosen_name = result.get("chosen_name")
    try:
        confidence = float(result.get("confidence") or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0

    if chosen_name not in (db_name, request_name):
        logger.info(f"AI name choice rejected: '{chosen_name}' is not a candidate")
        return None
    if confidence < min_confidence:
        logger.info(f"AI name choice rejected: confidence {confidence:.2f} < {min_confidence}")
        return None

    logger.info(f"AI name choice accepted: {chosen_name} (confidence={confidence:.2f})")
    return chosen_name
