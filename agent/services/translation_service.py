"""
Translation of fixed service messages into the session language.

Confirmation questions, acknowledgements and error texts are authored in
English. TranslationHelper asks the router to translate them; any failure
returns the English text unchanged so the user still gets an answer.
AccessDeniedError is the only exception that propagates.
"""

import logging

from agent.providers.errors import AccessDeniedError
from agent.providers.language import validate_language
from agent.providers.models import GenerationOptions
from agent.providers.router import ProviderRouter
from agent.state.schemas import LANGUAGE_NAMES, Language
from agent.state.tenant import TenantContext

logger = logging.getLogger(__name__)

TRANSLATION_PROMPT = """Translate this restaurant service message to {language_name}:

{message}

Context: {context} message for restaurant booking.
Keep the same tone, emojis, and professional style.
Return only the translation, no explanations."""

TRANSLATION_MAX_TOKENS = 500
TRANSLATION_TEMPERATURE = 0.3

# Targets that need no translation
PASSTHROUGH_LANGUAGES = frozenset({Language.EN, Language.AUTO})


class TranslationHelper:
    """Translate fixed service texts through the provider router."""

    def __init__(self, router: ProviderRouter):
        self.router = router

    async def translate(
        self,
        message: str,
        language: Language | str | None,
        context: str = "general",
        tenant_context: TenantContext | None = None,
    ) -> str:
        """
        Return `message` in `language`.

        No-op for English, "auto" or unset languages. On any provider failure
        or an answer that is not in the target language, the original
        English text is returned.

        Raises:
            AccessDeniedError: Tenant not entitled to AI features.
        """
        if not language:
            return message

        try:
            target = Language(language)
        except ValueError:
            logger.warning(f"Unsupported translation language '{language}', keeping original")
            return message

        if target in PASSTHROUGH_LANGUAGES:
            return message

        prompt = TRANSLATION_PROMPT.format(
            language_name=LANGUAGE_NAMES[target],
            message=message,
            context=context,
        )
        options = GenerationOptions(
            context=f"translation-{context}",
            max_tokens=TRANSLATION_MAX_TOKENS,
            temperature=TRANSLATION_TEMPERATURE,
        )

        try:
            translated = (await self.router.generate_content(prompt, options, tenant_context)).strip()
        except AccessDeniedError:
            raise
        except Exception as e:
            logger.error(
                f"Translation failed for [{context}] -> {target.value}: {e}",
                exc_info=True,
                extra={"context": f"translation-{context}"},
            )
            return message

        if not translated:
            return message

        if not validate_language(translated, target).valid:
            logger.warning(
                f"Translation for [{context}] not in {target.value}, keeping original",
                extra={"context": f"translation-{context}", "event": "language_mismatch"},
            )
            return message

        return translated
