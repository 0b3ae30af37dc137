"""
Unit tests for agent/services/translation_service.py.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent.providers.errors import AccessDeniedError, AllProvidersFailedError
from agent.services.translation_service import TranslationHelper
from agent.state.schemas import Language

MESSAGE = "Okay, operation cancelled. How else can I help you?"


@pytest.fixture
def mock_router():
    router = MagicMock()
    router.generate_content = AsyncMock()
    return router


@pytest.fixture
def helper(mock_router):
    return TranslationHelper(mock_router)


class TestTranslate:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("language", ["en", "auto", Language.EN, None])
    async def test_passthrough_languages(self, helper, mock_router, tenant_context, language):
        result = await helper.translate(MESSAGE, language, "success", tenant_context)

        assert result == MESSAGE
        mock_router.generate_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_translates_via_router(self, helper, mock_router, tenant_context):
        mock_router.generate_content.return_value = "Хорошо, операция отменена. Чем ещё могу помочь?"

        result = await helper.translate(MESSAGE, "ru", "success", tenant_context)

        assert result == "Хорошо, операция отменена. Чем ещё могу помочь?"
        prompt, options, tenant = mock_router.generate_content.await_args.args
        assert "Translate this restaurant service message to Russian" in prompt
        assert MESSAGE in prompt
        assert options.context == "translation-success"
        assert tenant is tenant_context

    @pytest.mark.asyncio
    async def test_provider_failure_returns_original(self, helper, mock_router, tenant_context):
        mock_router.generate_content.side_effect = AllProvidersFailedError(
            "translation-success", {"openai": "timeout", "anthropic": "overloaded"}
        )

        assert await helper.translate(MESSAGE, "hu", "success", tenant_context) == MESSAGE

    @pytest.mark.asyncio
    async def test_wrong_language_answer_returns_original(self, helper, mock_router, tenant_context):
        mock_router.generate_content.return_value = "Sure! Here is the translation you asked for, thank you."

        assert await helper.translate(MESSAGE, "ru", "success", tenant_context) == MESSAGE

    @pytest.mark.asyncio
    async def test_unsupported_language_returns_original(self, helper, mock_router, tenant_context):
        assert await helper.translate(MESSAGE, "xx", "success", tenant_context) == MESSAGE
        mock_router.generate_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_access_denied_propagates(self, helper, mock_router, tenant_context):
        mock_router.generate_content.side_effect = AccessDeniedError("denied", reason="feature_disabled")

        with pytest.raises(AccessDeniedError):
            await helper.translate(MESSAGE, "sr", "success", tenant_context)
