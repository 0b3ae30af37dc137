"""
Unit tests for service wiring (agent/main.py) and JSON logging.
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent.main import build_message_handler, shutdown
from agent.providers.adapters import AnthropicAdapter, OpenAIAdapter
from agent.providers.models import Provider
from agent.providers.usage import InMemoryUsageStore
from agent.routing.message_handler import MessageHandler
from shared.logging_config import JSONFormatter, configure_logging


class TestBuildMessageHandler:

    def test_wires_components(self, settings):
        booking_actions = MagicMock()
        agent = MagicMock()

        with patch("agent.main.configure_logging") as mock_configure:
            handler = build_message_handler(booking_actions, agent, settings=settings)

        mock_configure.assert_called_once()
        assert isinstance(handler, MessageHandler)
        assert handler.conversation_agent is agent

        service = handler.confirmation_service
        assert service.booking_actions is booking_actions
        assert service.translator.router is service.router
        assert isinstance(service.router.adapters[Provider.OPENAI], OpenAIAdapter)
        assert isinstance(service.router.adapters[Provider.ANTHROPIC], AnthropicAdapter)
        assert isinstance(service.router.usage_tracker.store, InMemoryUsageStore)

    @pytest.mark.asyncio
    async def test_shutdown_closes_redis_only_for_redis_backend(self, settings):
        with patch("agent.main.close_redis_client", new=AsyncMock()) as mock_close:
            await shutdown(settings)
            mock_close.assert_not_awaited()

            await shutdown(settings.model_copy(update={"USAGE_STORE_BACKEND": "redis"}))
            mock_close.assert_awaited_once()


class TestJSONFormatter:

    def test_extra_fields_included(self):
        record = logging.LogRecord(
            name="agent.providers.router",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Provider fallback | context=%s",
            args=("ConfirmationAgent",),
            exc_info=None,
        )
        record.tenant_id = 42
        record.event = "provider_fallback"

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "agent.providers.router"
        assert payload["message"] == "Provider fallback | context=ConfirmationAgent"
        assert payload["tenant_id"] == 42
        assert payload["event"] == "provider_fallback"
        assert "session_id" not in payload

    def test_non_ascii_kept(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Бронирование", (), None)

        assert "Бронирование" in JSONFormatter().format(record)


class TestConfigureLogging:

    def test_installs_single_json_handler(self):
        root_logger = logging.getLogger()
        saved_handlers, saved_level = root_logger.handlers[:], root_logger.level
        try:
            configure_logging("debug")

            assert root_logger.level == logging.DEBUG
            assert len(root_logger.handlers) == 1
            assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root_logger.handlers[:] = saved_handlers
            root_logger.setLevel(saved_level)
