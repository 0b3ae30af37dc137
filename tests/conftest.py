"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
Provider adapters are replaced by mocks whose `call` returns scripted
ProviderCallResults, so no test ever reaches a real LLM API.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Must be set BEFORE any import of shared.config
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["ANTHROPIC_API_KEY"] = "sk-ant-test"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["USAGE_STORE_BACKEND"] = "memory"

from agent.providers.models import Provider, ProviderCallResult  # noqa: E402
from agent.providers.router import ProviderRouter  # noqa: E402
from agent.providers.usage import InMemoryUsageStore, TenantUsageTracker  # noqa: E402
from agent.state.schemas import Session  # noqa: E402
from agent.state.tenant import RestaurantConfig, TenantContext, TenantFeatures  # noqa: E402
from shared.circuit_breaker import create_provider_breakers  # noqa: E402
from shared.config import Settings  # noqa: E402


class FakeClock:
    """Manually advanced clock for breaker and timeout tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    """Settings with test keys and default thresholds."""
    return Settings(
        OPENAI_API_KEY="sk-test",
        ANTHROPIC_API_KEY="sk-ant-test",
        DEFAULT_PRIMARY_MODEL="gpt-4o-mini",
        DEFAULT_FALLBACK_MODEL="haiku",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tenant_context():
    """Active tenant with AI chat enabled and no model preferences."""
    return TenantContext(
        restaurant=RestaurantConfig(id=42, name="Demo Bistro", tenant_plan="pro", tenant_status="active"),
        features=TenantFeatures(ai_chat=True),
    )


@pytest.fixture
def session(tenant_context):
    return Session(session_id="session-1", tenant_context=tenant_context)


@pytest.fixture
def ok_result():
    """Factory for successful ProviderCallResults."""
    def create(provider: Provider, content: str = "Hello!", tokens: int = 10, **kwargs):
        return ProviderCallResult(
            success=True,
            provider=provider,
            model_id=f"{provider.value}-model",
            content=content,
            tokens_used=tokens,
            **kwargs,
        )
    return create


@pytest.fixture
def fail_result():
    """Factory for failed ProviderCallResults."""
    def create(provider: Provider, message: str = "boom"):
        return ProviderCallResult.failure(provider, f"{provider.value}-model", message)
    return create


@pytest.fixture
def mock_adapters():
    """One mock adapter per provider; set `.call.side_effect` / `.return_value` per test."""
    adapters = {}
    for provider in Provider:
        adapter = MagicMock()
        adapter.provider = provider
        adapter.call = AsyncMock()
        adapters[provider] = adapter
    return adapters


@pytest.fixture
def usage_tracker():
    return TenantUsageTracker(InMemoryUsageStore())


@pytest.fixture
def router(settings, mock_adapters, usage_tracker, clock):
    """ProviderRouter wired to mock adapters and fresh breakers."""
    breakers = create_provider_breakers(
        [provider.value for provider in Provider],
        trip_threshold=settings.BREAKER_TRIP_THRESHOLD,
        reset_timeout=settings.BREAKER_RESET_TIMEOUT_SECONDS,
        clock=clock,
    )
    return ProviderRouter(
        settings=settings,
        adapters=mock_adapters,
        breakers=breakers,
        usage_tracker=usage_tracker,
    )
