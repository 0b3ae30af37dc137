"""
Unit tests for provider data models and tenant configuration.

Tests coverage:
- Model name resolution and cross-provider equivalents
- ToolCall argument parsing
- ChatCompletion serialization
- RestaurantConfig model resolution
"""

import pytest
from pydantic import ValidationError

from agent.providers.models import (
    ChatChoice,
    ChatCompletion,
    ChatCompletionMessage,
    ModelTier,
    Provider,
    ToolCall,
    equivalent_on,
    resolve_model,
)
from agent.state.tenant import RestaurantConfig


class TestResolveModel:

    @pytest.mark.parametrize(
        "name, provider, tier, model_id",
        [
            ("gpt-4o-mini", Provider.OPENAI, ModelTier.FAST, "gpt-4o-mini"),
            ("GPT-4", Provider.OPENAI, ModelTier.STANDARD, "gpt-4o"),
            ("haiku", Provider.ANTHROPIC, ModelTier.FAST, "claude-3-haiku-20240307"),
            ("sonnet", Provider.ANTHROPIC, ModelTier.STANDARD, "claude-3-5-sonnet-20240620"),
            ("claude-3-5-haiku-latest", Provider.ANTHROPIC, ModelTier.FAST, "claude-3-5-haiku-latest"),
            ("gpt-4.1-mini", Provider.OPENAI, ModelTier.FAST, "gpt-4.1-mini"),
        ],
    )
    def test_known_names(self, name, provider, tier, model_id):
        spec = resolve_model(name)

        assert spec.provider is provider
        assert spec.tier is tier
        assert spec.model_id == model_id

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown AI model"):
            resolve_model("llama-3-70b")

    def test_spec_passthrough(self):
        spec = resolve_model("haiku")

        assert resolve_model(spec) is spec


class TestEquivalentOn:

    def test_same_provider_unchanged(self):
        spec = resolve_model("gpt-4o")

        assert equivalent_on(Provider.OPENAI, spec) is spec

    def test_same_tier_on_other_provider(self):
        assert equivalent_on(Provider.ANTHROPIC, resolve_model("gpt-4o-mini")).model_id == "claude-3-haiku-20240307"
        assert equivalent_on(Provider.OPENAI, resolve_model("sonnet")).model_id == "gpt-4o"

    def test_other(self):
        assert Provider.OPENAI.other is Provider.ANTHROPIC
        assert Provider.ANTHROPIC.other is Provider.OPENAI


class TestToolCall:

    def test_parsed_arguments(self):
        assert ToolCall(id="c1", name="x", arguments='{"guests": 4}').parsed_arguments == {"guests": 4}

    @pytest.mark.parametrize("arguments", ["not json", "[1, 2]", ""])
    def test_unparseable_arguments(self, arguments):
        assert ToolCall(id="c1", name="x", arguments=arguments).parsed_arguments == {}


class TestChatCompletion:

    def test_to_dict_openai_shape(self):
        completion = ChatCompletion(
            id="chatcmpl-1",
            model="claude-3-haiku-20240307",
            provider=Provider.ANTHROPIC,
            choices=[ChatChoice(
                index=0,
                message=ChatCompletionMessage(
                    content=None,
                    tool_calls=[ToolCall(id="toolu_1", name="check_availability", arguments="{}")],
                ),
                finish_reason="tool_calls",
            )],
            usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        )

        data = completion.to_dict()

        assert data["object"] == "chat.completion"
        assert data["provider"] == "anthropic"
        assert data["choices"][0]["finish_reason"] == "tool_calls"
        assert data["choices"][0]["message"]["tool_calls"] == [{
            "id": "toolu_1",
            "type": "function",
            "function": {"name": "check_availability", "arguments": "{}"},
        }]
        assert completion.message.tool_calls[0].name == "check_availability"

    def test_no_tool_calls_serialized_as_none(self):
        completion = ChatCompletion(
            id="chatcmpl-2",
            model="gpt-4o-mini",
            provider=Provider.OPENAI,
            choices=[ChatChoice(index=0, message=ChatCompletionMessage(content="Hi"), finish_reason="stop")],
        )

        assert completion.to_dict()["choices"][0]["message"]["tool_calls"] is None


class TestRestaurantConfig:

    def test_model_names_resolved(self):
        config = RestaurantConfig(
            id=1, tenant_status="active", primary_ai_model="sonnet", fallback_ai_model="gpt-4o"
        )

        assert config.primary_ai_model.provider is Provider.ANTHROPIC
        assert config.fallback_ai_model.model_id == "gpt-4o"

    def test_empty_model_name_is_unset(self):
        assert RestaurantConfig(id=1, tenant_status="active", primary_ai_model="").primary_ai_model is None

    def test_unknown_model_rejected(self):
        with pytest.raises(ValidationError):
            RestaurantConfig(id=1, tenant_status="active", primary_ai_model="llama-3")

    @pytest.mark.parametrize(
        "status, active",
        [("active", True), ("trial", True), ("suspended", False), ("disabled", False)],
    )
    def test_is_active(self, status, active):
        assert RestaurantConfig(id=1, tenant_status=status).is_active is active
