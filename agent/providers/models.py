"""
Provider data models.

This module defines the uniform request/response contract shared by the
router and the provider adapters:
- Provider / ModelTier: closed enums resolved once from tenant configuration
- ModelSpec: resolved model (provider, tier, vendor model id)
- GenerationOptions: per-call overrides merged over tenant defaults
- ProviderRequest: uniform request handed to an adapter
- ProviderCallResult: uniform result of one adapter invocation
- ToolCall / ChatCompletion: OpenAI-shaped tool-calling response returned to
  callers regardless of which provider answered
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provider(str, Enum):
    """Upstream LLM vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @property
    def other(self) -> "Provider":
        return Provider.ANTHROPIC if self is Provider.OPENAI else Provider.OPENAI


class ModelTier(str, Enum):
    """Capability tier, used to pick an equivalent model on the other provider."""

    FAST = "fast"
    STANDARD = "standard"


@dataclass(frozen=True)
class ModelSpec:
    """A model name resolved to its provider family and vendor id."""

    provider: Provider
    tier: ModelTier
    model_id: str


# Short names accepted in tenant configuration -> resolved spec
MODEL_ALIASES: dict[str, ModelSpec] = {
    "gpt-4o-mini": ModelSpec(Provider.OPENAI, ModelTier.FAST, "gpt-4o-mini"),
    "gpt-3.5-turbo": ModelSpec(Provider.OPENAI, ModelTier.FAST, "gpt-3.5-turbo"),
    "gpt-4o": ModelSpec(Provider.OPENAI, ModelTier.STANDARD, "gpt-4o"),
    "gpt-4": ModelSpec(Provider.OPENAI, ModelTier.STANDARD, "gpt-4o"),
    "haiku": ModelSpec(Provider.ANTHROPIC, ModelTier.FAST, "claude-3-haiku-20240307"),
    "sonnet": ModelSpec(Provider.ANTHROPIC, ModelTier.STANDARD, "claude-3-5-sonnet-20240620"),
}

# Equivalent model on each provider, per tier
TIER_EQUIVALENTS: dict[tuple[Provider, ModelTier], ModelSpec] = {
    (Provider.OPENAI, ModelTier.FAST): MODEL_ALIASES["gpt-4o-mini"],
    (Provider.OPENAI, ModelTier.STANDARD): MODEL_ALIASES["gpt-4o"],
    (Provider.ANTHROPIC, ModelTier.FAST): MODEL_ALIASES["haiku"],
    (Provider.ANTHROPIC, ModelTier.STANDARD): MODEL_ALIASES["sonnet"],
}


def resolve_model(name: str | ModelSpec) -> ModelSpec:
    """
    Resolve a configured model name into a ModelSpec.

    Accepts the short aliases above plus full vendor ids
    ("claude-3-5-haiku-latest", "gpt-4.1-mini", ...).

    Raises:
        ValueError: If the name cannot be attributed to a known provider.

    Examples:
        >>> resolve_model("haiku").provider
        <Provider.ANTHROPIC: 'anthropic'>
        >>> resolve_model("gpt-4o").tier
        <ModelTier.STANDARD: 'standard'>
    """
    if isinstance(name, ModelSpec):
        return name

    key = name.strip().lower()
    if key in MODEL_ALIASES:
        return MODEL_ALIASES[key]

    if key.startswith("claude"):
        tier = ModelTier.FAST if "haiku" in key else ModelTier.STANDARD
        return ModelSpec(Provider.ANTHROPIC, tier, name.strip())

    if key.startswith(("gpt-", "o1", "o3", "o4")):
        tier = ModelTier.FAST if "mini" in key or "3.5" in key else ModelTier.STANDARD
        return ModelSpec(Provider.OPENAI, tier, name.strip())

    raise ValueError(f"Unknown AI model '{name}'")


def equivalent_on(provider: Provider, spec: ModelSpec) -> ModelSpec:
    """Return the model of the same tier on the given provider."""
    if spec.provider is provider:
        return spec
    return TIER_EQUIVALENTS[(provider, spec.tier)]


@dataclass
class GenerationOptions:
    """
    Per-call overrides. Unset fields fall back to tenant, then settings defaults.

    Attributes:
        model: Explicit model (name or resolved spec)
        max_tokens: Output token limit
        temperature: Sampling temperature
        timeout_ms: Wall-clock budget per provider call
        context: Logging context and safe-default key (e.g. "ConfirmationAgent")
        language: Target language of the reply, for output validation
        agent: Agent the reply is for, selects the canned fallback string
    """

    model: str | ModelSpec | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    timeout_ms: int | None = None
    context: str = "unknown"
    language: str | None = None
    agent: str = "booking"


@dataclass
class ToolCall:
    """OpenAI-shaped tool call (arguments are a JSON string)."""

    id: str
    name: str
    arguments: str = "{}"
    type: str = "function"

    @property
    def parsed_arguments(self) -> dict[str, Any]:
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ProviderRequest:
    """
    Uniform request handed to a provider adapter.

    messages use the OpenAI chat shape ({"role", "content", "tool_calls",
    "tool_call_id"}); adapters convert to their vendor format.
    """

    model: ModelSpec
    messages: list[dict[str, Any]]
    max_tokens: int
    temperature: float
    timeout_ms: int
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None


@dataclass(frozen=True)
class ProviderCallResult:
    """Result of one adapter invocation. Immutable, consumed by the router."""

    success: bool
    provider: Provider
    model_id: str
    content: str | None = None
    error_message: str | None = None
    tokens_used: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None

    @classmethod
    def failure(cls, provider: Provider, model_id: str, error_message: str) -> "ProviderCallResult":
        return cls(success=False, provider=provider, model_id=model_id, error_message=error_message)


@dataclass
class ChatCompletionMessage:
    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ChatChoice:
    index: int
    message: ChatCompletionMessage
    finish_reason: str | None = None


@dataclass
class ChatCompletion:
    """
    Provider-agnostic chat completion in the OpenAI response shape.

    Callers read choices[0].message.content / .tool_calls regardless of
    which provider produced the answer; `provider` records who did.
    """

    id: str
    model: str
    provider: Provider
    choices: list[ChatChoice]
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def message(self) -> ChatCompletionMessage:
        return self.choices[0].message

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": "chat.completion",
            "model": self.model,
            "provider": self.provider.value,
            "choices": [
                {
                    "index": choice.index,
                    "message": {
                        "role": choice.message.role,
                        "content": choice.message.content,
                        "tool_calls": [tc.to_dict() for tc in choice.message.tool_calls] or None,
                    },
                    "finish_reason": choice.finish_reason,
                }
                for choice in self.choices
            ],
            "usage": dict(self.usage),
        }
