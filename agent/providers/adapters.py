"""
Provider adapters - one per upstream LLM vendor.

Each adapter translates the uniform ProviderRequest into a vendor call via
LangChain chat models, enforces the per-call timeout, and always returns a
ProviderCallResult (never raises for provider-side problems).

Timeout handling:
    The vendor call is wrapped in asyncio.wait_for(). When the deadline
    passes, the pending call is cancelled, so a late answer is dropped
    together with its side effects instead of completing in the background.

Message formats:
    Requests carry OpenAI-shaped messages. OpenAIAdapter maps them 1:1 onto
    LangChain messages. AnthropicAdapter first rewrites them into Anthropic's
    shape (see to_anthropic_messages): tool results become user turns with a
    tool_result block and assistant tool calls become tool_use blocks.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI

from agent.providers.errors import ProviderFailureError, ProviderTimeoutError
from agent.providers.models import (
    Provider,
    ProviderCallResult,
    ProviderRequest,
    ToolCall,
)
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Anthropic stop reasons -> OpenAI finish reasons
ANTHROPIC_FINISH_REASONS: dict[str, str] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


def extract_error_message(error: BaseException) -> str:
    """Best-effort readable message from SDK / network exceptions."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return f"{type(error).__name__}: {message}"


def extract_text(content: Any) -> str:
    """Return the text of an AIMessage content (plain string or content blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


def _parse_arguments(arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments or "{}")
    except (TypeError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _stringify(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False)


# =============================================================================
# Message / tool format conversion
# =============================================================================


def to_openai_langchain_messages(messages: list[dict[str, Any]]) -> list[BaseMessage]:
    """Map OpenAI-shaped message dicts onto LangChain messages."""
    converted: list[BaseMessage] = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")

        if role == "system":
            converted.append(SystemMessage(content=_stringify(content)))
        elif role == "user":
            converted.append(HumanMessage(content=content if content is not None else ""))
        elif role == "assistant":
            tool_calls = [
                {
                    "id": tc["id"],
                    "name": tc["function"]["name"],
                    "args": _parse_arguments(tc["function"].get("arguments")),
                }
                for tc in msg.get("tool_calls") or []
            ]
            converted.append(AIMessage(content=content or "", tool_calls=tool_calls))
        elif role == "tool":
            converted.append(
                ToolMessage(content=_stringify(content), tool_call_id=msg["tool_call_id"])
            )
        else:
            raise ValueError(f"Unsupported message role '{role}'")
    return converted


def to_anthropic_messages(
    messages: list[dict[str, Any]],
) -> tuple[str | None, list[dict[str, Any]]]:
    """
    Rewrite OpenAI-shaped messages into Anthropic's Messages format.

    - system messages are lifted into a single system prompt
    - tool messages become user turns carrying a tool_result block
    - assistant tool_calls become tool_use blocks
    - consecutive turns with the same role are merged (Anthropic requires
      strict user/assistant alternation)

    Returns:
        (system_prompt, messages)
    """
    system_parts: list[str] = []
    result: list[dict[str, Any]] = []

    def append(role: str, blocks: list[dict[str, Any]]) -> None:
        if not blocks:
            return
        if result and result[-1]["role"] == role:
            result[-1]["content"].extend(blocks)
        else:
            result.append({"role": role, "content": list(blocks)})

    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")

        if role == "system":
            system_parts.append(_stringify(content))

        elif role == "user":
            if isinstance(content, list):
                append("user", list(content))
            else:
                append("user", [{"type": "text", "text": _stringify(content)}])

        elif role == "assistant":
            blocks: list[dict[str, Any]] = []
            text = _stringify(content)
            if text:
                blocks.append({"type": "text", "text": text})
            for tc in msg.get("tool_calls") or []:
                blocks.append({
                    "type": "tool_use",
                    "id": tc["id"],
                    "name": tc["function"]["name"],
                    "input": _parse_arguments(tc["function"].get("arguments")),
                })
            append("assistant", blocks)

        elif role == "tool":
            append("user", [{
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": _stringify(content),
            }])

        else:
            raise ValueError(f"Unsupported message role '{role}'")

    system_prompt = "\n\n".join(part for part in system_parts if part) or None
    return system_prompt, result


def to_anthropic_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert OpenAI function tool specs into Anthropic tool specs."""
    converted = []
    for tool in tools:
        function = tool.get("function", tool)
        converted.append({
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
        })
    return converted


def _anthropic_langchain_messages(
    system_prompt: str | None, messages: list[dict[str, Any]]
) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    if system_prompt:
        converted.append(SystemMessage(content=system_prompt))
    for msg in messages:
        if msg["role"] == "user":
            converted.append(HumanMessage(content=msg["content"]))
        else:
            tool_calls = [
                {"id": block["id"], "name": block["name"], "args": block["input"]}
                for block in msg["content"]
                if block.get("type") == "tool_use"
            ]
            converted.append(AIMessage(content=msg["content"], tool_calls=tool_calls))
    return converted


# =============================================================================
# Adapters
# =============================================================================


class ProviderAdapter(ABC):
    """
    Base adapter: timeout race, error capture, response normalization.

    Subclasses provide the LangChain client and message conversion.
    """

    provider: Provider

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @abstractmethod
    def _get_llm_client(self, request: ProviderRequest) -> BaseChatModel:
        """Build the vendor chat model for this request."""

    @abstractmethod
    def _build_messages(self, request: ProviderRequest) -> list[BaseMessage]:
        """Convert the uniform messages to LangChain messages."""

    def _bind_tools(self, llm: BaseChatModel, request: ProviderRequest) -> Any:
        return llm.bind_tools(request.tools)

    def _finish_reason(self, message: AIMessage) -> str | None:
        return message.response_metadata.get("finish_reason")

    async def _invoke(self, request: ProviderRequest) -> AIMessage:
        llm: Any = self._get_llm_client(request)
        if request.tools:
            llm = self._bind_tools(llm, request)
        return await llm.ainvoke(self._build_messages(request))

    async def call(self, request: ProviderRequest) -> ProviderCallResult:
        """
        Invoke the provider once, racing it against request.timeout_ms.

        Returns:
            ProviderCallResult with success=False on timeout, SDK error,
            or an empty response. Cancellation of the caller propagates.
        """
        start_time = time.time()
        model_id = request.model.model_id

        try:
            result = await self._call(request)
        except ProviderFailureError as e:
            logger.warning(
                f"{self.provider.value} call failed | model={model_id} | error={e.message}",
                extra={"provider": self.provider.value},
            )
            return ProviderCallResult.failure(self.provider, model_id, e.message)

        latency_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"{self.provider.value} call finished | model={model_id} "
            f"| tokens={result.tokens_used} | latency={latency_ms:.0f}ms",
            extra={"provider": self.provider.value},
        )
        return result

    async def _call(self, request: ProviderRequest) -> ProviderCallResult:
        """
        Timed vendor call normalized into a successful result.

        Raises:
            ProviderTimeoutError: the call exceeded request.timeout_ms
            ProviderFailureError: SDK error, empty or unreadable response
        """
        provider = self.provider.value
        try:
            message = await asyncio.wait_for(
                self._invoke(request),
                timeout=request.timeout_ms / 1000,
            )
            return self._to_result(request.model.model_id, message)
        except ProviderFailureError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(provider, request.timeout_ms) from e
        except Exception as e:
            raise ProviderFailureError(provider, extract_error_message(e)) from e

    def _to_result(self, model_id: str, message: AIMessage) -> ProviderCallResult:
        text = extract_text(message.content).strip()
        tool_calls = tuple(
            ToolCall(
                id=tc.get("id") or f"call_{index}",
                name=tc["name"],
                arguments=json.dumps(tc.get("args") or {}, ensure_ascii=False),
            )
            for index, tc in enumerate(getattr(message, "tool_calls", None) or [])
        )

        if not text and not tool_calls:
            raise ProviderFailureError(self.provider.value, f"Empty response from {self.provider.value}")

        usage = message.usage_metadata or {}
        prompt_tokens = int(usage.get("input_tokens", 0))
        completion_tokens = int(usage.get("output_tokens", 0))
        total_tokens = int(usage.get("total_tokens", prompt_tokens + completion_tokens))

        return ProviderCallResult(
            success=True,
            provider=self.provider,
            model_id=model_id,
            content=text or None,
            tokens_used=total_tokens,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason(message),
        )


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions (native tool calling)."""

    provider = Provider.OPENAI

    def _get_llm_client(self, request: ProviderRequest) -> ChatOpenAI:
        kwargs: dict[str, Any] = {}
        if self.settings.OPENAI_BASE_URL:
            kwargs["base_url"] = self.settings.OPENAI_BASE_URL

        return ChatOpenAI(
            model=request.model.model_id,
            api_key=self.settings.OPENAI_API_KEY,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            max_retries=0,  # Fallback routing replaces SDK-level retries
            **kwargs,
        )

    def _build_messages(self, request: ProviderRequest) -> list[BaseMessage]:
        return to_openai_langchain_messages(request.messages)

    def _bind_tools(self, llm: BaseChatModel, request: ProviderRequest) -> Any:
        if request.tool_choice is not None:
            return llm.bind_tools(request.tools, tool_choice=request.tool_choice)
        return llm.bind_tools(request.tools)


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Messages API."""

    provider = Provider.ANTHROPIC

    def _get_llm_client(self, request: ProviderRequest) -> ChatAnthropic:
        return ChatAnthropic(
            model=request.model.model_id,
            api_key=self.settings.ANTHROPIC_API_KEY,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            max_retries=0,
        )

    def _build_messages(self, request: ProviderRequest) -> list[BaseMessage]:
        system_prompt, messages = to_anthropic_messages(request.messages)
        return _anthropic_langchain_messages(system_prompt, messages)

    def _bind_tools(self, llm: BaseChatModel, request: ProviderRequest) -> Any:
        tools = to_anthropic_tools(request.tools or [])
        tool_choice = _anthropic_tool_choice(request.tool_choice)
        if tool_choice is not None:
            return llm.bind_tools(tools, tool_choice=tool_choice)
        return llm.bind_tools(tools)

    def _finish_reason(self, message: AIMessage) -> str | None:
        stop_reason = message.response_metadata.get("stop_reason")
        return ANTHROPIC_FINISH_REASONS.get(stop_reason, stop_reason)


def _anthropic_tool_choice(
    tool_choice: str | dict[str, Any] | None,
) -> str | dict[str, str] | None:
    """Map an OpenAI tool_choice onto ChatAnthropic's bind_tools argument."""
    if tool_choice is None:
        return None
    if tool_choice == "none":
        return {"type": "none"}
    if tool_choice == "required":
        return "any"
    if isinstance(tool_choice, dict):
        return tool_choice.get("function", {}).get("name")
    return tool_choice
