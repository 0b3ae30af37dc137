"""
ProviderRouter - tenant-aware AI routing with automatic fallback.

Every public call follows the same path:
1. validate_tenant_access() - no tenant, AI feature off, or inactive tenant
   raises AccessDeniedError before any network call
2. Resolve model / temperature / max tokens / timeout (explicit options over
   tenant defaults over settings)
3. Try the primary provider through its circuit breaker, then the secondary
   provider through its own breaker
4. Record tenant usage (failed calls count with zero tokens)

Routing:
    START -> primary
    primary ok -> return
    primary fail -> secondary
    secondary ok -> return (fallback event logged)
    secondary fail -> AllProvidersFailedError (both error messages)

A tripped breaker is an immediate failure without a network call. Primary is
always attempted before secondary, never concurrently.

Usage:
    router = create_router()
    text = await router.generate_content(prompt, GenerationOptions(context="Booking"), tenant)
    data = await router.generate_json(prompt, GenerationOptions(context="ConfirmationAgent"), tenant)
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from agent.providers.adapters import AnthropicAdapter, OpenAIAdapter, ProviderAdapter
from agent.providers.errors import (
    AccessDeniedError,
    AllProvidersFailedError,
    JSONParseError,
    ProviderFailureError,
)
from agent.providers.json_output import (
    get_json_safe_default,
    parse_json_response,
    validate_json_shape,
)
from agent.providers.language import enforce_language
from agent.providers.models import (
    TIER_EQUIVALENTS,
    ChatChoice,
    ChatCompletion,
    ChatCompletionMessage,
    GenerationOptions,
    ModelSpec,
    ModelTier,
    Provider,
    ProviderCallResult,
    ProviderRequest,
    equivalent_on,
    resolve_model,
)
from agent.providers.usage import (
    InMemoryUsageStore,
    RedisUsageStore,
    TenantAIUsage,
    TenantUsageTracker,
)
from agent.state.tenant import TenantContext
from shared.circuit_breaker import (
    ProviderCircuitBreaker,
    create_provider_breakers,
    get_breaker_status,
)
from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "Return valid JSON only, no additional text or formatting."
JSON_RETRY_INSTRUCTION = "IMPORTANT: Return valid JSON only. Previous attempt failed with: {error}"

HEALTH_CHECK_PROMPT = "Say 'OK'"
HEALTH_CHECK_MAX_TOKENS = 10
HEALTH_CHECK_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class ResolvedOptions:
    """Effective call parameters after merging options, tenant and settings."""

    primary: ModelSpec
    secondary: ModelSpec
    temperature: float
    max_tokens: int
    timeout_ms: int


class ProviderRouter:
    """
    Routes generation requests across the OpenAI and Anthropic adapters.

    Adapters, breakers and the usage tracker are injected so tests (and
    multiple routers in one process) never share hidden global state.

    Args:
        settings: Application settings (defaults to get_settings())
        adapters: {Provider: ProviderAdapter}
        breakers: {provider name: ProviderCircuitBreaker}
        usage_tracker: Tenant usage accounting
    """

    def __init__(
        self,
        settings: Settings | None = None,
        adapters: Mapping[Provider, ProviderAdapter] | None = None,
        breakers: Mapping[str, ProviderCircuitBreaker] | None = None,
        usage_tracker: TenantUsageTracker | None = None,
    ):
        self.settings = settings or get_settings()
        self.adapters = dict(adapters) if adapters is not None else {
            Provider.OPENAI: OpenAIAdapter(self.settings),
            Provider.ANTHROPIC: AnthropicAdapter(self.settings),
        }
        self.breakers = dict(breakers) if breakers is not None else create_provider_breakers(
            [provider.value for provider in Provider],
            trip_threshold=self.settings.BREAKER_TRIP_THRESHOLD,
            reset_timeout=self.settings.BREAKER_RESET_TIMEOUT_SECONDS,
        )
        self.usage_tracker = usage_tracker or TenantUsageTracker(InMemoryUsageStore())

    # =========================================================================
    # Tenant validation and option resolution
    # =========================================================================

    def validate_tenant_access(self, tenant_context: TenantContext | None) -> TenantContext:
        """
        Ensure the tenant may use AI features.

        Raises:
            AccessDeniedError: missing context, ai_chat disabled, or status
                outside {active, trial}
        """
        if tenant_context is None:
            raise AccessDeniedError(
                "Tenant context required for AI access", reason="missing_tenant"
            )

        tenant_id = tenant_context.tenant_id
        if not tenant_context.features.ai_chat:
            raise AccessDeniedError(
                "AI features not available on current plan",
                reason="feature_disabled",
                tenant_id=tenant_id,
            )
        if not tenant_context.restaurant.is_active:
            raise AccessDeniedError(
                f"Tenant status '{tenant_context.restaurant.tenant_status}' does not allow AI access",
                reason="inactive",
                tenant_id=tenant_id,
            )
        return tenant_context

    def _resolve_options(
        self, options: GenerationOptions, tenant_context: TenantContext
    ) -> ResolvedOptions:
        restaurant = tenant_context.restaurant

        if options.model is not None:
            primary = resolve_model(options.model)
        else:
            primary = restaurant.primary_ai_model or resolve_model(self.settings.DEFAULT_PRIMARY_MODEL)

        fallback = restaurant.fallback_ai_model or resolve_model(self.settings.DEFAULT_FALLBACK_MODEL)
        if fallback.provider is primary.provider:
            fallback = equivalent_on(primary.provider.other, primary)

        if options.temperature is not None:
            temperature = options.temperature
        elif restaurant.ai_temperature is not None:
            temperature = restaurant.ai_temperature
        else:
            temperature = self.settings.DEFAULT_TEMPERATURE

        return ResolvedOptions(
            primary=primary,
            secondary=fallback,
            temperature=temperature,
            max_tokens=options.max_tokens or self.settings.DEFAULT_MAX_TOKENS,
            timeout_ms=options.timeout_ms or self.settings.PROVIDER_TIMEOUT_MS,
        )

    # =========================================================================
    # Routing core
    # =========================================================================

    async def _try_provider(self, request: ProviderRequest, context: str) -> ProviderCallResult:
        """One attempt on one provider, gated and accounted by its breaker."""
        provider = request.model.provider
        breaker = self.breakers[provider.value]

        if breaker.is_tripped():
            logger.warning(
                f"Circuit breaker open, skipping {provider.value} for [{context}]",
                extra={"provider": provider.value, "context": context},
            )
            return ProviderCallResult.failure(
                provider, request.model.model_id, f"{provider.value} circuit breaker open"
            )

        try:
            result = await self.adapters[provider].call(request)
        except BaseException as e:
            # A cancelled or broken call counts as a failed call
            breaker.record_failure(
                ProviderFailureError(provider.value, f"call aborted: {type(e).__name__}")
            )
            raise

        if result.success:
            breaker.record_success()
        else:
            breaker.record_failure(ProviderFailureError(provider.value, result.error_message or ""))
            logger.warning(
                f"{provider.value} failed for [{context}] | model={request.model.model_id} "
                f"| error={result.error_message}",
                extra={"provider": provider.value, "context": context},
            )
        return result

    async def _route(
        self,
        resolved: ResolvedOptions,
        messages: list[dict[str, Any]],
        context: str,
        tenant_id: int,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
    ) -> ProviderCallResult:
        """
        Primary then secondary. Records usage once per routed call.

        Raises:
            AllProvidersFailedError: Both providers failed.
        """
        errors: dict[str, str] = {}
        start_time = time.time()

        for index, spec in enumerate((resolved.primary, resolved.secondary)):
            request = ProviderRequest(
                model=spec,
                messages=messages,
                max_tokens=resolved.max_tokens,
                temperature=resolved.temperature,
                timeout_ms=resolved.timeout_ms,
                tools=tools,
                tool_choice=tool_choice,
            )
            result = await self._try_provider(request, context)

            if result.success:
                if index > 0:
                    logger.warning(
                        f"Fallback to {spec.provider.value} succeeded for [{context}] | "
                        f"primary={resolved.primary.provider.value} | "
                        f"primary_error={errors.get(resolved.primary.provider.value)}",
                        extra={
                            "provider": spec.provider.value,
                            "context": context,
                            "tenant_id": tenant_id,
                            "event": "provider_fallback",
                        },
                    )
                await self._record_usage(tenant_id, result.tokens_used)
                logger.info(
                    f"AI call for [{context}] succeeded | provider={spec.provider.value} "
                    f"| model={spec.model_id} | tokens={result.tokens_used} "
                    f"| latency={(time.time() - start_time) * 1000:.0f}ms",
                    extra={"provider": spec.provider.value, "context": context, "tenant_id": tenant_id},
                )
                return result

            errors[spec.provider.value] = result.error_message or "unknown error"

        await self._record_usage(tenant_id, 0)
        error = AllProvidersFailedError(context, errors)
        logger.error(str(error), extra={"context": context, "tenant_id": tenant_id})
        raise error

    async def _record_usage(self, tenant_id: int, tokens: int) -> None:
        try:
            await self.usage_tracker.record_request(tenant_id, tokens=tokens)
        except Exception as e:
            # Usage accounting must never break a user-facing reply
            logger.error(
                f"Failed to record AI usage for tenant {tenant_id}: {e}",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )

    async def _generate_text(
        self,
        prompt: str,
        options: GenerationOptions,
        tenant_context: TenantContext,
    ) -> str:
        resolved = self._resolve_options(options, tenant_context)
        result = await self._route(
            resolved,
            [{"role": "user", "content": prompt}],
            options.context,
            tenant_context.tenant_id,
        )
        return result.content or ""

    # =========================================================================
    # Public API
    # =========================================================================

    async def generate_content(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        tenant_context: TenantContext | None = None,
    ) -> str:
        """
        Generate a text reply, falling back across providers.

        The reply is checked against options.language; a mismatching reply is
        replaced by the canned fallback for (language, options.agent).

        Raises:
            AccessDeniedError: Tenant not entitled to AI features.
            AllProvidersFailedError: Primary and secondary both failed.
        """
        options = options or GenerationOptions()
        tenant = self.validate_tenant_access(tenant_context)

        text = await self._generate_text(prompt, options, tenant)
        text, _ = enforce_language(text, options.language, options.agent, options.context)
        return text

    async def generate_json(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        tenant_context: TenantContext | None = None,
        schema: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """
        Generate and parse a JSON reply with retries.

        Makes at most 1 + max_retries attempts. Retry prompts carry the
        previous parse error. When every attempt fails the safe default
        registered for options.context is returned.

        Raises:
            AccessDeniedError: Always propagated, never converted to a default.
        """
        options = options or GenerationOptions()
        tenant = self.validate_tenant_access(tenant_context)
        retries = self.settings.JSON_MAX_RETRIES if max_retries is None else max_retries

        last_error: str | None = None
        for attempt in range(retries + 1):
            if last_error is None:
                attempt_prompt = f"{prompt}\n\n{JSON_INSTRUCTION}"
            else:
                attempt_prompt = f"{prompt}\n\n{JSON_RETRY_INSTRUCTION.format(error=last_error)}"

            try:
                text = await self._generate_text(attempt_prompt, options, tenant)
                data = parse_json_response(text)
                validate_json_shape(data, schema)
                return data
            except AccessDeniedError:
                raise
            except (JSONParseError, AllProvidersFailedError) as e:
                last_error = str(e)
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"

            logger.warning(
                f"JSON generation attempt {attempt + 1}/{retries + 1} failed for "
                f"[{options.context}]: {last_error}",
                extra={"context": options.context, "tenant_id": tenant.tenant_id},
            )

        logger.error(
            f"All JSON generation attempts failed for [{options.context}], using safe default",
            extra={"context": options.context, "tenant_id": tenant.tenant_id, "event": "json_safe_default"},
        )
        return get_json_safe_default(options.context)

    async def generate_chat_completion(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tenant_context: TenantContext | None = None,
        options: GenerationOptions | None = None,
        tool_choice: str | dict[str, Any] | None = None,
    ) -> ChatCompletion:
        """
        Tool-calling chat completion, OpenAI first, Anthropic as fallback.

        messages and tools use the OpenAI shape; the Anthropic adapter
        rewrites them. The answer is always returned OpenAI-shaped.

        Raises:
            AccessDeniedError: Tenant not entitled to AI features.
            AllProvidersFailedError: Both providers failed.
        """
        options = options or GenerationOptions(context="chat-completion")
        tenant = self.validate_tenant_access(tenant_context)
        resolved = self._resolve_options(options, tenant)

        openai_spec = equivalent_on(Provider.OPENAI, resolved.primary)
        if resolved.secondary.provider is Provider.ANTHROPIC:
            anthropic_spec = resolved.secondary
        else:
            anthropic_spec = equivalent_on(Provider.ANTHROPIC, resolved.primary)

        ordered = ResolvedOptions(
            primary=openai_spec,
            secondary=anthropic_spec,
            temperature=resolved.temperature,
            max_tokens=resolved.max_tokens,
            timeout_ms=resolved.timeout_ms,
        )
        result = await self._route(
            ordered,
            messages,
            options.context,
            tenant.tenant_id,
            tools=tools,
            tool_choice=tool_choice,
        )
        return _to_chat_completion(result)

    async def health_check(self) -> dict[str, Any]:
        """
        Ping each provider with a tiny prompt (no tenant, no breaker accounting).

        Returns:
            {"openai": bool, "anthropic": bool,
             "overall": "healthy" | "degraded" | "unhealthy",
             "circuit_breakers": {...}}
        """
        status: dict[str, Any] = {}
        for provider, adapter in self.adapters.items():
            request = ProviderRequest(
                model=TIER_EQUIVALENTS[(provider, ModelTier.FAST)],
                messages=[{"role": "user", "content": HEALTH_CHECK_PROMPT}],
                max_tokens=HEALTH_CHECK_MAX_TOKENS,
                temperature=0.0,
                timeout_ms=HEALTH_CHECK_TIMEOUT_MS,
            )
            result = await adapter.call(request)
            status[provider.value] = result.success
            if not result.success:
                logger.warning(
                    f"Health check failed for {provider.value}: {result.error_message}",
                    extra={"provider": provider.value},
                )

        healthy_count = sum(1 for ok in status.values() if ok)
        if healthy_count == len(status):
            overall = "healthy"
        elif healthy_count > 0:
            overall = "degraded"
        else:
            overall = "unhealthy"

        status["overall"] = overall
        status["circuit_breakers"] = get_breaker_status(self.breakers)
        return status

    async def get_tenant_usage(self, tenant_id: int) -> TenantAIUsage:
        return await self.usage_tracker.get_usage(tenant_id)

    async def reset_tenant_usage(self, tenant_id: int) -> None:
        """Billing-cycle reset of the tenant's monthly counters."""
        await self.usage_tracker.reset_monthly(tenant_id)


def _to_chat_completion(result: ProviderCallResult) -> ChatCompletion:
    tool_calls = list(result.tool_calls)
    finish_reason = result.finish_reason or ("tool_calls" if tool_calls else "stop")
    return ChatCompletion(
        id=f"chatcmpl-{uuid.uuid4().hex[:24]}",
        model=result.model_id,
        provider=result.provider,
        choices=[
            ChatChoice(
                index=0,
                message=ChatCompletionMessage(content=result.content, tool_calls=tool_calls),
                finish_reason=finish_reason,
            )
        ],
        usage={
            "prompt_tokens": result.prompt_tokens,
            "completion_tokens": result.completion_tokens,
            "total_tokens": result.tokens_used,
        },
    )


def create_router(settings: Settings | None = None) -> ProviderRouter:
    """
    Build a router with its breakers and usage store.

    USAGE_STORE_BACKEND selects InMemoryUsageStore ("memory") or
    RedisUsageStore ("redis").
    """
    settings = settings or get_settings()

    if settings.USAGE_STORE_BACKEND == "redis":
        from shared.redis_client import get_redis_client

        store = RedisUsageStore(get_redis_client())
    else:
        store = InMemoryUsageStore()

    return ProviderRouter(settings=settings, usage_tracker=TenantUsageTracker(store))
