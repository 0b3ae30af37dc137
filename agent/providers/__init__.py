"""
AI provider layer: adapters, routing with fallback, breakers, usage accounting.

Only leaf modules are re-exported here; import the router from
agent.providers.router.
"""

from agent.providers.errors import (
    AccessDeniedError,
    AllProvidersFailedError,
    JSONParseError,
    ProviderFailureError,
    ProviderTimeoutError,
)
from agent.providers.models import (
    ChatCompletion,
    GenerationOptions,
    ModelSpec,
    ModelTier,
    Provider,
    ProviderCallResult,
    ProviderRequest,
    ToolCall,
    resolve_model,
)

__all__ = [
    "AccessDeniedError",
    "AllProvidersFailedError",
    "JSONParseError",
    "ProviderFailureError",
    "ProviderTimeoutError",
    "ChatCompletion",
    "GenerationOptions",
    "ModelSpec",
    "ModelTier",
    "Provider",
    "ProviderCallResult",
    "ProviderRequest",
    "ToolCall",
    "resolve_model",
]
