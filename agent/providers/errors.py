"""
Error taxonomy for the provider layer.

- AccessDeniedError: tenant missing, AI feature disabled, or tenant inactive.
  Propagated to the caller and never retried.
- ProviderFailureError / ProviderTimeoutError: a single provider call failed.
  Internal only; drives circuit breaker accounting and fallback routing.
- AllProvidersFailedError: primary and secondary both exhausted.
- JSONParseError: a generate_json attempt produced unusable output.
"""


class AccessDeniedError(Exception):
    """
    Raised when a tenant is not entitled to AI features.

    Attributes:
        reason: Machine-readable reason ("missing_tenant", "feature_disabled", "inactive")
        tenant_id: Restaurant id when known
    """

    def __init__(self, message: str, reason: str, tenant_id: int | None = None):
        self.message = message
        self.reason = reason
        self.tenant_id = tenant_id
        super().__init__(message)


class ProviderFailureError(Exception):
    """A single provider call failed (network error, empty response, tripped breaker)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class ProviderTimeoutError(ProviderFailureError):
    """A provider call exceeded its wall-clock budget."""

    def __init__(self, provider: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(provider, f"request timed out after {timeout_ms}ms")


class AllProvidersFailedError(Exception):
    """
    Both primary and secondary providers failed for one request.

    Attributes:
        context: Logging context of the request (e.g. "ConfirmationAgent")
        errors: Mapping of provider name -> error message, in attempt order
    """

    def __init__(self, context: str, errors: dict[str, str]):
        self.context = context
        self.errors = errors
        details = "; ".join(f"{provider}: {error}" for provider, error in errors.items())
        super().__init__(f"All AI providers failed for [{context}] - {details}")


class JSONParseError(Exception):
    """Provider output could not be parsed or did not match the expected shape."""

    def __init__(self, message: str, raw_response: str = ""):
        self.message = message
        self.raw_response = raw_response
        super().__init__(message)
