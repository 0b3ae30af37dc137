"""Pydantic models for the per-restaurant tenant context."""

from pydantic import BaseModel, ConfigDict, field_validator

from agent.providers.models import ModelSpec, resolve_model

# Tenant statuses allowed to use AI features
ACTIVE_TENANT_STATUSES = frozenset({"active", "trial"})


class RestaurantConfig(BaseModel):
    """Restaurant (tenant) record fields relevant to AI routing."""
    model_config = ConfigDict(extra="allow")

    id: int
    name: str | None = None
    tenant_plan: str = "free"
    tenant_status: str  # "active", "trial", "suspended", "disabled"
    primary_ai_model: ModelSpec | None = None
    fallback_ai_model: ModelSpec | None = None
    ai_temperature: float | None = None
    timezone: str | None = None

    @field_validator("primary_ai_model", "fallback_ai_model", mode="before")
    @classmethod
    def resolve_model_name(cls, v: str | ModelSpec | None) -> ModelSpec | None:
        """Model names are resolved once, here, never re-parsed per call."""
        if v is None or v == "":
            return None
        return resolve_model(v)

    @property
    def is_active(self) -> bool:
        return self.tenant_status in ACTIVE_TENANT_STATUSES


class TenantFeatures(BaseModel):
    """Feature flags resolved from the tenant plan."""
    model_config = ConfigDict(extra="allow")

    ai_chat: bool = False


class TenantContext(BaseModel):
    """Entitlement and configuration data gating AI usage for a tenant."""

    restaurant: RestaurantConfig
    features: TenantFeatures

    @property
    def tenant_id(self) -> int:
        return self.restaurant.id
