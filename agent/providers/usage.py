"""
Per-tenant AI usage accounting.

Every router call (successful or not) is counted against the tenant so that
billing sees failed attempts too; failures are recorded with zero tokens.

Counters live behind the UsageStore interface (get / set / increment):
- InMemoryUsageStore: process-local dict, the default
- RedisUsageStore: Redis hash per tenant, shared across worker processes

Monthly counters roll over lazily: when a request arrives in a different
calendar month than the tenant's last_request_at, monthly_requests and
monthly_tokens are zeroed before the new request is counted.
"""

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Callable, Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

USAGE_KEY_PREFIX = "ai_usage:tenant:"


@dataclass(frozen=True)
class TenantAIUsage:
    """AI usage counters for one tenant."""

    monthly_requests: int = 0
    monthly_tokens: int = 0
    total_requests: int = 0
    last_request_at: datetime | None = None


class UsageStore(Protocol):
    """Storage interface for tenant usage counters."""

    async def get(self, tenant_id: int) -> TenantAIUsage | None: ...

    async def set(self, tenant_id: int, usage: TenantAIUsage) -> None: ...

    async def increment(
        self, tenant_id: int, requests: int, tokens: int, at: datetime
    ) -> TenantAIUsage: ...


class InMemoryUsageStore:
    """Process-local usage store (single event loop, no locking needed)."""

    def __init__(self) -> None:
        self._usage: dict[int, TenantAIUsage] = {}

    async def get(self, tenant_id: int) -> TenantAIUsage | None:
        return self._usage.get(tenant_id)

    async def set(self, tenant_id: int, usage: TenantAIUsage) -> None:
        self._usage[tenant_id] = usage

    async def increment(
        self, tenant_id: int, requests: int, tokens: int, at: datetime
    ) -> TenantAIUsage:
        current = self._usage.get(tenant_id) or TenantAIUsage()
        updated = TenantAIUsage(
            monthly_requests=current.monthly_requests + requests,
            monthly_tokens=current.monthly_tokens + tokens,
            total_requests=current.total_requests + requests,
            last_request_at=at,
        )
        self._usage[tenant_id] = updated
        return updated


class RedisUsageStore:
    """
    Redis-backed usage store.

    Key pattern: ai_usage:tenant:{tenant_id} (hash with monthly_requests,
    monthly_tokens, total_requests, last_request_at). Increments use HINCRBY
    so concurrent workers never lose updates.
    """

    def __init__(self, client: Redis):
        self._client = client

    @staticmethod
    def _key(tenant_id: int) -> str:
        return f"{USAGE_KEY_PREFIX}{tenant_id}"

    @staticmethod
    def _decode(data: dict[str, str]) -> TenantAIUsage | None:
        if not data:
            return None
        last_request_at = data.get("last_request_at")
        return TenantAIUsage(
            monthly_requests=int(data.get("monthly_requests", 0)),
            monthly_tokens=int(data.get("monthly_tokens", 0)),
            total_requests=int(data.get("total_requests", 0)),
            last_request_at=datetime.fromisoformat(last_request_at) if last_request_at else None,
        )

    async def get(self, tenant_id: int) -> TenantAIUsage | None:
        return self._decode(await self._client.hgetall(self._key(tenant_id)))

    async def set(self, tenant_id: int, usage: TenantAIUsage) -> None:
        mapping = {
            "monthly_requests": usage.monthly_requests,
            "monthly_tokens": usage.monthly_tokens,
            "total_requests": usage.total_requests,
        }
        if usage.last_request_at is not None:
            mapping["last_request_at"] = usage.last_request_at.isoformat()
        await self._client.hset(self._key(tenant_id), mapping=mapping)

    async def increment(
        self, tenant_id: int, requests: int, tokens: int, at: datetime
    ) -> TenantAIUsage:
        key = self._key(tenant_id)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "monthly_requests", requests)
            pipe.hincrby(key, "monthly_tokens", tokens)
            pipe.hincrby(key, "total_requests", requests)
            pipe.hset(key, "last_request_at", at.isoformat())
            pipe.hgetall(key)
            results = await pipe.execute()
        return self._decode(results[-1])


class TenantUsageTracker:
    """
    Applies the monthly rollover rule on top of a UsageStore.

    Example:
        >>> tracker = TenantUsageTracker(InMemoryUsageStore())
        >>> usage = await tracker.record_request(tenant_id=1, tokens=120)
        >>> usage.monthly_requests
        1
    """

    def __init__(
        self,
        store: UsageStore,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.store = store
        self._clock = clock

    async def record_request(self, tenant_id: int, tokens: int = 0) -> TenantAIUsage:
        """Count one AI request (and its tokens) for the tenant."""
        now = self._clock()
        current = await self.store.get(tenant_id)

        if current is not None and _is_new_month(current.last_request_at, now):
            logger.info(
                f"New billing month for tenant {tenant_id} | "
                f"previous_monthly_requests={current.monthly_requests} | "
                f"previous_monthly_tokens={current.monthly_tokens}",
                extra={"tenant_id": tenant_id},
            )
            await self.store.set(
                tenant_id, replace(current, monthly_requests=0, monthly_tokens=0)
            )

        return await self.store.increment(tenant_id, requests=1, tokens=tokens, at=now)

    async def get_usage(self, tenant_id: int) -> TenantAIUsage:
        return await self.store.get(tenant_id) or TenantAIUsage()

    async def reset_monthly(self, tenant_id: int) -> None:
        """Zero the monthly counters (billing cycle reset); totals are kept."""
        current = await self.store.get(tenant_id)
        if current is None:
            return
        await self.store.set(
            tenant_id, replace(current, monthly_requests=0, monthly_tokens=0)
        )
        logger.info(f"Monthly AI usage reset for tenant {tenant_id}", extra={"tenant_id": tenant_id})


def _is_new_month(last_request_at: datetime | None, now: datetime) -> bool:
    if last_request_at is None:
        return False
    return (now.year, now.month) != (last_request_at.year, last_request_at.month)
