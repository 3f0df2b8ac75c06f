"""Response DTOs for API endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FingerprintResponse(BaseModel):
    """Response DTO for fingerprint computation."""

    cache_key: str = Field(..., description="Deterministic cache key")
    prompt_hash: str = Field(..., description="SHA-256 of the raw prompt")


class CacheEntryItem(BaseModel):
    """A cached AI response with its accounting."""

    cache_key: str = Field(..., description="Deterministic cache key")
    prompt_hash: str | None = Field(None, description="SHA-256 of the raw prompt")
    response_data: Any = Field(..., description="The cached AI response")
    model_name: str = Field(..., description="Model that produced the response")
    tokens_used: int | None = Field(None, description="Tokens consumed by the upstream call")
    cost_usd: float | None = Field(None, description="Cost of the upstream call in USD")
    hit_count: int = Field(..., description="1 on store, +1 per cache hit", ge=1)
    created_at: datetime = Field(..., description="When the entry was stored")
    last_accessed: datetime = Field(..., description="When the entry was last read or stored")
    expires_at: datetime | None = Field(None, description="Expiry time, null if it never expires")
    tags: list[str] = Field(default_factory=list, description="Labels for bulk invalidation")


class CacheLookupResponse(BaseModel):
    """Response DTO for cache lookup operation."""

    cache_key: str = Field(..., description="The key that was looked up")
    is_hit: bool = Field(..., description="Whether a live entry was found")
    entry: CacheEntryItem | None = Field(None, description="The entry on a hit")
    lookup_time_ms: float = Field(..., description="Time taken for the lookup in milliseconds")


class CacheStoreResponse(BaseModel):
    """Response DTO for cache store operation."""

    success: bool = Field(..., description="Whether the operation succeeded")
    entry: CacheEntryItem = Field(..., description="The stored entry")
    message: str = Field(..., description="Human-readable status message")


class CacheStatsResponse(BaseModel):
    """Response DTO for cache statistics."""

    total_entries: int = Field(..., description="Entries stored, expired ones included", ge=0)
    live_entries: int = Field(..., description="Entries that would still be served", ge=0)
    total_lookups: int = Field(..., description="Lookups accounted for by stored entries", ge=0)
    total_hits: int = Field(..., description="Lookups answered from cache", ge=0)
    hit_rate: float = Field(..., description="total_hits / total_lookups", ge=0.0, le=1.0)
    cost_savings_usd: float = Field(..., description="Upstream cost avoided", ge=0.0)
    tokens_saved: int = Field(..., description="Upstream tokens avoided", ge=0)
    default_ttl_seconds: int = Field(..., description="Default TTL for stored responses", ge=0)


class SweepResponse(BaseModel):
    """Response DTO for expired entry sweeps and window purges."""

    removed: int = Field(..., description="Number of rows removed", ge=0)


class AdmissionResponse(BaseModel):
    """Response DTO for a rate limiter admission check."""

    admitted: bool = Field(..., description="Whether the request may proceed")
    identifier: str
    endpoint: str
    count: int = Field(..., description="Requests admitted in the current window", ge=0)
    limit: int = Field(..., description="Requests allowed per window", ge=1)
    remaining: int = Field(..., description="Requests still allowed in the window", ge=0)
    reset_at: datetime = Field(..., description="When the window rolls over")
    degraded: bool = Field(False, description="Decided by the failure policy, not the store")


class RateLimitUsageResponse(BaseModel):
    """Response DTO for the live window of an (identifier, endpoint) pair."""

    count: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    remaining: int = Field(..., ge=0)
    reset_at: datetime


class RateLimitWindowItem(BaseModel):
    """One stored counting window."""

    identifier: str
    endpoint: str
    request_count: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    window_start: datetime
    reset_at: datetime
    created_at: datetime


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    cache_healthy: bool = Field(..., description="Whether the cache store is reachable")
    rate_limiter_healthy: bool = Field(..., description="Whether the rate limit store is reachable")
