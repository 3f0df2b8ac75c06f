"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import AdmitRequest, FingerprintRequest, LookupCacheRequest, StoreCacheRequest
from .responses import (
    AdmissionResponse,
    CacheEntryItem,
    CacheLookupResponse,
    CacheStatsResponse,
    CacheStoreResponse,
    FingerprintResponse,
    HealthCheckResponse,
    RateLimitUsageResponse,
    RateLimitWindowItem,
    SweepResponse,
)

__all__ = [
    "AdmitRequest",
    "FingerprintRequest",
    "LookupCacheRequest",
    "StoreCacheRequest",
    "AdmissionResponse",
    "CacheEntryItem",
    "CacheLookupResponse",
    "CacheStatsResponse",
    "CacheStoreResponse",
    "FingerprintResponse",
    "HealthCheckResponse",
    "RateLimitUsageResponse",
    "RateLimitWindowItem",
    "SweepResponse",
]
