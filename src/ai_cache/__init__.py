"""AI Cache - response caching and rate limiting for AI API calls.

This package provides a layered architecture for a key-addressable
response cache with expiry and hit accounting, and a fixed-window rate
limiter, both backed by a shared store:

Layers:
    - protocols: Interface contracts (ResponseCacheStore, RateLimitStore)
    - repositories: Data access implementations (Redis, memory)
    - services: Business logic (ResponseCache, RateLimiter)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from ai_cache.repositories import RedisResponseCacheRepository
    from ai_cache.services import ResponseCache

    cache = ResponseCache.create(repository=RedisResponseCacheRepository.create())
    key = cache.fingerprint(prompt, "gpt-4o", {"temperature": 0.2})
    entry = cache.get(key)
    ```

For HTTP API:
    ```python
    from ai_cache.api.app import app
    ```
"""

from ai_cache.config import get_redis_client, settings
from ai_cache.entities import (
    AdmissionResult,
    CacheEntryEntity,
    CacheStatsEntity,
    RateLimitUsage,
    RateLimitWindowEntity,
)
from ai_cache.errors import AICacheError, InvalidKey, InvalidKeyError, StorageError
from ai_cache.fingerprint import fingerprint, prompt_hash
from ai_cache.protocols import RateLimitStore, ResponseCacheStore
from ai_cache.repositories import (
    InMemoryRateLimitRepository,
    InMemoryResponseCacheRepository,
    RedisRateLimitRepository,
    RedisResponseCacheRepository,
)
from ai_cache.services import FailurePolicy, RateLimiter, ResponseCache

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Errors
    "AICacheError",
    "InvalidKey",
    "InvalidKeyError",
    "StorageError",
    # Fingerprinting
    "fingerprint",
    "prompt_hash",
    # Protocols (interfaces)
    "RateLimitStore",
    "ResponseCacheStore",
    # Services (business logic)
    "FailurePolicy",
    "RateLimiter",
    "ResponseCache",
    # Repositories (data access)
    "InMemoryRateLimitRepository",
    "InMemoryResponseCacheRepository",
    "RedisRateLimitRepository",
    "RedisResponseCacheRepository",
    # Entities (domain models)
    "AdmissionResult",
    "CacheEntryEntity",
    "CacheStatsEntity",
    "RateLimitUsage",
    "RateLimitWindowEntity",
]
