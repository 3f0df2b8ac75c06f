"""Service layer for business logic.

This layer contains the core business logic. Services depend on
protocols (interfaces), not concrete implementations, making them
testable and flexible.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)

Usage:
    ```python
    from ai_cache.repositories import RedisRateLimitRepository, RedisResponseCacheRepository
    from ai_cache.services import RateLimiter, ResponseCache

    cache = ResponseCache.create(repository=RedisResponseCacheRepository.create())
    limiter = RateLimiter.create(repository=RedisRateLimitRepository.create())
    ```
"""

from .cache_service import DEFAULT_ENDPOINT_TTLS, ResponseCache
from .rate_limiter import FailurePolicy, RateLimiter

__all__ = [
    "DEFAULT_ENDPOINT_TTLS",
    "FailurePolicy",
    "RateLimiter",
    "ResponseCache",
]
