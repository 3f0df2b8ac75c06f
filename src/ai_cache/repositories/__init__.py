"""Repository layer for data access.

This layer abstracts the backing store (Redis, process memory) behind
protocol-based interfaces. This enables:
- Easy swapping of implementations (Redis → PostgreSQL, Redis → memory, etc.)
- Unit testing with in-memory implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from ai_cache.protocols import RateLimitStore, ResponseCacheStore

from .memory_repository import InMemoryRateLimitRepository, InMemoryResponseCacheRepository
from .redis_repository import RedisRateLimitRepository, RedisResponseCacheRepository

__all__ = [
    "RateLimitStore",
    "ResponseCacheStore",
    "InMemoryRateLimitRepository",
    "InMemoryResponseCacheRepository",
    "RedisRateLimitRepository",
    "RedisResponseCacheRepository",
]
