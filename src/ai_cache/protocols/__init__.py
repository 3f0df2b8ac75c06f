"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → PostgreSQL, Redis → memory, etc.)
- Unit testing with in-memory implementations
- Clear separation of concerns

Usage:
    ```python
    from ai_cache.protocols import RateLimitStore, ResponseCacheStore

    # Type hints work with any implementation
    repo: ResponseCacheStore = RedisResponseCacheRepository.create()  # works
    repo: ResponseCacheStore = InMemoryResponseCacheRepository()      # also works
    ```
"""

from .cache_store import ResponseCacheStore
from .rate_limit_store import RateLimitStore

__all__ = [
    "RateLimitStore",
    "ResponseCacheStore",
]
