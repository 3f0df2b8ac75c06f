"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, FastAPI, Request, Response

from ai_cache.config import configure_logging, get_redis_client, settings
from ai_cache.entities import AdmissionResult
from ai_cache.handlers import (
    CacheHandler,
    RateLimitHandler,
    rate_limit_headers,
    rejection_error,
    to_http_error,
)
from ai_cache.repositories import (
    InMemoryRateLimitRepository,
    InMemoryResponseCacheRepository,
    RedisRateLimitRepository,
    RedisResponseCacheRepository,
)
from ai_cache.services import RateLimiter, ResponseCache

logger = logging.getLogger(__name__)


def build_services() -> tuple[ResponseCache, RateLimiter]:
    """Create both services on the backend selected by settings."""
    if settings.uses_memory_backend:
        cache_repository = InMemoryResponseCacheRepository()
        rate_limit_repository = InMemoryRateLimitRepository()
    else:
        client = get_redis_client()
        cache_repository = RedisResponseCacheRepository(redis_client=client)
        rate_limit_repository = RedisRateLimitRepository(redis_client=client)

    return (
        ResponseCache.create(repository=cache_repository),
        RateLimiter.create(repository=rate_limit_repository),
    )


def make_lifespan(
    response_cache: ResponseCache | None = None,
    rate_limiter: RateLimiter | None = None,
):
    """Build the lifespan context manager for the FastAPI app.

    Services passed in are used as-is (tests); missing ones are built
    from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize all layers and store them in app.state.

        1. Repositories (data access) - Redis or memory, per settings
        2. Services (business logic) - app.state.response_cache / rate_limiter
        3. Handlers (HTTP endpoints) - app.state.cache_handler / rate_limit_handler
        """
        configure_logging()

        cache, limiter = response_cache, rate_limiter
        if cache is None or limiter is None:
            built_cache, built_limiter = build_services()
            cache = cache or built_cache
            limiter = limiter or built_limiter

        app.state.response_cache = cache
        app.state.rate_limiter = limiter
        app.state.cache_handler = CacheHandler(response_cache=cache)
        app.state.rate_limit_handler = RateLimitHandler(rate_limiter=limiter)

        logger.info(
            "AI cache service initialized (backend=%s, default_ttl=%ss, rate_limit=%d/%s, failure_policy=%s)",
            settings.storage_backend,
            cache.default_ttl,
            limiter.default_limit,
            limiter.default_window,
            limiter.failure_policy.value,
        )

        yield

        # Cleanup - remove from app.state
        del app.state.rate_limit_handler
        del app.state.cache_handler
        del app.state.rate_limiter
        del app.state.response_cache
        logger.info("AI cache service shut down")

    return lifespan


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not initialized. Check lifespan setup.")
    return value


def get_cache_handler(request: Request) -> CacheHandler:
    """Dependency injection for CacheHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    return _from_state(request, "cache_handler")


def get_rate_limit_handler(request: Request) -> RateLimitHandler:
    """Dependency injection for RateLimitHandler from app.state."""
    return _from_state(request, "rate_limit_handler")


def get_rate_limiter(request: Request) -> RateLimiter:
    """Dependency injection for RateLimiter from app.state."""
    return _from_state(request, "rate_limiter")


def client_address(request: Request) -> str:
    """Default rate limit identifier: the client's address."""
    return request.client.host if request.client else "anonymous"


class RateLimitDependency:
    """Route dependency that admits the request or answers 429.

    Sets X-RateLimit-Limit, X-RateLimit-Remaining and X-RateLimit-Reset
    on admitted responses, and Retry-After on rejections.

    Example:
        ```python
        @app.post("/generate", dependencies=[Depends(RateLimitDependency("ai", limit=30, window=60))])
        async def generate(...): ...
        ```
    """

    def __init__(
        self,
        endpoint: str | None = None,
        limit: int | None = None,
        window: int | timedelta | None = None,
        key_func: Callable[[Request], str] = client_address,
    ) -> None:
        self._endpoint = endpoint
        self._limit = limit
        self._window = window
        self._key_func = key_func

    async def __call__(self, request: Request, response: Response) -> AdmissionResult:
        limiter = get_rate_limiter(request)
        try:
            result = limiter.admit(
                self._key_func(request),
                self._endpoint or request.url.path,
                limit=self._limit,
                window=self._window,
            )
        except Exception as e:
            raise to_http_error("check rate limit", e) from e

        if not result.admitted:
            raise rejection_error(result)

        response.headers.update(rate_limit_headers(result))
        return result


# Type aliases for cleaner dependency injection
CacheHandlerDep = Annotated[CacheHandler, Depends(get_cache_handler)]
RateLimitHandlerDep = Annotated[RateLimitHandler, Depends(get_rate_limit_handler)]
