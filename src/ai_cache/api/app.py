from typing import Any

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from ai_cache.config import settings
from ai_cache.dto import (
    AdmissionResponse,
    AdmitRequest,
    CacheEntryItem,
    CacheLookupResponse,
    CacheStatsResponse,
    CacheStoreResponse,
    FingerprintRequest,
    FingerprintResponse,
    HealthCheckResponse,
    LookupCacheRequest,
    RateLimitUsageResponse,
    RateLimitWindowItem,
    StoreCacheRequest,
    SweepResponse,
)
from ai_cache.services import RateLimiter, ResponseCache

from .dependencies import CacheHandlerDep, RateLimitDependency, RateLimitHandlerDep, make_lifespan

VERSION = "0.1.0"


def create_app(
    response_cache: ResponseCache | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        response_cache: Use this cache service instead of building one from settings.
        rate_limiter: Use this rate limiter instead of building one from settings.
    """
    app = FastAPI(
        title="AI Cache API",
        description="AI response cache and fixed-window rate limiter",
        version=VERSION,
        lifespan=make_lifespan(response_cache, rate_limiter),
    )

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "AI Cache API",
            "version": VERSION,
            "description": "AI response cache and fixed-window rate limiter",
            "endpoints": {
                "cache": "/cache",
                "rate_limit": "/rate-limit",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.get("/health", response_model=HealthCheckResponse)
    async def health(request: Request, response: Response) -> HealthCheckResponse:
        """Health check endpoint (503 if a store is unreachable)."""
        cache_healthy = request.app.state.response_cache.is_healthy()
        limiter_healthy = request.app.state.rate_limiter.is_healthy()
        healthy = cache_healthy and limiter_healthy
        if not healthy:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthCheckResponse(
            status="healthy" if healthy else "unhealthy",
            cache_healthy=cache_healthy,
            rate_limiter_healthy=limiter_healthy,
        )

    @app.post("/cache/fingerprint", response_model=FingerprintResponse)
    async def fingerprint(request: FingerprintRequest, handler: CacheHandlerDep) -> FingerprintResponse:
        """Compute the cache key for a request without touching the cache."""
        return await handler.fingerprint(request)

    @app.post(
        "/cache/lookup",
        response_model=CacheLookupResponse,
        dependencies=[Depends(RateLimitDependency("cache-lookup"))],
    )
    async def lookup(request: LookupCacheRequest, handler: CacheHandlerDep) -> CacheLookupResponse:
        """Look up a cached response, counting a hit if found."""
        return await handler.lookup(request)

    @app.post(
        "/cache/store",
        response_model=CacheStoreResponse,
        dependencies=[Depends(RateLimitDependency("cache-store"))],
    )
    async def store(request: StoreCacheRequest, handler: CacheHandlerDep) -> CacheStoreResponse:
        """Store an AI response."""
        return await handler.store(request)

    @app.get("/cache/entries/{cache_key}", response_model=CacheEntryItem)
    async def get_entry(cache_key: str, handler: CacheHandlerDep) -> CacheEntryItem:
        """Read an entry without counting a hit."""
        return await handler.get_entry(cache_key)

    @app.delete("/cache/entries/{cache_key}", response_model=dict[str, bool])
    async def delete_entry(cache_key: str, handler: CacheHandlerDep) -> dict[str, bool]:
        """Delete one entry."""
        return await handler.delete_entry(cache_key)

    @app.delete("/cache/tags/{tag}", response_model=SweepResponse)
    async def invalidate_tag(tag: str, handler: CacheHandlerDep) -> SweepResponse:
        """Delete every entry stored with a tag."""
        return await handler.invalidate_tag(tag)

    @app.post("/cache/sweep", response_model=SweepResponse)
    async def sweep(handler: CacheHandlerDep) -> SweepResponse:
        """Remove expired entries."""
        return await handler.sweep()

    @app.get("/cache/stats", response_model=CacheStatsResponse)
    async def cache_stats(handler: CacheHandlerDep) -> CacheStatsResponse:
        """Get cache statistics."""
        return await handler.get_stats()

    @app.delete("/cache", response_model=dict[str, Any])
    async def clear_cache(handler: CacheHandlerDep) -> dict[str, Any]:
        """Clear all entries from the cache."""
        return await handler.clear_cache()

    @app.post("/rate-limit/admit", response_model=AdmissionResponse)
    async def admit(request: AdmitRequest, handler: RateLimitHandlerDep) -> AdmissionResponse:
        """Count a request for (identifier, endpoint); 429 when over the limit."""
        return await handler.admit(request)

    @app.get("/rate-limit/usage/{identifier}/{endpoint}", response_model=RateLimitUsageResponse)
    async def usage(identifier: str, endpoint: str, handler: RateLimitHandlerDep) -> RateLimitUsageResponse:
        """Usage of the live window, without counting a request."""
        return await handler.usage(identifier, endpoint)

    @app.get("/rate-limit/history/{identifier}/{endpoint}", response_model=list[RateLimitWindowItem])
    async def history(identifier: str, endpoint: str, handler: RateLimitHandlerDep) -> list[RateLimitWindowItem]:
        """Every stored window for a pair, oldest first."""
        return await handler.history(identifier, endpoint)

    @app.post("/rate-limit/purge", response_model=SweepResponse)
    async def purge(handler: RateLimitHandlerDep) -> SweepResponse:
        """Delete windows that have already reset."""
        return await handler.purge()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ai_cache.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
