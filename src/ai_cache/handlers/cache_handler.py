"""HTTP handlers for cache operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, validation, and error handling.
"""

import time

from fastapi import HTTPException, status

from ai_cache.dto import (
    CacheEntryItem,
    CacheLookupResponse,
    CacheStatsResponse,
    CacheStoreResponse,
    FingerprintRequest,
    FingerprintResponse,
    LookupCacheRequest,
    StoreCacheRequest,
    SweepResponse,
)
from ai_cache.entities import CacheEntryEntity
from ai_cache.fingerprint import prompt_hash
from ai_cache.services import ResponseCache

from .errors import to_http_error


def entry_to_item(entry: CacheEntryEntity) -> CacheEntryItem:
    """Convert a cache entry entity to its DTO."""
    return CacheEntryItem(
        cache_key=entry.cache_key,
        prompt_hash=entry.prompt_hash,
        response_data=entry.response_data,
        model_name=entry.model_name,
        tokens_used=entry.tokens_used,
        cost_usd=entry.cost_usd,
        hit_count=entry.hit_count,
        created_at=entry.created_at,
        last_accessed=entry.last_accessed,
        expires_at=entry.expires_at,
        tags=list(entry.tags),
    )


class CacheHandler:
    """HTTP handlers for cache operations.

    This handler delegates business logic to ResponseCache
    and handles HTTP-specific concerns like:
    - Converting entities to DTOs
    - Setting appropriate status codes
    - Error handling and responses

    A storage failure is reported as 503, never as a miss.
    """

    def __init__(self, response_cache: ResponseCache) -> None:
        """Initialize the cache handler.

        Args:
            response_cache: The response cache service (required).
        """
        self._cache = response_cache

    async def fingerprint(self, request: FingerprintRequest) -> FingerprintResponse:
        """Handle POST /cache/fingerprint requests."""
        try:
            return FingerprintResponse(
                cache_key=self._cache.fingerprint(request.prompt, request.model, request.params),
                prompt_hash=prompt_hash(request.prompt),
            )
        except Exception as e:
            raise to_http_error("compute fingerprint", e) from e

    async def lookup(self, request: LookupCacheRequest) -> CacheLookupResponse:
        """Handle POST /cache/lookup requests.

        Args:
            request: The lookup request DTO

        Returns:
            CacheLookupResponse with hit status and the entry on a hit

        Raises:
            HTTPException: 422 for invalid input, 503 if the store fails
        """
        try:
            start_time = time.time()

            cache_key = self._cache.fingerprint(request.prompt, request.model, request.params)
            entry = self._cache.get(cache_key)

            lookup_time_ms = (time.time() - start_time) * 1000

            return CacheLookupResponse(
                cache_key=cache_key,
                is_hit=entry is not None,
                entry=entry_to_item(entry) if entry is not None else None,
                lookup_time_ms=lookup_time_ms,
            )

        except Exception as e:
            raise to_http_error("look up cache", e) from e

    async def store(self, request: StoreCacheRequest) -> CacheStoreResponse:
        """Handle POST /cache/store requests.

        Args:
            request: The store request DTO

        Returns:
            CacheStoreResponse with the stored entry

        Raises:
            HTTPException: 422 for invalid input, 503 if the store fails
        """
        try:
            entry = self._cache.store(
                prompt=request.prompt,
                model=request.model,
                response_data=request.response_data,
                params=request.params,
                tokens_used=request.tokens_used,
                cost_usd=request.cost_usd,
                ttl=request.ttl_seconds,
                endpoint=request.endpoint,
                tags=request.tags,
            )

            return CacheStoreResponse(
                success=True,
                entry=entry_to_item(entry),
                message="Entry stored successfully",
            )

        except Exception as e:
            raise to_http_error("store entry", e) from e

    async def get_entry(self, cache_key: str) -> CacheEntryItem:
        """Handle GET /cache/entries/{cache_key} requests.

        Reads without counting a hit.
        """
        try:
            entry = self._cache.peek(cache_key)
        except Exception as e:
            raise to_http_error("read entry", e) from e

        if entry is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No cache entry for {cache_key}",
            )
        return entry_to_item(entry)

    async def delete_entry(self, cache_key: str) -> dict:
        """Handle DELETE /cache/entries/{cache_key} requests."""
        try:
            return {"deleted": self._cache.invalidate(cache_key)}
        except Exception as e:
            raise to_http_error("delete entry", e) from e

    async def invalidate_tag(self, tag: str) -> SweepResponse:
        """Handle DELETE /cache/tags/{tag} requests."""
        try:
            return SweepResponse(removed=self._cache.invalidate_tag(tag))
        except Exception as e:
            raise to_http_error("invalidate tag", e) from e

    async def sweep(self) -> SweepResponse:
        """Handle POST /cache/sweep requests."""
        try:
            return SweepResponse(removed=self._cache.sweep_expired())
        except Exception as e:
            raise to_http_error("sweep expired entries", e) from e

    async def get_stats(self) -> CacheStatsResponse:
        """Handle GET /cache/stats requests.

        Returns:
            CacheStatsResponse with cache statistics
        """
        try:
            stats = self._cache.stats()

            return CacheStatsResponse(
                total_entries=stats.total_entries,
                live_entries=stats.live_entries,
                total_lookups=stats.total_lookups,
                total_hits=stats.total_hits,
                hit_rate=stats.hit_rate,
                cost_savings_usd=stats.cost_savings_usd,
                tokens_saved=stats.tokens_saved,
                default_ttl_seconds=self._cache.default_ttl,
            )

        except Exception as e:
            raise to_http_error("get stats", e) from e

    async def clear_cache(self) -> dict:
        """Handle DELETE /cache requests.

        Returns:
            Dict with clear operation result
        """
        try:
            count = self._cache.clear()

            return {
                "success": True,
                "deleted_count": count,
                "message": "Cache cleared successfully",
            }

        except Exception as e:
            raise to_http_error("clear cache", e) from e
