"""Response cache service for core business logic.

This service sits between the caller and the backing store. It derives
cache keys, computes expiry, and aggregates usage. It never calls the
upstream AI service: on a miss the caller does that and then ``put``s
the result.
"""

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from ai_cache.config import settings
from ai_cache.entities import CacheEntryEntity, CacheStatsEntity
from ai_cache.errors import InvalidKeyError
from ai_cache.fingerprint import fingerprint as compute_fingerprint
from ai_cache.fingerprint import prompt_hash as compute_prompt_hash
from ai_cache.protocols import ResponseCacheStore
from ai_cache.utils import as_timedelta, ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Seconds
DEFAULT_ENDPOINT_TTLS: dict[str, int] = {
    "chat": 3600,
    "lesson-generation": 86400,
    "image-analysis": 7200,
    "voice-analysis": 1800,
}


class ResponseCache:
    """Key-addressable AI response cache with expiry and hit accounting.

    This service depends on the ResponseCacheStore PROTOCOL, not a
    concrete implementation, so Redis can be swapped for memory (tests)
    or any other store with atomic updates.

    Example:
        ```python
        from ai_cache.repositories import RedisResponseCacheRepository
        from ai_cache.services import ResponseCache

        cache = ResponseCache.create(repository=RedisResponseCacheRepository.create())

        key = cache.fingerprint("Translate 'hello' to Kpelle", "gpt-4o", {"temperature": 0})
        entry = cache.get(key)
        if entry is None:
            answer = call_upstream(...)
            cache.put(key, answer, "gpt-4o", tokens_used=120, cost_usd=0.0024, ttl=3600)
        ```
    """

    def __init__(
        self,
        repository: ResponseCacheStore,
        default_ttl: int | None = None,
        endpoint_ttls: Mapping[str, int] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the response cache.

        Args:
            repository: Cache storage backend (required).
            default_ttl: TTL in seconds used by ``store`` for unknown endpoints.
                Defaults to settings.
            endpoint_ttls: Per-endpoint TTLs in seconds. Defaults to
                DEFAULT_ENDPOINT_TTLS.
            clock: Source of the current time when ``now`` is not given.

        Raises:
            ValueError: If default_ttl is not a positive number of seconds
        """
        self._repository = repository
        self._default_ttl = self._check_default_ttl(
            settings.cache_default_ttl if default_ttl is None else default_ttl
        )
        self._endpoint_ttls = dict(DEFAULT_ENDPOINT_TTLS if endpoint_ttls is None else endpoint_ttls)
        self._clock = clock

    @classmethod
    def create(
        cls,
        repository: ResponseCacheStore,
        default_ttl: int | None = None,
        endpoint_ttls: Mapping[str, int] | None = None,
    ) -> "ResponseCache":
        """Factory method to create ResponseCache with sensible defaults.

        Args:
            repository: Cache storage backend (required).
            default_ttl: Default TTL in seconds. If None, uses settings.
            endpoint_ttls: Per-endpoint TTLs. If None, uses DEFAULT_ENDPOINT_TTLS.

        Returns:
            Configured ResponseCache instance
        """
        return cls(repository=repository, default_ttl=default_ttl, endpoint_ttls=endpoint_ttls)

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self._clock()

    @staticmethod
    def _check_default_ttl(ttl: int) -> int:
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise ValueError(f"default_ttl must be a positive number of seconds, got {ttl!r}")
        return ttl

    @staticmethod
    def _check_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
        if tags is None:
            return ()
        if isinstance(tags, str):
            raise ValueError("tags must be a collection of strings, not a string")
        tags = tuple(tags)
        if not all(isinstance(tag, str) and tag.strip() for tag in tags):
            raise ValueError("tags must be non-empty strings")
        return tuple(sorted(set(tags)))

    @staticmethod
    def _check_key(cache_key: str) -> None:
        if not isinstance(cache_key, str) or not cache_key.strip():
            raise InvalidKeyError("cache key must be a non-empty string")

    @staticmethod
    def fingerprint(prompt: str, model: str, params: Mapping[str, Any] | None = None) -> str:
        """Derive the cache key for a request.

        Raises:
            InvalidKeyError: If prompt or model is empty or params are malformed
        """
        return compute_fingerprint(prompt, model, params)

    def get(self, cache_key: str, now: datetime | None = None) -> CacheEntryEntity | None:
        """Look up a live entry and record the hit.

        Business logic:
        1. Validate the key
        2. Ask the store to read the entry and bump ``hit_count`` /
           ``last_accessed`` in one atomic step
        3. Treat absent and expired entries alike as a miss

        Args:
            cache_key: Fingerprint from ``fingerprint``
            now: Time of the lookup. Defaults to the clock.

        Returns:
            The entry with updated accounting, or None on a miss

        Raises:
            InvalidKeyError: If the key is empty
            StorageError: If the store fails (never reported as a miss)
        """
        self._check_key(cache_key)
        entry = self._repository.touch(cache_key, self._now(now))
        if entry is None:
            logger.debug("Cache miss: %s", cache_key[:19])
            return None

        logger.debug("Cache hit: %s (hits=%d)", cache_key[:19], entry.hit_count)
        return entry

    def put(
        self,
        cache_key: str,
        response_data: Any,
        model_name: str,
        tokens_used: int | None = None,
        cost_usd: float | None = None,
        ttl: int | float | timedelta | None = None,
        prompt_hash: str | None = None,
        now: datetime | None = None,
        tags: Iterable[str] | None = None,
    ) -> CacheEntryEntity:
        """Create or replace the entry for a key.

        The new entry starts from ``hit_count = 1`` whatever was stored
        before. Concurrent puts on one key are last-writer-wins.

        Args:
            cache_key: Fingerprint from ``fingerprint``
            response_data: JSON-serializable AI response
            model_name: Model that produced the response
            tokens_used: Tokens consumed upstream, if known
            cost_usd: Upstream cost in USD, if known
            ttl: Seconds (or timedelta) until expiry; None never expires
            prompt_hash: Hash of the raw prompt, for audits
            now: Creation time. Defaults to the clock.
            tags: Labels for bulk invalidation with ``invalidate_tag``

        Returns:
            The stored entry

        Raises:
            InvalidKeyError: If the key is empty
            ValueError: If ttl, tokens, cost or tags are invalid or the payload
                is not JSON-serializable
            StorageError: If the store fails
        """
        self._check_key(cache_key)
        if not isinstance(model_name, str) or not model_name.strip():
            raise ValueError("model_name must be a non-empty string")
        if tokens_used is not None and tokens_used < 0:
            raise ValueError("tokens_used must not be negative")
        if cost_usd is not None and cost_usd < 0:
            raise ValueError("cost_usd must not be negative")
        try:
            json.dumps(response_data)
        except (TypeError, ValueError) as e:
            raise ValueError(f"response_data is not JSON serializable: {e}") from e
        tags = self._check_tags(tags)

        now = self._now(now)
        expires_at = now + as_timedelta(ttl) if ttl is not None else None

        entry = CacheEntryEntity(
            cache_key=cache_key,
            prompt_hash=prompt_hash,
            response_data=response_data,
            model_name=model_name,
            hit_count=1,
            created_at=now,
            last_accessed=now,
            expires_at=expires_at,
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            tags=tags,
        )
        stored = self._repository.upsert(entry)
        logger.debug("Cached %s (model=%s, expires_at=%s)", cache_key[:19], model_name, expires_at)
        return stored

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Physically remove entries that expired before ``now``.

        Optional maintenance: ``get`` already ignores expired entries.

        Returns:
            Number of entries removed
        """
        removed = self._repository.delete_expired(self._now(now))
        logger.info("Swept %d expired cache entries", removed)
        return removed

    def stats(self, now: datetime | None = None) -> CacheStatsEntity:
        """Aggregate hit rate and cost savings over all stored entries.

        ``now`` only decides which entries count as live.
        """
        return CacheStatsEntity.from_entries(self._repository.list_entries(), self._now(now))

    def lookup(
        self,
        prompt: str,
        model: str,
        params: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> CacheEntryEntity | None:
        """Fingerprint a request and ``get`` it."""
        return self.get(self.fingerprint(prompt, model, params), now=now)

    def store(
        self,
        prompt: str,
        model: str,
        response_data: Any,
        params: Mapping[str, Any] | None = None,
        tokens_used: int | None = None,
        cost_usd: float | None = None,
        ttl: int | float | timedelta | None = None,
        endpoint: str | None = None,
        now: datetime | None = None,
        tags: Iterable[str] | None = None,
    ) -> CacheEntryEntity:
        """Fingerprint a request and ``put`` its response.

        Unlike ``put`` this always sets an expiry: ``ttl`` if given,
        otherwise the TTL configured for ``endpoint``.
        """
        cache_key = self.fingerprint(prompt, model, params)
        return self.put(
            cache_key,
            response_data,
            model,
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            ttl=ttl if ttl is not None else self.ttl_for(endpoint),
            prompt_hash=compute_prompt_hash(prompt),
            now=now,
            tags=tags,
        )

    def ttl_for(self, endpoint: str | None) -> int:
        """TTL in seconds for responses of an endpoint."""
        if endpoint is None:
            return self._default_ttl
        return self._endpoint_ttls.get(endpoint, self._default_ttl)

    def peek(self, cache_key: str) -> CacheEntryEntity | None:
        """Read an entry without touching its accounting, expired or not."""
        self._check_key(cache_key)
        return self._repository.peek(cache_key)

    def invalidate(self, cache_key: str) -> bool:
        """Delete a specific entry.

        Returns:
            True if deleted, False otherwise
        """
        self._check_key(cache_key)
        return self._repository.delete_by_key(cache_key)

    def invalidate_tag(self, tag: str) -> int:
        """Delete every entry stored with ``tag``.

        Returns:
            Number of entries deleted

        Raises:
            ValueError: If the tag is empty
        """
        if not isinstance(tag, str) or not tag.strip():
            raise ValueError("tag must be a non-empty string")
        removed = self._repository.invalidate_tag(tag)
        logger.info("Invalidated %d cache entries tagged %r", removed, tag)
        return removed

    def clear(self) -> int:
        """Clear all cache entries.

        Returns:
            Number of entries deleted
        """
        removed = self._repository.clear_all()
        logger.info("Cleared %d cache entries", removed)
        return removed

    def is_healthy(self) -> bool:
        """Check if the backing store is reachable."""
        return self._repository.health_check()

    @property
    def default_ttl(self) -> int:
        """Get the default TTL in seconds."""
        return self._default_ttl

    @property
    def repository(self) -> ResponseCacheStore:
        """Get the underlying repository (for testing)."""
        return self._repository
