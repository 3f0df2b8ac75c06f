"""Response cache storage protocol.

Defines the interface for any backing store that can hold cache entries
keyed by fingerprint and update their hit accounting atomically.

Implementations can include:
- Redis (default, Lua scripts for atomic updates)
- In-process memory (lock-striped, for tests and single-process use)
- PostgreSQL with ``UPDATE ... RETURNING``
- Any key-value store with compare-and-swap
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from ai_cache.entities import CacheEntryEntity


@runtime_checkable
class ResponseCacheStore(Protocol):
    """Protocol for response cache storage backends.

    Any type that implements these methods satisfies the protocol,
    no explicit inheritance needed.

    Every method raises ``StorageError`` when the backend fails.

    Example:
        ```python
        from ai_cache.protocols import ResponseCacheStore

        repo: ResponseCacheStore = RedisResponseCacheRepository.create()
        repo: ResponseCacheStore = InMemoryResponseCacheRepository()
        ```
    """

    def touch(self, cache_key: str, now: datetime) -> CacheEntryEntity | None:
        """Read a live entry and record the hit in one atomic step.

        Increments ``hit_count`` and sets ``last_accessed = now``. Entries
        that are absent or expired at ``now`` are left untouched.

        Args:
            cache_key: The fingerprint to look up
            now: Time of the lookup

        Returns:
            The entry after the update, or None on a miss
        """
        ...

    def peek(self, cache_key: str) -> CacheEntryEntity | None:
        """Read an entry without updating it, expired or not.

        Args:
            cache_key: The fingerprint to look up

        Returns:
            The stored entry, or None if absent
        """
        ...

    def upsert(self, entry: CacheEntryEntity) -> CacheEntryEntity:
        """Create or replace the entry for ``entry.cache_key``.

        The entry is registered under each of its ``tags``.

        Args:
            entry: The complete entry to store

        Returns:
            The stored entry
        """
        ...

    def delete_expired(self, now: datetime) -> int:
        """Delete entries whose ``expires_at`` is set and earlier than ``now``.

        Returns:
            Number of entries deleted
        """
        ...

    def delete_by_key(self, cache_key: str) -> bool:
        """Delete a specific entry.

        Returns:
            True if deleted, False if it did not exist
        """
        ...

    def clear_all(self) -> int:
        """Delete every entry.

        Returns:
            Number of entries deleted
        """
        ...

    def list_entries(self) -> list[CacheEntryEntity]:
        """Return every stored entry, expired ones included."""
        ...

    def invalidate_tag(self, tag: str) -> int:
        """Delete every entry currently carrying ``tag``.

        Entries that were replaced without the tag since it was set are
        left alone.

        Returns:
            Number of entries deleted
        """
        ...

    def health_check(self) -> bool:
        """Check if the store is accessible.

        Returns:
            True if healthy, False otherwise
        """
        ...
