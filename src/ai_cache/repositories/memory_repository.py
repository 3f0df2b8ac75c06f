"""In-process implementations of the storage protocols.

Entries are spread over a fixed number of shards, each guarded by its
own lock, so operations on unrelated keys do not contend. Whole-store
operations (sweeps, stats, purges) visit the shards one at a time and
never hold more than one lock.

Suitable for tests and single-process deployments. State is lost when
the process exits.
"""

import threading
from collections.abc import Hashable, Iterator
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from ai_cache.entities import CacheEntryEntity, RateLimitWindowEntity

DEFAULT_STRIPES = 64

T = TypeVar("T")


class _StripedShards(Generic[T]):
    """Dictionaries partitioned by key hash, one lock per partition."""

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._shards: list[dict[Hashable, T]] = [{} for _ in range(stripes)]

    def locate(self, key: Hashable) -> tuple[threading.Lock, dict[Hashable, T]]:
        index = hash(key) % len(self._shards)
        return self._locks[index], self._shards[index]

    def __iter__(self) -> Iterator[tuple[threading.Lock, dict[Hashable, T]]]:
        return iter(zip(self._locks, self._shards))


class InMemoryResponseCacheRepository:
    """Memory implementation of the ResponseCacheStore protocol.

    This class satisfies the ResponseCacheStore protocol through
    structural typing - no explicit inheritance needed.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        self._entries: _StripedShards[CacheEntryEntity] = _StripedShards(stripes)
        # tag -> cache keys; may hold keys that were since deleted or re-tagged
        self._tags: _StripedShards[set[str]] = _StripedShards(stripes)

    def touch(self, cache_key: str, now: datetime) -> CacheEntryEntity | None:
        lock, shard = self._entries.locate(cache_key)
        with lock:
            entry = shard.get(cache_key)
            if entry is None or not entry.is_live(now):
                return None
            updated = replace(
                entry,
                hit_count=entry.hit_count + 1,
                last_accessed=max(now, entry.created_at),
            )
            shard[cache_key] = updated
            return updated

    def peek(self, cache_key: str) -> CacheEntryEntity | None:
        lock, shard = self._entries.locate(cache_key)
        with lock:
            return shard.get(cache_key)

    def upsert(self, entry: CacheEntryEntity) -> CacheEntryEntity:
        lock, shard = self._entries.locate(entry.cache_key)
        with lock:
            shard[entry.cache_key] = entry
        for tag in entry.tags:
            tag_lock, tag_shard = self._tags.locate(tag)
            with tag_lock:
                tag_shard.setdefault(tag, set()).add(entry.cache_key)
        return entry

    def delete_expired(self, now: datetime) -> int:
        removed = 0
        for lock, shard in self._entries:
            with lock:
                expired = [
                    key
                    for key, entry in shard.items()
                    if entry.expires_at is not None and entry.expires_at < now
                ]
                for key in expired:
                    del shard[key]
                removed += len(expired)
        return removed

    def delete_by_key(self, cache_key: str) -> bool:
        lock, shard = self._entries.locate(cache_key)
        with lock:
            return shard.pop(cache_key, None) is not None

    def invalidate_tag(self, tag: str) -> int:
        tag_lock, tag_shard = self._tags.locate(tag)
        with tag_lock:
            cache_keys = tag_shard.pop(tag, set())

        removed = 0
        for cache_key in cache_keys:
            lock, shard = self._entries.locate(cache_key)
            with lock:
                entry = shard.get(cache_key)
                if entry is not None and tag in entry.tags:
                    del shard[cache_key]
                    removed += 1
        return removed

    def clear_all(self) -> int:
        removed = 0
        for lock, shard in self._entries:
            with lock:
                removed += len(shard)
                shard.clear()
        for lock, shard in self._tags:
            with lock:
                shard.clear()
        return removed

    def list_entries(self) -> list[CacheEntryEntity]:
        entries: list[CacheEntryEntity] = []
        for lock, shard in self._entries:
            with lock:
                entries.extend(shard.values())
        return entries

    def health_check(self) -> bool:
        return True


class InMemoryRateLimitRepository:
    """Memory implementation of the RateLimitStore protocol.

    Each (identifier, endpoint) pair maps to its list of windows, oldest
    first. Only the last window can be live, and only the live window is
    ever replaced.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        self._windows: _StripedShards[list[RateLimitWindowEntity]] = _StripedShards(stripes)

    def acquire(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> tuple[RateLimitWindowEntity, bool]:
        pair = (identifier, endpoint)
        lock, shard = self._windows.locate(pair)
        with lock:
            history = shard.setdefault(pair, [])
            current = history[-1] if history and history[-1].is_live(now) else None

            if current is None:
                opened = RateLimitWindowEntity(
                    identifier=identifier,
                    endpoint=endpoint,
                    request_count=1,
                    limit=limit,
                    window_start=now,
                    reset_at=now + window,
                    created_at=now,
                )
                history.append(opened)
                return opened, True

            counted = current.request_count < limit
            updated = replace(
                current,
                request_count=current.request_count + 1 if counted else current.request_count,
                limit=limit,
            )
            history[-1] = updated
            return updated, counted

    def current_window(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
    ) -> RateLimitWindowEntity | None:
        pair = (identifier, endpoint)
        lock, shard = self._windows.locate(pair)
        with lock:
            history = shard.get(pair)
            if history and history[-1].is_live(now):
                return history[-1]
            return None

    def list_windows(self, identifier: str, endpoint: str) -> list[RateLimitWindowEntity]:
        pair = (identifier, endpoint)
        lock, shard = self._windows.locate(pair)
        with lock:
            return list(shard.get(pair, []))

    def delete_windows_before(self, cutoff: datetime) -> int:
        removed = 0
        for lock, shard in self._windows:
            with lock:
                for pair in list(shard):
                    kept = [w for w in shard[pair] if w.reset_at >= cutoff]
                    removed += len(shard[pair]) - len(kept)
                    if kept:
                        shard[pair] = kept
                    else:
                        del shard[pair]
        return removed

    def health_check(self) -> bool:
        return True
