"""Redis implementations of the storage protocols.

Every read-modify-write runs as a single server-side Lua script, so hit
accounting and rate limit counters are updated atomically per key
without client-side locks. Timestamps are stored as Unix seconds with
microsecond precision.

Key layout (``<p>`` is the configured prefix):

    <p>:entry:<cache_key>            hash    one cache entry
    <p>:entries                      set     all cache keys
    <p>:expiry                       zset    cache_key scored by expires_at
    <p>:tag:<tag>                    set     cache keys stored with the tag
    <p>:tags                         set     all tag set keys
    <p>:rate:<id>:<endpoint>:current string  window_start of latest window
    <p>:rate:<id>:<endpoint>:windows zset    window_start of every window
    <p>:rate:<id>:<endpoint>:window:<start>  hash  one window
    <p>:rate:reset                   zset    window keys scored by reset_at
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote

import redis

from ai_cache.config import get_redis_client, settings
from ai_cache.entities import CacheEntryEntity, RateLimitWindowEntity
from ai_cache.errors import StorageError
from ai_cache.utils import from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

_TAG_FIELD = "tag:"

_TOUCH_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return nil
end
local expires_at = redis.call('HGET', KEYS[1], 'expires_at')
if expires_at and expires_at ~= '' and tonumber(expires_at) <= tonumber(ARGV[1]) then
    return nil
end
local stamp = ARGV[1]
local created_at = redis.call('HGET', KEYS[1], 'created_at')
if created_at and tonumber(created_at) > tonumber(ARGV[1]) then
    stamp = created_at
end
redis.call('HINCRBY', KEYS[1], 'hit_count', 1)
redis.call('HSET', KEYS[1], 'last_accessed', stamp)
return redis.call('HGETALL', KEYS[1])
"""

_SWEEP_SCRIPT = """
local expired = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[1])
for _, key in ipairs(expired) do
    redis.call('DEL', ARGV[2] .. key)
    redis.call('SREM', KEYS[2], key)
    redis.call('ZREM', KEYS[1], key)
end
return #expired
"""

_CLEAR_SCRIPT = """
local keys = redis.call('SMEMBERS', KEYS[1])
for _, key in ipairs(keys) do
    redis.call('DEL', ARGV[1] .. key)
end
for _, tkey in ipairs(redis.call('SMEMBERS', KEYS[3])) do
    redis.call('DEL', tkey)
end
redis.call('DEL', KEYS[1], KEYS[2], KEYS[3])
return #keys
"""

_INVALIDATE_TAG_SCRIPT = """
local removed = 0
for _, key in ipairs(redis.call('SMEMBERS', KEYS[1])) do
    local ekey = ARGV[1] .. key
    if redis.call('HEXISTS', ekey, ARGV[2]) == 1 then
        redis.call('DEL', ekey)
        redis.call('SREM', KEYS[2], key)
        redis.call('ZREM', KEYS[3], key)
        removed = removed + 1
    end
end
redis.call('DEL', KEYS[1])
redis.call('SREM', KEYS[4], KEYS[1])
return removed
"""

_ACQUIRE_SCRIPT = """
local now = tonumber(ARGV[1])
local limit = tonumber(ARGV[2])
local current = redis.call('GET', KEYS[1])
if current then
    local wkey = ARGV[4] .. current
    local reset_at = redis.call('HGET', wkey, 'reset_at')
    if reset_at and tonumber(reset_at) > now then
        local counted = 0
        if tonumber(redis.call('HGET', wkey, 'request_count')) < limit then
            redis.call('HINCRBY', wkey, 'request_count', 1)
            counted = 1
        end
        redis.call('HSET', wkey, 'limit', ARGV[2])
        return {counted, redis.call('HGETALL', wkey)}
    end
end
local wkey = ARGV[4] .. ARGV[1]
redis.call('HSET', wkey,
    'identifier', ARGV[5], 'endpoint', ARGV[6],
    'request_count', 1, 'limit', ARGV[2],
    'window_start', ARGV[1], 'reset_at', ARGV[3], 'created_at', ARGV[1],
    'index', KEYS[2], 'pointer', KEYS[1])
redis.call('SET', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], ARGV[1], ARGV[1])
redis.call('ZADD', KEYS[3], ARGV[3], wkey)
return {1, redis.call('HGETALL', wkey)}
"""

_CURRENT_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    return nil
end
local wkey = ARGV[1] .. current
local reset_at = redis.call('HGET', wkey, 'reset_at')
if not reset_at or tonumber(reset_at) <= tonumber(ARGV[2]) then
    return nil
end
return redis.call('HGETALL', wkey)
"""

_PURGE_SCRIPT = """
local keys = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[1])
for _, wkey in ipairs(keys) do
    local index = redis.call('HGET', wkey, 'index')
    local pointer = redis.call('HGET', wkey, 'pointer')
    local start = redis.call('HGET', wkey, 'window_start')
    if index and start then
        redis.call('ZREM', index, start)
    end
    if pointer and start and redis.call('GET', pointer) == start then
        redis.call('DEL', pointer)
    end
    redis.call('DEL', wkey)
    redis.call('ZREM', KEYS[1], wkey)
end
return #keys
"""


def _stamp(value: datetime) -> str:
    return f"{to_timestamp(value):.6f}"


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _pairs_to_dict(flat: list[Any] | dict[Any, Any]) -> dict[str, str]:
    """Turn an HGETALL reply (flat list from Lua, dict from the client) into a dict."""
    if isinstance(flat, dict):
        return {_text(k): _text(v) for k, v in flat.items()}
    items = [_text(item) for item in flat]
    return dict(zip(items[0::2], items[1::2]))


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate client and decoding failures into StorageError."""
    try:
        yield
    except redis.RedisError as e:
        raise StorageError(f"Redis {operation} failed: {e}") from e
    except (KeyError, ValueError, TypeError) as e:
        raise StorageError(f"Corrupt data during {operation}: {e}") from e


class RedisResponseCacheRepository:
    """Redis implementation of the ResponseCacheStore protocol.

    This class satisfies the ResponseCacheStore protocol through
    structural typing - no explicit inheritance needed.

    Entries are not given a Redis TTL: expiry is checked on every read
    and expired hashes are removed by ``delete_expired``.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        key_prefix: str | None = None,
    ) -> None:
        """Initialize the Redis cache repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            key_prefix: Namespace for all keys. Defaults to settings.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = key_prefix or settings.key_prefix
        self._entry_prefix = f"{self._prefix}:entry:"
        self._index_key = f"{self._prefix}:entries"
        self._expiry_key = f"{self._prefix}:expiry"
        self._tag_index_key = f"{self._prefix}:tags"

        self._touch = self._client.register_script(_TOUCH_SCRIPT)
        self._sweep = self._client.register_script(_SWEEP_SCRIPT)
        self._clear = self._client.register_script(_CLEAR_SCRIPT)
        self._invalidate_tag = self._client.register_script(_INVALIDATE_TAG_SCRIPT)

    @classmethod
    def create(cls, key_prefix: str | None = None) -> "RedisResponseCacheRepository":
        """Factory method to create RedisResponseCacheRepository with defaults.

        Args:
            key_prefix: Key namespace. If None, uses settings.

        Returns:
            Configured RedisResponseCacheRepository
        """
        return cls(key_prefix=key_prefix)

    def _entry_key(self, cache_key: str) -> str:
        return f"{self._entry_prefix}{cache_key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self._prefix}:tag:{quote(tag, safe='')}"

    @staticmethod
    def _to_mapping(entry: CacheEntryEntity) -> dict[str, str | int]:
        mapping: dict[str, str | int] = {
            "cache_key": entry.cache_key,
            "prompt_hash": entry.prompt_hash or "",
            "response_data": json.dumps(entry.response_data),
            "model_name": entry.model_name,
            "tokens_used": "" if entry.tokens_used is None else str(entry.tokens_used),
            "cost_usd": "" if entry.cost_usd is None else repr(float(entry.cost_usd)),
            "hit_count": entry.hit_count,
            "created_at": _stamp(entry.created_at),
            "last_accessed": _stamp(entry.last_accessed),
            "expires_at": "" if entry.expires_at is None else _stamp(entry.expires_at),
        }
        # One field per tag so scripts can test membership with HEXISTS
        mapping.update({f"{_TAG_FIELD}{tag}": 1 for tag in entry.tags})
        return mapping

    @staticmethod
    def _from_mapping(data: dict[str, str]) -> CacheEntryEntity:
        return CacheEntryEntity(
            cache_key=data["cache_key"],
            prompt_hash=data.get("prompt_hash") or None,
            response_data=json.loads(data["response_data"]),
            model_name=data["model_name"],
            hit_count=int(data["hit_count"]),
            created_at=from_timestamp(data["created_at"]),
            last_accessed=from_timestamp(data["last_accessed"]),
            expires_at=from_timestamp(data["expires_at"]) if data.get("expires_at") else None,
            tokens_used=int(data["tokens_used"]) if data.get("tokens_used") else None,
            cost_usd=float(data["cost_usd"]) if data.get("cost_usd") else None,
            tags=tuple(sorted(k[len(_TAG_FIELD):] for k in data if k.startswith(_TAG_FIELD))),
        )

    def touch(self, cache_key: str, now: datetime) -> CacheEntryEntity | None:
        with _storage_errors("touch"):
            reply = self._touch(keys=[self._entry_key(cache_key)], args=[_stamp(now)])
            if not reply:
                return None
            return self._from_mapping(_pairs_to_dict(reply))

    def peek(self, cache_key: str) -> CacheEntryEntity | None:
        with _storage_errors("peek"):
            data = self._client.hgetall(self._entry_key(cache_key))
            if not data:
                return None
            return self._from_mapping(_pairs_to_dict(data))

    def upsert(self, entry: CacheEntryEntity) -> CacheEntryEntity:
        key = self._entry_key(entry.cache_key)
        with _storage_errors("upsert"):
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=self._to_mapping(entry))
            pipe.sadd(self._index_key, entry.cache_key)
            for tag in entry.tags:
                pipe.sadd(self._tag_key(tag), entry.cache_key)
                pipe.sadd(self._tag_index_key, self._tag_key(tag))
            if entry.expires_at is not None:
                pipe.zadd(self._expiry_key, {entry.cache_key: to_timestamp(entry.expires_at)})
            else:
                pipe.zrem(self._expiry_key, entry.cache_key)
            pipe.execute()
        return entry

    def delete_expired(self, now: datetime) -> int:
        with _storage_errors("sweep"):
            removed = self._sweep(
                keys=[self._expiry_key, self._index_key],
                args=[_stamp(now), self._entry_prefix],
            )
            return int(removed)

    def delete_by_key(self, cache_key: str) -> bool:
        with _storage_errors("delete"):
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(self._entry_key(cache_key))
            pipe.srem(self._index_key, cache_key)
            pipe.zrem(self._expiry_key, cache_key)
            deleted, _, _ = pipe.execute()
            return int(deleted) > 0

    def clear_all(self) -> int:
        with _storage_errors("clear"):
            removed = self._clear(
                keys=[self._index_key, self._expiry_key, self._tag_index_key],
                args=[self._entry_prefix],
            )
            return int(removed)

    def list_entries(self) -> list[CacheEntryEntity]:
        with _storage_errors("list"):
            cache_keys = [_text(k) for k in self._client.smembers(self._index_key)]
            if not cache_keys:
                return []
            pipe = self._client.pipeline(transaction=False)
            for cache_key in cache_keys:
                pipe.hgetall(self._entry_key(cache_key))
            # Entries deleted between SMEMBERS and HGETALL come back empty
            return [self._from_mapping(_pairs_to_dict(data)) for data in pipe.execute() if data]

    def invalidate_tag(self, tag: str) -> int:
        with _storage_errors("invalidate tag"):
            removed = self._invalidate_tag(
                keys=[self._tag_key(tag), self._index_key, self._expiry_key, self._tag_index_key],
                args=[self._entry_prefix, f"{_TAG_FIELD}{tag}"],
            )
            return int(removed)

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("Redis health check failed: %s", e)
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client


class RedisRateLimitRepository:
    """Redis implementation of the RateLimitStore protocol.

    Each admission is one Lua script call, so two concurrent requests on
    the same (identifier, endpoint) can never both take the last slot.
    Past windows stay in Redis until ``delete_windows_before`` removes them.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        key_prefix: str | None = None,
    ) -> None:
        """Initialize the Redis rate limit repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            key_prefix: Namespace for all keys. Defaults to settings.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = key_prefix or settings.key_prefix
        self._reset_index_key = f"{self._prefix}:rate:reset"

        self._acquire = self._client.register_script(_ACQUIRE_SCRIPT)
        self._current = self._client.register_script(_CURRENT_SCRIPT)
        self._purge = self._client.register_script(_PURGE_SCRIPT)

    @classmethod
    def create(cls, key_prefix: str | None = None) -> "RedisRateLimitRepository":
        """Factory method to create RedisRateLimitRepository with defaults."""
        return cls(key_prefix=key_prefix)

    def _base_key(self, identifier: str, endpoint: str) -> str:
        # Quoting keeps "a:b"/"c" and "a"/"b:c" apart
        return f"{self._prefix}:rate:{quote(identifier, safe='')}:{quote(endpoint, safe='')}"

    @staticmethod
    def _from_mapping(data: dict[str, str]) -> RateLimitWindowEntity:
        return RateLimitWindowEntity(
            identifier=data["identifier"],
            endpoint=data["endpoint"],
            request_count=int(data["request_count"]),
            limit=int(data["limit"]),
            window_start=from_timestamp(data["window_start"]),
            reset_at=from_timestamp(data["reset_at"]),
            created_at=from_timestamp(data["created_at"]),
        )

    def acquire(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> tuple[RateLimitWindowEntity, bool]:
        base = self._base_key(identifier, endpoint)
        with _storage_errors("acquire"):
            counted, reply = self._acquire(
                keys=[f"{base}:current", f"{base}:windows", self._reset_index_key],
                args=[
                    _stamp(now),
                    limit,
                    _stamp(now + window),
                    f"{base}:window:",
                    identifier,
                    endpoint,
                ],
            )
            return self._from_mapping(_pairs_to_dict(reply)), bool(int(counted))

    def current_window(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
    ) -> RateLimitWindowEntity | None:
        base = self._base_key(identifier, endpoint)
        with _storage_errors("current window"):
            reply = self._current(keys=[f"{base}:current"], args=[f"{base}:window:", _stamp(now)])
            if not reply:
                return None
            return self._from_mapping(_pairs_to_dict(reply))

    def list_windows(self, identifier: str, endpoint: str) -> list[RateLimitWindowEntity]:
        base = self._base_key(identifier, endpoint)
        with _storage_errors("list windows"):
            starts = [_text(s) for s in self._client.zrange(f"{base}:windows", 0, -1)]
            if not starts:
                return []
            pipe = self._client.pipeline(transaction=False)
            for start in starts:
                pipe.hgetall(f"{base}:window:{start}")
            return [self._from_mapping(_pairs_to_dict(data)) for data in pipe.execute() if data]

    def delete_windows_before(self, cutoff: datetime) -> int:
        with _storage_errors("purge"):
            return int(self._purge(keys=[self._reset_index_key], args=[_stamp(cutoff)]))

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("Redis health check failed: %s", e)
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
