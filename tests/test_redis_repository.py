"""
Tests for the Redis repositories against a mocked client.

These tests cover key layout, reply parsing and error translation.
The scripts themselves run in test_redis_backend.py.
"""

from datetime import timedelta
from unittest.mock import MagicMock, call

import pytest
import redis

from ai_cache.entities import CacheEntryEntity
from ai_cache.errors import StorageError
from ai_cache.repositories import RedisRateLimitRepository, RedisResponseCacheRepository


def stamp(value):
    return f"{value.timestamp():.6f}"


def flatten(mapping):
    """Shape a hash the way a Lua HGETALL reply comes back."""
    return [item for pair in mapping.items() for item in pair]


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.register_script.side_effect = lambda script: MagicMock(name="script")
    return client


@pytest.fixture
def cache_repo(redis_client):
    return RedisResponseCacheRepository(redis_client=redis_client, key_prefix="test")


@pytest.fixture
def rate_repo(redis_client):
    return RedisRateLimitRepository(redis_client=redis_client, key_prefix="test")


@pytest.fixture
def stored_hash(t0):
    return {
        "cache_key": "ai:abc",
        "prompt_hash": "",
        "response_data": '{"text": "ya"}',
        "model_name": "nuru-ai",
        "tokens_used": "12",
        "cost_usd": "0.5",
        "hit_count": "2",
        "created_at": stamp(t0),
        "last_accessed": stamp(t0 + timedelta(seconds=5)),
        "expires_at": "",
    }


def test_touch_parses_script_reply(cache_repo, stored_hash, t0):
    cache_repo._touch.return_value = flatten(stored_hash)

    entry = cache_repo.touch("ai:abc", t0 + timedelta(seconds=5))

    cache_repo._touch.assert_called_once_with(
        keys=["test:entry:ai:abc"], args=[stamp(t0 + timedelta(seconds=5))]
    )
    assert entry.cache_key == "ai:abc"
    assert entry.prompt_hash is None
    assert entry.response_data == {"text": "ya"}
    assert entry.hit_count == 2
    assert entry.created_at == t0
    assert entry.last_accessed == t0 + timedelta(seconds=5)
    assert entry.expires_at is None
    assert entry.tokens_used == 12
    assert entry.cost_usd == 0.5


def test_touch_miss(cache_repo, t0):
    cache_repo._touch.return_value = None
    assert cache_repo.touch("ai:abc", t0) is None


@pytest.mark.parametrize("error", [redis.ConnectionError("refused"), redis.TimeoutError("timed out")])
def test_touch_translates_client_errors(cache_repo, t0, error):
    cache_repo._touch.side_effect = error

    with pytest.raises(StorageError) as exc_info:
        cache_repo.touch("ai:abc", t0)

    assert exc_info.value.__cause__ is error


def test_corrupt_entry_is_storage_error(cache_repo, t0):
    cache_repo._touch.return_value = ["cache_key", "ai:abc", "hit_count", "many"]
    with pytest.raises(StorageError):
        cache_repo.touch("ai:abc", t0)


def test_peek_accepts_client_dict(cache_repo, redis_client, stored_hash):
    redis_client.hgetall.return_value = stored_hash
    assert cache_repo.peek("ai:abc").model_name == "nuru-ai"
    redis_client.hgetall.assert_called_once_with("test:entry:ai:abc")


def test_upsert_with_expiry(cache_repo, redis_client, t0):
    pipe = redis_client.pipeline.return_value
    entry = CacheEntryEntity(
        cache_key="ai:abc",
        prompt_hash="deadbeef",
        response_data={"text": "ya"},
        model_name="nuru-ai",
        hit_count=1,
        created_at=t0,
        last_accessed=t0,
        expires_at=t0 + timedelta(hours=1),
        cost_usd=0.25,
    )

    assert cache_repo.upsert(entry) is entry

    redis_client.pipeline.assert_called_once_with(transaction=True)
    pipe.delete.assert_called_once_with("test:entry:ai:abc")
    mapping = pipe.hset.call_args.kwargs["mapping"]
    assert mapping["expires_at"] == stamp(t0 + timedelta(hours=1))
    assert mapping["tokens_used"] == ""
    assert mapping["cost_usd"] == "0.25"
    pipe.sadd.assert_called_once_with("test:entries", "ai:abc")
    pipe.zadd.assert_called_once_with("test:expiry", {"ai:abc": (t0 + timedelta(hours=1)).timestamp()})
    pipe.zrem.assert_not_called()
    pipe.execute.assert_called_once()


def test_upsert_without_expiry_leaves_sweep_index(cache_repo, redis_client, t0):
    pipe = redis_client.pipeline.return_value
    entry = CacheEntryEntity(
        cache_key="ai:abc",
        prompt_hash=None,
        response_data="ya",
        model_name="nuru-ai",
        hit_count=1,
        created_at=t0,
        last_accessed=t0,
    )

    cache_repo.upsert(entry)

    pipe.zadd.assert_not_called()
    pipe.zrem.assert_called_once_with("test:expiry", "ai:abc")


@pytest.mark.parametrize("reply, expected", [([1, 1, 1], True), ([0, 0, 0], False)])
def test_delete_by_key(cache_repo, redis_client, reply, expected):
    redis_client.pipeline.return_value.execute.return_value = reply
    assert cache_repo.delete_by_key("ai:abc") is expected


def test_sweep_and_clear(cache_repo, t0):
    cache_repo._sweep.return_value = 3
    cache_repo._clear.return_value = 7

    assert cache_repo.delete_expired(t0) == 3
    cache_repo._sweep.assert_called_once_with(
        keys=["test:expiry", "test:entries"], args=[stamp(t0), "test:entry:"]
    )
    assert cache_repo.clear_all() == 7
    cache_repo._clear.assert_called_once_with(
        keys=["test:entries", "test:expiry", "test:tags"], args=["test:entry:"]
    )


def test_list_entries_skips_vanished_keys(cache_repo, redis_client, stored_hash):
    redis_client.smembers.return_value = {"ai:abc", "ai:gone"}
    redis_client.pipeline.return_value.execute.return_value = [stored_hash, {}]

    entries = cache_repo.list_entries()

    assert [e.cache_key for e in entries] == ["ai:abc"]


def test_upsert_registers_tags(cache_repo, redis_client, t0):
    pipe = redis_client.pipeline.return_value
    entry = CacheEntryEntity(
        cache_key="ai:abc",
        prompt_hash=None,
        response_data="ya",
        model_name="nuru-ai",
        hit_count=1,
        created_at=t0,
        last_accessed=t0,
        tags=("lesson 7", "kpelle"),
    )

    cache_repo.upsert(entry)

    mapping = pipe.hset.call_args.kwargs["mapping"]
    assert mapping["tag:lesson 7"] == 1
    assert mapping["tag:kpelle"] == 1
    assert pipe.sadd.call_args_list[1:] == [
        call("test:tag:lesson%207", "ai:abc"),
        call("test:tags", "test:tag:lesson%207"),
        call("test:tag:kpelle", "ai:abc"),
        call("test:tags", "test:tag:kpelle"),
    ]


def test_tags_parsed_from_hash(cache_repo, redis_client, stored_hash):
    redis_client.hgetall.return_value = dict(stored_hash, **{"tag:vai": "1", "tag:kpelle": "1"})
    assert cache_repo.peek("ai:abc").tags == ("kpelle", "vai")


def test_invalidate_tag(cache_repo):
    cache_repo._invalidate_tag.return_value = 2

    assert cache_repo.invalidate_tag("lesson:7") == 2
    cache_repo._invalidate_tag.assert_called_once_with(
        keys=["test:tag:lesson%3A7", "test:entries", "test:expiry", "test:tags"],
        args=["test:entry:", "tag:lesson:7"],
    )


def test_health_check(cache_repo, redis_client):
    redis_client.ping.return_value = True
    assert cache_repo.health_check() is True

    redis_client.ping.side_effect = redis.ConnectionError("down")
    assert cache_repo.health_check() is False


def window_hash(t0, count):
    return {
        "identifier": "user:42",
        "endpoint": "generate-lesson",
        "request_count": str(count),
        "limit": "3",
        "window_start": stamp(t0),
        "reset_at": stamp(t0 + timedelta(seconds=60)),
        "created_at": stamp(t0),
        "index": "ignored",
    }


def test_acquire(rate_repo, t0):
    rate_repo._acquire.return_value = [0, flatten(window_hash(t0, 3))]

    window, counted = rate_repo.acquire("user:42", "generate-lesson", t0, 3, timedelta(seconds=60))

    assert counted is False
    assert window.request_count == 3
    assert window.limit == 3
    assert window.identifier == "user:42"
    assert window.reset_at == t0 + timedelta(seconds=60)

    base = "test:rate:user%3A42:generate-lesson"
    rate_repo._acquire.assert_called_once_with(
        keys=[f"{base}:current", f"{base}:windows", "test:rate:reset"],
        args=[stamp(t0), 3, stamp(t0 + timedelta(seconds=60)), f"{base}:window:", "user:42", "generate-lesson"],
    )


def test_acquire_translates_timeout(rate_repo, t0):
    rate_repo._acquire.side_effect = redis.TimeoutError("timed out")
    with pytest.raises(StorageError):
        rate_repo.acquire("user:42", "generate-lesson", t0, 3, timedelta(seconds=60))


def test_key_quoting_separates_pairs(rate_repo):
    assert rate_repo._base_key("a:b", "c") != rate_repo._base_key("a", "b:c")


def test_current_window(rate_repo, t0):
    rate_repo._current.return_value = None
    assert rate_repo.current_window("user:42", "generate-lesson", t0) is None

    rate_repo._current.return_value = flatten(window_hash(t0, 2))
    assert rate_repo.current_window("user:42", "generate-lesson", t0).request_count == 2


def test_list_windows(rate_repo, redis_client, t0):
    redis_client.zrange.return_value = [stamp(t0)]
    redis_client.pipeline.return_value.execute.return_value = [window_hash(t0, 3)]

    windows = rate_repo.list_windows("user:42", "generate-lesson")

    assert len(windows) == 1
    redis_client.pipeline.return_value.hgetall.assert_called_once_with(
        f"test:rate:user%3A42:generate-lesson:window:{stamp(t0)}"
    )


def test_purge(rate_repo, t0):
    rate_repo._purge.return_value = 4
    assert rate_repo.delete_windows_before(t0) == 4
    rate_repo._purge.assert_called_once_with(keys=["test:rate:reset"], args=[stamp(t0)])
