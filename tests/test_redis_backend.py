"""
Tests for the Redis backend running its Lua scripts on fakeredis.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import fakeredis
import pytest

from ai_cache.fingerprint import fingerprint
from ai_cache.repositories import RedisRateLimitRepository, RedisResponseCacheRepository
from ai_cache.services import RateLimiter, ResponseCache

USER = "user-42"
ENDPOINT = "generate-lesson"
KEY = fingerprint("Translate 'water' to Kpelle", "nuru-ai")
RESPONSE = {"text": "ya"}


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    client.close()


@pytest.fixture
def redis_cache(redis_client) -> ResponseCache:
    repository = RedisResponseCacheRepository(redis_client=redis_client, key_prefix="p")
    return ResponseCache(repository, default_ttl=3600)


@pytest.fixture
def redis_limiter(redis_client) -> RateLimiter:
    repository = RedisRateLimitRepository(redis_client=redis_client, key_prefix="p")
    return RateLimiter(repository, default_limit=100, default_window=900, failure_policy="raise")


def admit(limiter, t0, offset, identifier=USER, limit=3, window=60):
    return limiter.admit(identifier, ENDPOINT, now=t0 + timedelta(seconds=offset), limit=limit, window=window)


def test_hit_accounting(redis_cache, t0):
    redis_cache.put(KEY, RESPONSE, "nuru-ai", tokens_used=12, cost_usd=0.25, ttl=3600, now=t0)

    for i in range(1, 4):
        entry = redis_cache.get(KEY, now=t0 + timedelta(seconds=i))
        assert entry.hit_count == 1 + i

    assert entry.last_accessed == t0 + timedelta(seconds=3)
    assert entry.created_at == t0
    assert entry.response_data == RESPONSE
    assert entry.cost_usd == 0.25
    assert redis_cache.stats(now=t0).total_hits == 3


def test_expiry_boundary(redis_cache, t0):
    redis_cache.put(KEY, RESPONSE, "nuru-ai", ttl=10, now=t0)
    expires_at = t0 + timedelta(seconds=10)

    assert redis_cache.get(KEY, now=expires_at - timedelta(milliseconds=1)) is not None
    assert redis_cache.get(KEY, now=expires_at) is None
    assert redis_cache.peek(KEY).hit_count == 2


def test_sweep_spares_entries_without_expiry(redis_cache, redis_client, t0):
    expiring = fingerprint("expiring", "nuru-ai")
    redis_cache.put(expiring, RESPONSE, "nuru-ai", ttl=10, now=t0)
    redis_cache.put(KEY, RESPONSE, "nuru-ai", now=t0)

    assert redis_cache.sweep_expired(now=t0 + timedelta(seconds=50)) == 1
    assert redis_cache.peek(expiring) is None
    assert redis_cache.get(KEY, now=t0 + timedelta(days=3650)) is not None
    assert redis_client.zcard("p:expiry") == 0
    assert redis_client.smembers("p:entries") == {KEY}


def test_put_replace_resets_hits(redis_cache, redis_client, t0):
    redis_cache.put(KEY, {"text": "old"}, "nuru-ai", ttl=60, now=t0)
    redis_cache.get(KEY, now=t0 + timedelta(seconds=1))
    redis_cache.get(KEY, now=t0 + timedelta(seconds=2))

    redis_cache.put(KEY, {"text": "new"}, "nuru-ai", now=t0 + timedelta(seconds=3))

    entry = redis_cache.peek(KEY)
    assert entry.response_data == {"text": "new"}
    assert entry.hit_count == 1
    assert entry.expires_at is None
    assert redis_client.zscore("p:expiry", KEY) is None


def test_invalidate_tag(redis_cache, redis_client, t0):
    lesson_a = fingerprint("lesson a", "nuru-ai")
    lesson_b = fingerprint("lesson b", "nuru-ai")
    redis_cache.put(lesson_a, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["lesson:7", "kpelle"])
    redis_cache.put(lesson_b, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["lesson:7"])
    redis_cache.put(KEY, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["kpelle"])

    assert redis_cache.peek(lesson_a).tags == ("kpelle", "lesson:7")
    assert redis_cache.invalidate_tag("lesson:7") == 2

    assert redis_cache.peek(lesson_a) is None
    assert redis_cache.peek(lesson_b) is None
    assert redis_cache.peek(KEY) is not None
    assert redis_client.smembers("p:entries") == {KEY}
    assert redis_client.zcard("p:expiry") == 1
    assert not redis_client.exists("p:tag:lesson%3A7")
    assert redis_cache.invalidate_tag("lesson:7") == 0


def test_invalidate_tag_skips_retagged_entries(redis_cache, t0):
    redis_cache.put(KEY, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["kpelle"])
    redis_cache.put(KEY, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["vai"])

    assert redis_cache.invalidate_tag("kpelle") == 0
    assert redis_cache.peek(KEY).tags == ("vai",)


def test_clear_leaves_no_keys(redis_cache, redis_client, t0):
    redis_cache.put(KEY, RESPONSE, "nuru-ai", ttl=60, now=t0, tags=["kpelle"])
    redis_cache.put(fingerprint("other", "nuru-ai"), RESPONSE, "nuru-ai", now=t0)

    assert redis_cache.clear() == 2
    assert redis_client.keys("p:*") == []


def test_example_scenario(redis_limiter, t0):
    results = [admit(redis_limiter, t0, offset) for offset in (0, 1, 2, 3, 4)]

    assert [r.admitted for r in results] == [True, True, True, False, False]
    assert [r.count for r in results] == [1, 2, 3, 3, 3]
    assert all(r.reset_at == t0 + timedelta(seconds=60) for r in results)

    rolled = admit(redis_limiter, t0, 61)
    assert rolled.admitted is True
    assert rolled.count == 1
    assert rolled.reset_at == t0 + timedelta(seconds=121)


def test_new_window_exactly_at_reset(redis_limiter, t0):
    for _ in range(3):
        admit(redis_limiter, t0, 0)

    assert admit(redis_limiter, t0, 59.5).admitted is False
    at_reset = admit(redis_limiter, t0, 60)
    assert at_reset.admitted is True
    assert at_reset.count == 1


def test_rollover_keeps_history(redis_limiter, t0):
    for offset in (0, 1, 2, 3):
        admit(redis_limiter, t0, offset)
    admit(redis_limiter, t0, 61)
    admit(redis_limiter, t0, 130)

    history = redis_limiter.history(USER, ENDPOINT)

    assert [w.window_start for w in history] == [t0, t0 + timedelta(seconds=61), t0 + timedelta(seconds=130)]
    assert [w.request_count for w in history] == [3, 1, 1]
    usage = redis_limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=131))
    assert usage.count == 1
    assert usage.limit == 3


def test_concurrent_admission(redis_limiter, t0):
    limit, extra = 10, 15
    barrier = threading.Barrier(limit + extra)

    def request(_):
        barrier.wait()
        return admit(redis_limiter, t0, 0, limit=limit)

    with ThreadPoolExecutor(max_workers=limit + extra) as pool:
        results = list(pool.map(request, range(limit + extra)))

    assert sum(r.admitted for r in results) == limit
    assert redis_limiter.current_usage(USER, ENDPOINT, now=t0).count == limit
    assert len(redis_limiter.history(USER, ENDPOINT)) == 1


def test_purge_leaves_no_keys_for_closed_windows(redis_limiter, redis_client, t0):
    for i in range(50):
        admit(redis_limiter, t0, 0, identifier=f"10.0.0.{i}")

    assert redis_limiter.purge_windows(now=t0 + timedelta(hours=1)) == 50
    assert redis_client.keys("p:rate:*") == []


def test_purge_keeps_live_window_pointer(redis_limiter, t0):
    admit(redis_limiter, t0, 0)
    admit(redis_limiter, t0, 3590)

    assert redis_limiter.purge_windows(now=t0 + timedelta(seconds=3600)) == 1

    usage = redis_limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=3600))
    assert usage.count == 1
    assert admit(redis_limiter, t0, 3600).count == 2
    assert len(redis_limiter.history(USER, ENDPOINT)) == 1
