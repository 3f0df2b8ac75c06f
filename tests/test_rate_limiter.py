"""
Tests for the fixed-window rate limiter on the in-memory store.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from ai_cache.errors import StorageError
from ai_cache.services import FailurePolicy, RateLimiter

USER = "user-42"
ENDPOINT = "generate-lesson"


def admit(limiter, t0, offset, limit=3, window=60, identifier=USER, endpoint=ENDPOINT):
    return limiter.admit(identifier, endpoint, now=t0 + timedelta(seconds=offset), limit=limit, window=window)


def test_example_scenario(limiter, t0):
    """Limit 3 per 60s: three admitted, two rejected, then a fresh window."""
    results = [admit(limiter, t0, offset) for offset in (0, 1, 2, 3, 4)]

    assert [r.admitted for r in results] == [True, True, True, False, False]
    assert [r.count for r in results] == [1, 2, 3, 3, 3]
    assert all(r.reset_at == t0 + timedelta(seconds=60) for r in results)
    assert [r.remaining for r in results] == [2, 1, 0, 0, 0]

    rolled = admit(limiter, t0, 61)
    assert rolled.admitted is True
    assert rolled.count == 1
    assert rolled.reset_at == t0 + timedelta(seconds=121)


@pytest.mark.parametrize("limit", [1, 2, 5, 10])
def test_exactly_limit_admitted_per_window(limiter, t0, limit):
    results = [admit(limiter, t0, 0, limit=limit) for _ in range(limit + 4)]
    assert sum(r.admitted for r in results) == limit
    assert all(r.admitted for r in results[:limit])


def test_window_end_is_exclusive(limiter, t0):
    for _ in range(3):
        admit(limiter, t0, 0)

    assert admit(limiter, t0, 59.999).admitted is False
    at_reset = admit(limiter, t0, 60)
    assert at_reset.admitted is True
    assert at_reset.count == 1


def test_rejections_are_not_counted(limiter, t0):
    for offset in range(10):
        admit(limiter, t0, offset)

    usage = limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=10))
    assert usage.count == 3
    assert usage.remaining == 0


def test_rollover_after_long_rejection_streak(limiter, t0):
    for offset in range(50):
        admit(limiter, t0, offset)

    assert admit(limiter, t0, 60).admitted is True


def test_retry_after(limiter, t0):
    for _ in range(3):
        admit(limiter, t0, 0)

    rejected = admit(limiter, t0, 10.5)
    now = t0 + timedelta(seconds=10.5)
    assert rejected.retry_after_seconds(now) == 50
    assert rejected.retry_after_seconds(t0 + timedelta(seconds=59.9)) == 1


def test_history_keeps_closed_windows(limiter, t0):
    for offset in (0, 1, 2, 3):
        admit(limiter, t0, offset)
    admit(limiter, t0, 61)
    admit(limiter, t0, 130)

    history = limiter.history(USER, ENDPOINT)

    assert [w.window_start for w in history] == [
        t0,
        t0 + timedelta(seconds=61),
        t0 + timedelta(seconds=130),
    ]
    assert [w.request_count for w in history] == [3, 1, 1]
    assert all(w.reset_at - w.window_start == timedelta(seconds=60) for w in history)


def test_pairs_are_independent(limiter, t0):
    for _ in range(3):
        admit(limiter, t0, 0)

    assert admit(limiter, t0, 0).admitted is False
    assert admit(limiter, t0, 0, identifier="user-7").admitted is True
    assert admit(limiter, t0, 0, endpoint="chat").admitted is True


def test_current_usage_does_not_count(limiter, t0):
    assert limiter.current_usage(USER, ENDPOINT, now=t0) is None

    admit(limiter, t0, 0)
    for _ in range(5):
        usage = limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=1))
    assert usage.count == 1
    assert usage.limit == 3
    assert usage.remaining == 2
    assert usage.reset_at == t0 + timedelta(seconds=60)

    assert limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=60)) is None


def test_default_limit_and_window(rate_limit_repository, t0):
    limiter = RateLimiter(rate_limit_repository, default_limit=2, default_window=timedelta(minutes=5))

    results = [limiter.admit(USER, ENDPOINT, now=t0) for _ in range(3)]

    assert [r.admitted for r in results] == [True, True, False]
    assert results[0].reset_at == t0 + timedelta(minutes=5)


def test_concurrent_admission_never_exceeds_limit(limiter, t0):
    limit = 10
    barrier = threading.Barrier(20)

    def request(_):
        barrier.wait()
        return limiter.admit(USER, ENDPOINT, now=t0, limit=limit, window=60)

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(request, range(20)))

    assert sum(r.admitted for r in results) == limit
    assert sorted(r.count for r in results if r.admitted) == list(range(1, limit + 1))
    assert limiter.current_usage(USER, ENDPOINT, now=t0).count == limit
    assert len(limiter.history(USER, ENDPOINT)) == 1


def test_purge_removes_only_closed_windows(limiter, t0):
    admit(limiter, t0, 0)
    admit(limiter, t0, 0, identifier="user-7")
    admit(limiter, t0, 100)

    removed = limiter.purge_windows(now=t0 + timedelta(seconds=100))

    assert removed == 2
    assert len(limiter.history(USER, ENDPOINT)) == 1
    assert limiter.history("user-7", ENDPOINT) == []


def test_purge_never_deletes_live_windows(limiter, t0):
    admit(limiter, t0, 0)
    removed = limiter.purge_windows(before=t0 + timedelta(days=1), now=t0 + timedelta(seconds=30))
    assert removed == 0
    assert limiter.current_usage(USER, ENDPOINT, now=t0 + timedelta(seconds=30)).count == 1


def test_fail_closed(broken_rate_limit_repository, t0):
    limiter = RateLimiter(broken_rate_limit_repository, default_limit=5, default_window=60, failure_policy="closed")

    result = limiter.admit(USER, ENDPOINT, now=t0)

    assert result.admitted is False
    assert result.degraded is True
    assert result.remaining == 0
    assert result.reset_at == t0 + timedelta(seconds=60)


def test_fail_open(broken_rate_limit_repository, t0):
    limiter = RateLimiter(broken_rate_limit_repository, default_limit=5, default_window=60, failure_policy="OPEN")

    result = limiter.admit(USER, ENDPOINT, now=t0)

    assert limiter.failure_policy is FailurePolicy.OPEN
    assert result.admitted is True
    assert result.degraded is True


def test_fail_raise(broken_rate_limit_repository, t0):
    limiter = RateLimiter(
        broken_rate_limit_repository, default_limit=5, default_window=60, failure_policy=FailurePolicy.RAISE
    )

    with pytest.raises(StorageError):
        limiter.admit(USER, ENDPOINT, now=t0)


def test_reads_propagate_storage_errors(broken_rate_limit_repository, t0):
    limiter = RateLimiter(broken_rate_limit_repository, default_limit=5, default_window=60, failure_policy="open")

    with pytest.raises(StorageError):
        limiter.current_usage(USER, ENDPOINT, now=t0)
    with pytest.raises(StorageError):
        limiter.history(USER, ENDPOINT)
    assert limiter.is_healthy() is False


def test_unknown_failure_policy(rate_limit_repository):
    with pytest.raises(ValueError):
        RateLimiter(rate_limit_repository, default_limit=5, default_window=60, failure_policy="sometimes")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0},
        {"limit": -1},
        {"limit": True},
        {"window": 0},
        {"window": -60},
        {"identifier": ""},
        {"endpoint": ""},
    ],
)
def test_admit_validation(limiter, t0, kwargs):
    args = {"identifier": USER, "endpoint": ENDPOINT, "limit": 3, "window": 60}
    args.update(kwargs)
    with pytest.raises(ValueError):
        limiter.admit(now=t0, **args)
    assert limiter.history(USER, ENDPOINT) == []
