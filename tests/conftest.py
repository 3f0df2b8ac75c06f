"""
Shared fixtures for the AI cache tests.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from ai_cache.api.app import create_app
from ai_cache.errors import StorageError
from ai_cache.repositories import InMemoryRateLimitRepository, InMemoryResponseCacheRepository
from ai_cache.services import RateLimiter, ResponseCache


class BrokenCacheRepository:
    """Cache store whose backend is always down."""

    def _fail(self, *args, **kwargs):
        raise StorageError("connection refused")

    touch = peek = upsert = delete_expired = delete_by_key = _fail
    clear_all = list_entries = invalidate_tag = _fail

    def health_check(self) -> bool:
        return False


class BrokenRateLimitRepository:
    """Rate limit store whose backend is always down."""

    def _fail(self, *args, **kwargs):
        raise StorageError("timed out")

    acquire = current_window = list_windows = delete_windows_before = _fail

    def health_check(self) -> bool:
        return False


@pytest.fixture
def t0() -> datetime:
    """A fixed point in time for deterministic tests."""
    return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def cache_repository() -> InMemoryResponseCacheRepository:
    return InMemoryResponseCacheRepository()


@pytest.fixture
def cache(cache_repository) -> ResponseCache:
    """Response cache on the in-memory store."""
    return ResponseCache(repository=cache_repository, default_ttl=3600)


@pytest.fixture
def rate_limit_repository() -> InMemoryRateLimitRepository:
    return InMemoryRateLimitRepository()


@pytest.fixture
def limiter(rate_limit_repository) -> RateLimiter:
    """Rate limiter on the in-memory store, failing closed."""
    return RateLimiter(
        repository=rate_limit_repository,
        default_limit=100,
        default_window=900,
        failure_policy="closed",
    )


@pytest.fixture
def client(cache, limiter):
    """Create a test client running the app lifespan."""
    app = create_app(response_cache=cache, rate_limiter=limiter)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def broken_cache_repository() -> BrokenCacheRepository:
    return BrokenCacheRepository()


@pytest.fixture
def broken_rate_limit_repository() -> BrokenRateLimitRepository:
    return BrokenRateLimitRepository()
