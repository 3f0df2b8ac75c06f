"""Fixed-window rate limiter service.

Counts requests per (identifier, endpoint) in discrete windows. A burst
of ``limit`` requests at the end of one window followed by another
``limit`` at the start of the next is allowed; that is the known
tradeoff of fixed windows.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from ai_cache.config import settings
from ai_cache.entities import AdmissionResult, RateLimitUsage, RateLimitWindowEntity
from ai_cache.errors import StorageError
from ai_cache.protocols import RateLimitStore
from ai_cache.utils import as_timedelta, ensure_utc, utc_now

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What ``admit`` does when the backing store fails."""

    OPEN = "open"  # admit the request
    CLOSED = "closed"  # reject the request
    RAISE = "raise"  # propagate StorageError


class RateLimiter:
    """Per (identifier, endpoint) fixed-window rate limiter.

    Limits and window lengths are given per call, so each endpoint can
    have its own policy; settings only provide defaults.

    Example:
        ```python
        from ai_cache.repositories import RedisRateLimitRepository
        from ai_cache.services import RateLimiter

        limiter = RateLimiter.create(repository=RedisRateLimitRepository.create())

        result = limiter.admit("user-42", "generate-lesson", limit=30, window=60)
        if not result.admitted:
            ...  # HTTP 429, Retry-After: result.retry_after_seconds(now)
        ```
    """

    def __init__(
        self,
        repository: RateLimitStore,
        default_limit: int | None = None,
        default_window: int | timedelta | None = None,
        failure_policy: FailurePolicy | str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            repository: Rate limit storage backend (required).
            default_limit: Requests per window when ``admit`` gets none.
                Defaults to settings.
            default_window: Window length (seconds or timedelta) when
                ``admit`` gets none. Defaults to settings.
            failure_policy: Behaviour of ``admit`` on storage failure.
                Defaults to settings (closed).
            clock: Source of the current time when ``now`` is not given.
        """
        self._repository = repository
        self._default_limit = self._check_limit(default_limit or settings.rate_limit_max_requests)
        self._default_window = as_timedelta(default_window or settings.rate_limit_window_seconds)
        self._failure_policy = FailurePolicy(
            (failure_policy or settings.rate_limit_failure_policy).lower()
        )
        self._clock = clock

    @classmethod
    def create(
        cls,
        repository: RateLimitStore,
        default_limit: int | None = None,
        default_window: int | timedelta | None = None,
        failure_policy: FailurePolicy | str | None = None,
    ) -> "RateLimiter":
        """Factory method to create RateLimiter with settings as defaults."""
        return cls(
            repository=repository,
            default_limit=default_limit,
            default_window=default_window,
            failure_policy=failure_policy,
        )

    @staticmethod
    def _check_limit(limit: int) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        return limit

    @staticmethod
    def _check_subject(identifier: str, endpoint: str) -> None:
        if not isinstance(identifier, str) or not identifier:
            raise ValueError("identifier must be a non-empty string")
        if not isinstance(endpoint, str) or not endpoint:
            raise ValueError("endpoint must be a non-empty string")

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self._clock()

    def admit(
        self,
        identifier: str,
        endpoint: str,
        now: datetime | None = None,
        limit: int | None = None,
        window: int | float | timedelta | None = None,
    ) -> AdmissionResult:
        """Count a request and decide whether it may proceed.

        Business logic:
        1. Find the window live at ``now`` (``reset_at > now``)
        2. None live: open a new one at ``now`` with count 1, admit
        3. Live and below ``limit``: increment atomically, admit
        4. Otherwise reject with the window's ``reset_at``

        Rejected requests are not counted. On storage failure the
        configured failure policy decides, and the result is marked
        ``degraded``.

        Args:
            identifier: Caller ID or IP address
            endpoint: Logical operation name
            now: Time of the request. Defaults to the clock.
            limit: Requests per window. Defaults to the limiter default.
            window: Window length for a new window. Defaults to the
                limiter default.

        Returns:
            AdmissionResult (rejection is a normal outcome, not an error)

        Raises:
            ValueError: If identifier, endpoint, limit or window is invalid
            StorageError: Only with FailurePolicy.RAISE
        """
        self._check_subject(identifier, endpoint)
        limit = self._check_limit(limit) if limit is not None else self._default_limit
        window = as_timedelta(window) if window is not None else self._default_window
        now = self._now(now)

        try:
            current, counted = self._repository.acquire(identifier, endpoint, now, limit, window)
        except StorageError as e:
            return self._on_storage_failure(e, identifier, endpoint, now, limit, window)

        result = AdmissionResult(
            admitted=counted,
            identifier=identifier,
            endpoint=endpoint,
            count=current.request_count,
            limit=limit,
            reset_at=current.reset_at,
        )
        if not counted:
            logger.warning(
                "Rate limit exceeded: %s on %s (%d/%d, resets %s)",
                identifier,
                endpoint,
                current.request_count,
                limit,
                current.reset_at.isoformat(),
            )
        return result

    def _on_storage_failure(
        self,
        error: StorageError,
        identifier: str,
        endpoint: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> AdmissionResult:
        if self._failure_policy is FailurePolicy.RAISE:
            raise error

        admitted = self._failure_policy is FailurePolicy.OPEN
        logger.warning(
            "Rate limit store unavailable, failing %s for %s on %s: %s",
            self._failure_policy.value,
            identifier,
            endpoint,
            error,
        )
        return AdmissionResult(
            admitted=admitted,
            identifier=identifier,
            endpoint=endpoint,
            count=0 if admitted else limit,
            limit=limit,
            reset_at=now + window,
            degraded=True,
        )

    def current_usage(
        self,
        identifier: str,
        endpoint: str,
        now: datetime | None = None,
    ) -> RateLimitUsage | None:
        """Read the live window without counting a request.

        Returns:
            Usage of the live window, or None if there is none

        Raises:
            StorageError: If the store fails
        """
        self._check_subject(identifier, endpoint)
        current = self._repository.current_window(identifier, endpoint, self._now(now))
        if current is None:
            return None
        return RateLimitUsage(count=current.request_count, limit=current.limit, reset_at=current.reset_at)

    def history(self, identifier: str, endpoint: str) -> list[RateLimitWindowEntity]:
        """All stored windows for a pair, oldest first (audit trail)."""
        self._check_subject(identifier, endpoint)
        return self._repository.list_windows(identifier, endpoint)

    def purge_windows(self, before: datetime | None = None, now: datetime | None = None) -> int:
        """Delete windows that reset before ``before``.

        ``before`` is capped at ``now`` so a live window is never deleted.

        Returns:
            Number of windows deleted
        """
        now = self._now(now)
        cutoff = min(ensure_utc(before), now) if before is not None else now
        removed = self._repository.delete_windows_before(cutoff)
        logger.info("Purged %d rate limit windows older than %s", removed, cutoff.isoformat())
        return removed

    def is_healthy(self) -> bool:
        """Check if the backing store is reachable."""
        return self._repository.health_check()

    @property
    def failure_policy(self) -> FailurePolicy:
        """Get the storage failure policy."""
        return self._failure_policy

    @property
    def default_limit(self) -> int:
        return self._default_limit

    @property
    def default_window(self) -> timedelta:
        return self._default_window

    @property
    def repository(self) -> RateLimitStore:
        """Get the underlying repository (for testing)."""
        return self._repository
