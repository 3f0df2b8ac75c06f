"""Rate limit storage protocol.

Defines the interface for any backing store that keeps fixed counting
windows per (identifier, endpoint) and can increment them atomically.
"""

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from ai_cache.entities import RateLimitWindowEntity


@runtime_checkable
class RateLimitStore(Protocol):
    """Protocol for rate limit storage backends.

    Every method raises ``StorageError`` when the backend fails.
    """

    def acquire(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> tuple[RateLimitWindowEntity, bool]:
        """Count one request against the live window, if the limit allows.

        Must run as a single atomic step per (identifier, endpoint):
        open a new window when none is live at ``now``, otherwise
        increment ``request_count`` only while it is below ``limit``.

        Args:
            identifier: Caller ID or IP address
            endpoint: Logical operation name
            now: Time of the request
            limit: Maximum requests per window
            window: Length of a new window

        Returns:
            Tuple (live window after the operation, whether it was counted)
        """
        ...

    def current_window(
        self,
        identifier: str,
        endpoint: str,
        now: datetime,
    ) -> RateLimitWindowEntity | None:
        """Return the window live at ``now`` without modifying it."""
        ...

    def list_windows(self, identifier: str, endpoint: str) -> list[RateLimitWindowEntity]:
        """Return every stored window for the pair, oldest first."""
        ...

    def delete_windows_before(self, cutoff: datetime) -> int:
        """Delete windows whose ``reset_at`` is earlier than ``cutoff``.

        Returns:
            Number of windows deleted
        """
        ...

    def health_check(self) -> bool:
        """Check if the store is accessible."""
        ...
