"""Rate limiting domain entities."""

import math
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RateLimitWindowEntity:
    """One fixed counting window for an (identifier, endpoint) pair.

    Windows are never reset in place: when ``reset_at`` passes, the next
    request opens a new window and this one stays as history.

    Attributes:
        identifier: Caller ID or IP address
        endpoint: Logical operation name
        request_count: Requests admitted in this window
        limit: Limit supplied by the latest admit call on this window
        window_start: Start of the window
        reset_at: End of the window (exclusive)
        created_at: When the window row was created
    """

    identifier: str
    endpoint: str
    request_count: int
    limit: int
    window_start: datetime
    reset_at: datetime
    created_at: datetime

    def is_live(self, now: datetime) -> bool:
        """Check whether ``now`` falls inside this window."""
        return self.reset_at > now


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of a rate limiter admission check.

    Attributes:
        admitted: Whether the request may proceed
        identifier: Caller ID or IP address
        endpoint: Logical operation name
        count: Requests admitted in the current window
        limit: Maximum requests per window
        reset_at: When the current window rolls over
        degraded: True if the store failed and the failure policy decided
    """

    admitted: bool
    identifier: str
    endpoint: str
    count: int
    limit: int
    reset_at: datetime
    degraded: bool = False

    @property
    def remaining(self) -> int:
        """Requests still allowed in the current window."""
        return max(0, self.limit - self.count)

    def retry_after_seconds(self, now: datetime) -> int:
        """Whole seconds until the window resets (at least 1 if rejected)."""
        seconds = math.ceil((self.reset_at - now).total_seconds())
        if self.admitted:
            return max(0, seconds)
        return max(1, seconds)


@dataclass(frozen=True)
class RateLimitUsage:
    """Read-only view of the live window, for rate limit headers."""

    count: int
    limit: int
    reset_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)
