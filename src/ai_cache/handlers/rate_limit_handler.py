"""HTTP handlers for rate limiter operations."""

from fastapi import HTTPException, status

from ai_cache.dto import (
    AdmissionResponse,
    AdmitRequest,
    RateLimitUsageResponse,
    RateLimitWindowItem,
    SweepResponse,
)
from ai_cache.entities import AdmissionResult
from ai_cache.services import RateLimiter
from ai_cache.utils import utc_now

from .errors import to_http_error


def rate_limit_headers(result: AdmissionResult) -> dict[str, str]:
    """X-RateLimit-* headers describing an admission result."""
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at.isoformat(),
    }


def rejection_error(result: AdmissionResult) -> HTTPException:
    """429 error for a rejected admission, with Retry-After."""
    headers = rate_limit_headers(result)
    headers["Retry-After"] = str(result.retry_after_seconds(utc_now()))
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "Rate limit exceeded",
            "endpoint": result.endpoint,
            "limit": result.limit,
            "reset_at": result.reset_at.isoformat(),
            "degraded": result.degraded,
        },
        headers=headers,
    )


class RateLimitHandler:
    """HTTP handlers for rate limiter operations.

    Rejections are returned as 429 with Retry-After; storage failures
    (only possible with the "raise" failure policy) as 503.
    """

    def __init__(self, rate_limiter: RateLimiter) -> None:
        """Initialize the rate limit handler.

        Args:
            rate_limiter: The rate limiter service (required).
        """
        self._limiter = rate_limiter

    async def admit(self, request: AdmitRequest) -> AdmissionResponse:
        """Handle POST /rate-limit/admit requests.

        Raises:
            HTTPException: 429 if rejected, 422 for invalid input, 503 if
                the store fails
        """
        try:
            result = self._limiter.admit(
                request.identifier,
                request.endpoint,
                limit=request.limit,
                window=request.window_seconds,
            )
        except Exception as e:
            raise to_http_error("check rate limit", e) from e

        if not result.admitted:
            raise rejection_error(result)

        return AdmissionResponse(
            admitted=result.admitted,
            identifier=result.identifier,
            endpoint=result.endpoint,
            count=result.count,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=result.reset_at,
            degraded=result.degraded,
        )

    async def usage(self, identifier: str, endpoint: str) -> RateLimitUsageResponse:
        """Handle GET /rate-limit/usage/{identifier}/{endpoint} requests."""
        try:
            usage = self._limiter.current_usage(identifier, endpoint)
        except Exception as e:
            raise to_http_error("read rate limit usage", e) from e

        if usage is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No live window for {identifier} on {endpoint}",
            )
        return RateLimitUsageResponse(
            count=usage.count,
            limit=usage.limit,
            remaining=usage.remaining,
            reset_at=usage.reset_at,
        )

    async def history(self, identifier: str, endpoint: str) -> list[RateLimitWindowItem]:
        """Handle GET /rate-limit/history/{identifier}/{endpoint} requests."""
        try:
            windows = self._limiter.history(identifier, endpoint)
        except Exception as e:
            raise to_http_error("read rate limit history", e) from e

        return [
            RateLimitWindowItem(
                identifier=w.identifier,
                endpoint=w.endpoint,
                request_count=w.request_count,
                limit=w.limit,
                window_start=w.window_start,
                reset_at=w.reset_at,
                created_at=w.created_at,
            )
            for w in windows
        ]

    async def purge(self) -> SweepResponse:
        """Handle POST /rate-limit/purge requests."""
        try:
            return SweepResponse(removed=self._limiter.purge_windows())
        except Exception as e:
            raise to_http_error("purge rate limit windows", e) from e
