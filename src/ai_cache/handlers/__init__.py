"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .cache_handler import CacheHandler
from .errors import to_http_error
from .rate_limit_handler import RateLimitHandler, rate_limit_headers, rejection_error

__all__ = [
    "CacheHandler",
    "RateLimitHandler",
    "rate_limit_headers",
    "rejection_error",
    "to_http_error",
]
