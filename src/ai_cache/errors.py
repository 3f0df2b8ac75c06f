"""Error types raised by the cache and rate limiter.

Rejection by the rate limiter is not an error: it is returned as an
``AdmissionResult`` with ``admitted=False``.
"""


class AICacheError(Exception):
    """Base class for all errors raised by this package."""


class StorageError(AICacheError):
    """The backing store could not be read or written.

    Raised for connection failures, timeouts and rows that cannot be
    decoded. Never used to signal a cache miss.
    """


class InvalidKeyError(AICacheError, ValueError):
    """Fingerprint inputs or a cache key were empty or malformed."""


# Alias
InvalidKey = InvalidKeyError
