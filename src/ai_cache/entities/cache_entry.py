"""Cache entry domain entity."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CacheEntryEntity:
    """Domain entity for a cached AI response.

    This is an internal representation used by services and repositories.
    For API contracts, use the DTO classes from the dto package.

    Attributes:
        cache_key: Fingerprint of (prompt, model, parameters), unique
        prompt_hash: SHA-256 of the raw prompt, for audits (None if unknown)
        response_data: The AI response payload (JSON-serializable)
        model_name: Model that produced the response
        hit_count: 1 on creation, +1 on every cache hit
        created_at: When the entry was stored
        last_accessed: When the entry was last stored or read
        expires_at: When the entry stops being served; None never expires
        tokens_used: Tokens consumed by the upstream call, if known
        cost_usd: Cost of the upstream call in USD, if known
        tags: Group labels for bulk invalidation
    """

    cache_key: str
    prompt_hash: str | None
    response_data: Any
    model_name: str
    hit_count: int
    created_at: datetime
    last_accessed: datetime
    expires_at: datetime | None = None
    tokens_used: int | None = None
    cost_usd: float | None = None
    tags: tuple[str, ...] = ()

    def is_live(self, now: datetime) -> bool:
        """Check whether the entry may still be served at ``now``."""
        return self.expires_at is None or self.expires_at > now

    @property
    def reuse_count(self) -> int:
        """Number of times the entry was served from cache."""
        return self.hit_count - 1
