"""Cache statistics domain entity."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .cache_entry import CacheEntryEntity


@dataclass(frozen=True)
class CacheStatsEntity:
    """Aggregated usage of the response cache.

    Every entry accounts for one miss (the lookup that led to the
    upstream call and the ``put``) plus ``hit_count - 1`` hits.

    Attributes:
        total_entries: Entries physically stored, expired ones included
        live_entries: Entries that would still be served
        total_lookups: Sum of ``hit_count`` over all entries
        total_hits: Sum of ``hit_count - 1`` over all entries
        cost_savings_usd: Upstream cost avoided by serving from cache
        tokens_saved: Upstream tokens avoided by serving from cache
    """

    total_entries: int = 0
    live_entries: int = 0
    total_lookups: int = 0
    total_hits: int = 0
    cost_savings_usd: float = 0.0
    tokens_saved: int = 0

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups answered from cache."""
        if self.total_lookups == 0:
            return 0.0
        return self.total_hits / self.total_lookups

    @classmethod
    def from_entries(cls, entries: Iterable[CacheEntryEntity], now: datetime) -> "CacheStatsEntity":
        """Aggregate statistics over stored entries."""
        total = live = lookups = hits = tokens = 0
        savings = 0.0
        for entry in entries:
            total += 1
            if entry.is_live(now):
                live += 1
            lookups += entry.hit_count
            hits += entry.reuse_count
            if entry.cost_usd:
                savings += entry.reuse_count * entry.cost_usd
            if entry.tokens_used:
                tokens += entry.reuse_count * entry.tokens_used

        return cls(
            total_entries=total,
            live_entries=live,
            total_lookups=lookups,
            total_hits=hits,
            cost_savings_usd=round(savings, 6),
            tokens_saved=tokens,
        )

    def to_dict(self) -> dict[str, float | int]:
        """Convert stats to dictionary."""
        return {
            "total_entries": self.total_entries,
            "live_entries": self.live_entries,
            "total_lookups": self.total_lookups,
            "total_hits": self.total_hits,
            "hit_rate": self.hit_rate,
            "cost_savings_usd": self.cost_savings_usd,
            "tokens_saved": self.tokens_saved,
        }
