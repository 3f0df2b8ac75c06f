#!/usr/bin/env python3
"""
Demo script for the AI cache.

This script walks through a request flow: rate limit check, cache
lookup, upstream call on a miss, and cache store. It runs on the
in-memory backend so no Redis is needed.
"""

import time
from datetime import timedelta

from ai_cache import InMemoryRateLimitRepository, InMemoryResponseCacheRepository
from ai_cache.services import RateLimiter, ResponseCache
from ai_cache.utils import utc_now


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def fake_upstream(prompt: str) -> dict:
    """Stand-in for the expensive AI call."""
    time.sleep(0.2)
    return {"text": f"[Kpelle] {prompt}", "usage": {"totalTokens": 120}}


def demo_cache() -> None:
    """Demonstrate cache hits, misses and savings."""
    print_section("Response Cache")

    cache = ResponseCache.create(repository=InMemoryResponseCacheRepository())

    prompts = [
        "Translate 'good morning' to Kpelle",
        "Translate 'thank you' to Kpelle",
        "Translate 'good morning' to Kpelle",
        "  Translate 'good morning' to Kpelle  ",
        "Translate 'thank you' to Kpelle",
    ]

    for prompt in prompts:
        start = time.time()
        entry = cache.lookup(prompt, "nuru-ai", {"temperature": 0})
        if entry is None:
            response = fake_upstream(prompt)
            cache.store(
                prompt,
                "nuru-ai",
                response,
                params={"temperature": 0},
                tokens_used=120,
                cost_usd=0.0024,
                endpoint="chat",
            )
            source = "upstream"
        else:
            source = f"cache (hits={entry.hit_count})"
        print(f"  {prompt.strip()[:45]:<45} {source:<18} {(time.time() - start) * 1000:6.1f} ms")

    stats = cache.stats()
    print(f"\n  Hit rate: {stats.hit_rate:.0%}")
    print(f"  Cost saved: ${stats.cost_savings_usd:.4f}")
    print(f"  Tokens saved: {stats.tokens_saved}")


def demo_rate_limiter() -> None:
    """Demonstrate the fixed-window example scenario."""
    print_section("Rate Limiter (limit=3, window=60s)")

    limiter = RateLimiter.create(repository=InMemoryRateLimitRepository())
    t0 = utc_now()

    for offset in (0, 1, 2, 3, 4, 61):
        now = t0 + timedelta(seconds=offset)
        result = limiter.admit("user-42", "generate-lesson", now=now, limit=3, window=60)
        outcome = "admitted" if result.admitted else f"rejected, retry in {result.retry_after_seconds(now)}s"
        print(f"  t0+{offset:>2}s  {outcome:<28} count={result.count} remaining={result.remaining}")

    print(f"\n  Windows recorded: {len(limiter.history('user-42', 'generate-lesson'))}")


def main() -> None:
    demo_cache()
    demo_rate_limiter()


if __name__ == "__main__":
    main()
