"""In-process rate limiter built on the ``limits`` library.

Design decisions
────────────────
• **Named buckets** (``publicChat``, ``globalMessages``) each carry their
  own rate and window; the caller supplies the partition key (a session
  id, or ``"global"``).
• One ``MemoryStorage`` per bucket, so a single bucket can be reset
  without touching the others.
• Fixed windows: the counter for a key expires with its window, so idle
  sessions leave nothing behind in storage.
• Purely ephemeral: counters reset on process restart.

Usage
─────
>>> limiter = RateLimiter()
>>> limiter.limit("publicChat", "session-123").ok
True
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from clawsync.config import RATE_LIMIT_GLOBAL_PER_MINUTE, RATE_LIMIT_SESSION_PER_MINUTE

logger = logging.getLogger(__name__)

PUBLIC_CHAT_BUCKET = "publicChat"
GLOBAL_MESSAGES_BUCKET = "globalMessages"
GLOBAL_KEY = "global"


@dataclass(frozen=True)
class BucketPolicy:
    """At most ``rate`` hits per key every ``period`` seconds."""

    rate: int
    period: int = 60

    def to_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.rate, self.period)


@dataclass(frozen=True)
class RateLimitResult:
    ok: bool
    retry_after: float = 0.0


DEFAULT_POLICIES: dict[str, BucketPolicy] = {
    PUBLIC_CHAT_BUCKET: BucketPolicy(rate=RATE_LIMIT_SESSION_PER_MINUTE),
    GLOBAL_MESSAGES_BUCKET: BucketPolicy(rate=RATE_LIMIT_GLOBAL_PER_MINUTE),
}


@dataclass
class _Bucket:
    item: RateLimitItem
    storage: MemoryStorage
    strategy: FixedWindowRateLimiter


class RateLimiter:
    """Rate limits keyed by ``(bucket name, key)``."""

    def __init__(self, policies: dict[str, BucketPolicy] | None = None) -> None:
        self._buckets: dict[str, _Bucket] = {}
        for name, policy in (policies or DEFAULT_POLICIES).items():
            storage = MemoryStorage()
            self._buckets[name] = _Bucket(
                item=policy.to_item(),
                storage=storage,
                strategy=FixedWindowRateLimiter(storage),
            )

    def limit(self, bucket: str, key: str) -> RateLimitResult:
        """Count one hit against *bucket* for *key* if the window allows it."""
        entry = self._buckets.get(bucket)
        if entry is None:
            raise KeyError(f"Unknown rate limit bucket: {bucket}")

        if entry.strategy.hit(entry.item, bucket, key):
            return RateLimitResult(ok=True)

        stats = entry.strategy.get_window_stats(entry.item, bucket, key)
        retry_after = max(0.0, stats.reset_time - time.time())
        logger.warning(
            "Rate limit exceeded: %s for %s (retry in %.1fs)", bucket, key, retry_after,
        )
        return RateLimitResult(ok=False, retry_after=retry_after)

    def reset(self, bucket: str | None = None) -> int:
        """Forget stored counters, for one bucket or all of them.

        Returns how many live keys were dropped.
        """
        names = [bucket] if bucket is not None else list(self._buckets)
        dropped = 0
        for name in names:
            dropped += self._buckets[name].storage.reset() or 0
        return dropped
