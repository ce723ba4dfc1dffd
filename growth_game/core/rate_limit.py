"""Per-user rate limiting for bulk endpoints.

The referral CSV export walks the whole pipeline on every call, so it is
limited with a sliding window kept in process memory.
"""

import time
import uuid as uuid_pkg
from collections import defaultdict
from dataclasses import dataclass
from typing import TypeAlias

from fastapi import HTTPException, status


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    requests: int  # Maximum requests allowed
    window_seconds: int  # Time window in seconds


EXPORT_LIMIT = RateLimitConfig(requests=10, window_seconds=60)  # 10 CSV exports per minute


UserId: TypeAlias = uuid_pkg.UUID
Timestamp: TypeAlias = float
BucketKey: TypeAlias = tuple[UserId, str]


class RateLimiter:
    """Sliding-window limiter keyed by (user, endpoint).

    Note: state lives in this process only. With several API instances each
    one enforces the limit on its own.
    """

    def __init__(self, cleanup_interval_seconds: int = 300) -> None:
        self._hits: dict[BucketKey, list[Timestamp]] = defaultdict(list)
        self._cleanup_interval = cleanup_interval_seconds
        self._last_cleanup = time.time()

    def _prune(self, now: float, window_seconds: int) -> None:
        """Periodically drop buckets with no hit inside the window."""
        if now - self._last_cleanup < self._cleanup_interval:
            return
        cutoff = now - window_seconds
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]
        self._last_cleanup = now

    def _recent(self, key: BucketKey, cutoff: float) -> list[Timestamp]:
        return [ts for ts in self._hits.get(key, []) if ts > cutoff]

    def check_rate_limit(
        self,
        user_id: UserId,
        endpoint_key: str,
        config: RateLimitConfig,
    ) -> None:
        """Record a hit, or refuse it when the window is full.

        Args:
            user_id: The user making the request
            endpoint_key: Identifier of the limited endpoint (e.g. "referrals_export")
            config: Limit to apply

        Raises:
            HTTPException: 429 with a Retry-After header when the limit is reached
        """
        now = time.time()
        self._prune(now, config.window_seconds)

        key = (user_id, endpoint_key)
        recent = self._recent(key, now - config.window_seconds)
        if len(recent) >= config.requests:
            retry_after = int(recent[0] + config.window_seconds - now) + 1
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)
        self._hits[key] = recent

    def get_remaining(
        self,
        user_id: UserId,
        endpoint_key: str,
        config: RateLimitConfig,
    ) -> int:
        """Hits left in the current window."""
        recent = self._recent((user_id, endpoint_key), time.time() - config.window_seconds)
        return max(0, config.requests - len(recent))

    def reset(self) -> None:
        self._hits.clear()


rate_limiter = RateLimiter()
