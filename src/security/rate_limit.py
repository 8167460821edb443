"""Per-identity submission rate limiting.

The counter is the only intake-time state shared between concurrent
requests, so increment-and-check happens under a lock: two simultaneous
submissions from one sender can never both take the last slot.
"""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of one increment-and-check."""

    allowed: bool
    count: int  # Admitted submissions in the window, including this one if allowed
    limit: int
    window_seconds: int
    reset_at: datetime | None

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class RateLimitBackend(Protocol):
    """Atomic counter store behind the rate-limit check."""

    def hit(self, identity: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Admit one submission for ``identity`` if under ``limit``."""
        ...


class InMemoryRateLimiter:
    """Sliding-window rate limiter held in process memory.

    Only admitted submissions are counted; a rejected attempt does not
    extend the sender's window.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(UTC))
        self._hits: dict[str, deque[datetime]] = {}
        self._lock = threading.Lock()

    def hit(self, identity: str, limit: int, window_seconds: int) -> RateLimitDecision:
        key = identity.strip().lower()
        with self._lock:
            now = self._clock()
            cutoff = now - timedelta(seconds=window_seconds)
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            allowed = len(hits) < limit
            if allowed:
                hits.append(now)
            reset_at = hits[0] + timedelta(seconds=window_seconds) if hits else None
            return RateLimitDecision(
                allowed=allowed,
                count=len(hits),
                limit=limit,
                window_seconds=window_seconds,
                reset_at=reset_at,
            )

    def reset(self, identity: str | None = None) -> None:
        """Forget counters for one identity, or for everyone."""
        with self._lock:
            if identity is None:
                self._hits.clear()
            else:
                self._hits.pop(identity.strip().lower(), None)
