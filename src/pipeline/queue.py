"""Work queue with deduplication, delayed retry and visibility timeout.

Delivery is at-least-once: an item handed to a worker stays in flight
until it is acknowledged, and is delivered again if the worker does not
finish within the visibility timeout. At most one item per dedup key is
pending or in flight at any time.
"""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pydantic import BaseModel, Field

from src.config.settings import (
    DEFAULT_DEDUP_WINDOW_SECONDS,
    DEFAULT_VISIBILITY_TIMEOUT,
)
from src.pipeline.models import WorkItem

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DeadLetter(BaseModel):
    """A work item removed from the queue for good."""

    item: WorkItem
    reason: str
    dead_lettered_at: datetime = Field(default_factory=_utc_now)


class WorkQueue(Protocol):
    """Protocol for the submission work queue."""

    def enqueue(self, item: WorkItem, dedup_key: str) -> bool:
        """Add an item unless its dedup key is already pending or recent.

        Returns:
            True if the item was queued, False if it was discarded.
        """
        ...

    def dequeue(self) -> WorkItem | None:
        """Take the next available item, or None if nothing is ready."""
        ...

    def ack(self, item: WorkItem, remember: bool = True) -> None:
        """Mark an in-flight item as done.

        Args:
            item: The delivered item.
            remember: Keep rejecting the dedup key for the dedup window.
                False when the work ended without reaching any target.
        """
        ...

    def nack(self, item: WorkItem, delay: float) -> None:
        """Return an in-flight item to the queue after ``delay`` seconds."""
        ...

    def dead_letter(self, item: WorkItem, reason: str) -> None:
        """Remove an item permanently, keeping it for inspection.

        The dedup key is released so the same content can be submitted again.
        """
        ...


class InMemoryWorkQueue:
    """Thread-safe in-process work queue."""

    def __init__(
        self,
        dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
        clock: Clock | None = None,
    ):
        """Initialize the queue.

        Args:
            dedup_window_seconds: How long a completed dedup key keeps
                rejecting new items.
            visibility_timeout: Seconds an in-flight item may go without
                an ack before it is delivered again.
            clock: Returns the current UTC time. Injectable for tests.
        """
        if visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be positive")
        self.dedup_window = timedelta(seconds=dedup_window_seconds)
        self.visibility_timeout = timedelta(seconds=visibility_timeout)
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self._pending: dict[str, WorkItem] = {}
        self._in_flight: dict[str, tuple[WorkItem, datetime]] = {}
        self._recent: dict[str, datetime] = {}
        self._dead_letters: list[DeadLetter] = []

    def _expire(self, now: datetime) -> None:
        """Return in-flight items past their visibility deadline."""
        for key, (item, deadline) in list(self._in_flight.items()):
            if deadline <= now:
                del self._in_flight[key]
                self._pending[key] = item.model_copy(update={"available_at": now})
                logger.warning(
                    "Visibility timeout expired for %s; redelivering",
                    item.submission_id,
                )
        for key, seen_at in list(self._recent.items()):
            if now - seen_at >= self.dedup_window:
                del self._recent[key]

    def enqueue(self, item: WorkItem, dedup_key: str) -> bool:
        with self._lock:
            now = self._clock()
            self._expire(now)
            if (
                dedup_key in self._pending
                or dedup_key in self._in_flight
                or dedup_key in self._recent
            ):
                logger.info(
                    "Discarding duplicate work for %s (dedup key %s)",
                    item.submission_id,
                    dedup_key,
                )
                return False
            self._pending[dedup_key] = item.model_copy(
                update={"dedup_key": dedup_key, "enqueued_at": now, "available_at": now}
            )
            return True

    def dequeue(self) -> WorkItem | None:
        with self._lock:
            now = self._clock()
            self._expire(now)
            ready = [
                (item.available_at, key)
                for key, item in self._pending.items()
                if item.available_at <= now
            ]
            if not ready:
                return None
            _, key = min(ready)
            item = self._pending.pop(key)
            self._in_flight[key] = (item, now + self.visibility_timeout)
            return item.model_copy()

    def _release(self, item: WorkItem) -> WorkItem | None:
        entry = self._in_flight.pop(item.dedup_key, None)
        if entry is None:
            logger.debug("Item %s is no longer in flight", item.submission_id)
            return None
        return entry[0]

    def ack(self, item: WorkItem, remember: bool = True) -> None:
        with self._lock:
            if self._release(item) is not None and remember:
                self._recent[item.dedup_key] = self._clock()

    def nack(self, item: WorkItem, delay: float) -> None:
        with self._lock:
            if self._release(item) is None:
                return
            now = self._clock()
            self._pending[item.dedup_key] = item.model_copy(
                update={"available_at": now + timedelta(seconds=max(delay, 0.0))}
            )

    def dead_letter(self, item: WorkItem, reason: str) -> None:
        with self._lock:
            self._release(item)
            self._pending.pop(item.dedup_key, None)
            self._dead_letters.append(DeadLetter(item=item, reason=reason))
        logger.error("Dead-lettered %s: %s", item.submission_id, reason)

    @property
    def dead_letters(self) -> list[DeadLetter]:
        with self._lock:
            return list(self._dead_letters)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._in_flight)
