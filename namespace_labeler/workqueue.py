"""Deduplicating, rate-limited work queue for namespace names."""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Any, Dict, Hashable, List, Optional, Set, Tuple

from .config import (
    QUEUE_BURST,
    QUEUE_QPS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_DELAY_SECONDS,
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """Decides how long an item waits before it is retried."""

    def when(self, item: Hashable) -> float:
        """Return the delay for the next retry of item."""
        raise NotImplementedError

    def forget(self, item: Hashable) -> None:
        """Stop tracking item (it succeeded or was given up on)."""
        raise NotImplementedError

    def num_requeues(self, item: Hashable) -> int:
        raise NotImplementedError


class ItemExponentialFailureRateLimiter(RateLimiter):
    """
    Per-item exponential backoff.

    The n-th consecutive failure of an item waits base_delay * 2**(n-1)
    seconds, capped at max_delay.
    """

    def __init__(
        self,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_delay: float = RETRY_MAX_DELAY_SECONDS,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # Avoid float overflow for items that have failed a very long time
        if exp > 62:
            return self.max_delay
        return min(self.base_delay * (2 ** exp), self.max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """
    Overall token bucket shared by all items.

    Allows bursts of up to `burst` retries, then `qps` retries per second.
    """

    def __init__(self, qps: float = QUEUE_QPS, burst: int = QUEUE_BURST):
        self.qps = qps
        self.burst = burst
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def when(self, item: Hashable) -> float:
        with self._lock:
            now = time.monotonic()
            self._tokens = min(self.burst, self._tokens + (now - self._last) * self.qps)
            self._last = now

            # Reserve a token even if it is not there yet
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def forget(self, item: Hashable) -> None:
        pass

    def num_requeues(self, item: Hashable) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Uses the longest delay of several rate limiters."""

    def __init__(self, *limiters: RateLimiter):
        self.limiters = limiters

    def when(self, item: Hashable) -> float:
        return max(limiter.when(item) for limiter in self.limiters)

    def forget(self, item: Hashable) -> None:
        for limiter in self.limiters:
            limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return max(limiter.num_requeues(item) for limiter in self.limiters)


def default_controller_rate_limiter() -> RateLimiter:
    """Per-item exponential backoff combined with an overall token bucket."""
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(RETRY_BASE_DELAY_SECONDS, RETRY_MAX_DELAY_SECONDS),
        BucketRateLimiter(QUEUE_QPS, QUEUE_BURST),
    )


class RateLimitingQueue:
    """
    Work queue with deduplication, per-item exclusivity and delayed retries.

    An item is "dirty" from the moment it is added until a worker picks it
    up, and "processing" from get() until done(). Adding an item that is
    already dirty does nothing. Adding an item that is being processed
    marks it dirty without queueing it; done() queues it again, so no two
    workers ever hold the same item.
    """

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, name: str = "namespaces"):
        """
        Initialize the queue.

        Args:
            rate_limiter: Backoff policy for add_rate_limited()
            name: Name used in log messages and the delay thread name
        """
        self.name = name
        self.rate_limiter = rate_limiter or default_controller_rate_limiter()

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._queue: deque = deque()
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._shutting_down = False

        # Delayed adds, ordered by ready time
        self._delay_cond = threading.Condition(self._lock)
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._waiting_ready_at: Dict[Hashable, float] = {}
        self._sequence = itertools.count()
        self._delay_thread = threading.Thread(
            target=self._waiting_loop,
            name=f"{name}-queue-delay",
            daemon=True
        )
        self._delay_thread.start()

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def add(self, item: Hashable) -> None:
        """
        Queue item unless it is already waiting to be processed.

        An item added while a worker holds it is not dropped: it is queued
        once more when that worker calls done().
        """
        with self._lock:
            self._add_locked(item)

    def get(self) -> Tuple[Any, bool]:
        """
        Block until an item is available or the queue shuts down.

        Returns:
            Tuple of (item, shutting_down). When shutting_down is True the
            item is None and the caller should exit.
        """
        with self._lock:
            while not self._queue and not self._shutting_down:
                self._cond.wait()
            if self._shutting_down:
                return None, True

            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: Hashable) -> None:
        """Mark item as processed; re-queue it if it was added meanwhile."""
        with self._lock:
            self._processing.discard(item)
            if item in self._dirty and not self._shutting_down:
                self._queue.append(item)
                self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add item once delay seconds have passed."""
        if delay <= 0:
            self.add(item)
            return

        with self._lock:
            if self._shutting_down:
                return
            ready_at = time.monotonic() + delay
            existing = self._waiting_ready_at.get(item)
            if existing is not None and existing <= ready_at:
                return
            self._waiting_ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._sequence), item))
            self._delay_cond.notify()

    def add_rate_limited(self, item: Hashable) -> None:
        """Re-queue item after the rate limiter's backoff delay."""
        delay = self.rate_limiter.when(item)
        logger.debug(f"Requeueing {item} in {delay:.3f}s (attempt {self.num_requeues(item)})")
        self.add_after(item, delay)

    def forget(self, item: Hashable) -> None:
        """Reset the retry backoff for item."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def shut_down(self) -> None:
        """Stop accepting items and wake every blocked get()."""
        with self._lock:
            if self._shutting_down:
                return
            self._shutting_down = True
            self._waiting.clear()
            self._waiting_ready_at.clear()
            self._cond.notify_all()
            self._delay_cond.notify_all()
        logger.debug(f"Work queue {self.name} shut down")

    def shutting_down(self) -> bool:
        with self._lock:
            return self._shutting_down

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def _waiting_loop(self) -> None:
        """Move delayed items into the queue as they become ready."""
        with self._lock:
            while not self._shutting_down:
                now = time.monotonic()
                while self._waiting and self._waiting[0][0] <= now:
                    ready_at, _, item = heapq.heappop(self._waiting)
                    # Skip entries superseded by an earlier add_after()
                    if self._waiting_ready_at.get(item) != ready_at:
                        continue
                    del self._waiting_ready_at[item]
                    self._add_locked(item)

                timeout = self._waiting[0][0] - now if self._waiting else None
                self._delay_cond.wait(timeout)
