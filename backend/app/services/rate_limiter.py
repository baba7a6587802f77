"""In-memory rate limiting keyed by caller identity."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from typing import Callable, Deque, Optional


class SlidingWindowRateLimiter:
    """
    Sliding-window limiter suitable for single-node deployments.

    At most ``max_keys`` identities are tracked; when a new identity arrives
    beyond that, the least recently used one is evicted.
    """

    def __init__(self, max_keys: int = 10000, clock: Optional[Callable[[], float]] = None) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be positive")
        self.max_keys = max_keys
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._buckets: "OrderedDict[str, Deque[float]]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _bucket(self, key: str, cutoff: float) -> Deque[float]:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = deque()
            self._buckets[key] = bucket
            while len(self._buckets) > self.max_keys:
                self._buckets.popitem(last=False)
        else:
            self._buckets.move_to_end(key)
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()
        return bucket

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            bucket = self._bucket(key, now - window_seconds)
            if len(bucket) >= limit:
                return False
            bucket.append(now)
            return True

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest hit in the window expires."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if not bucket:
                return 0
            return max(0, int(bucket[0] + window_seconds - now) + 1)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)
