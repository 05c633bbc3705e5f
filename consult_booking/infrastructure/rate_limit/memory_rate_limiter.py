import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from ...application.ports.rate_limiter import RateLimiter


class InMemoryRateLimiter(RateLimiter):
    """Sliding-window counter kept in process memory.

    Keys whose newest hit has left their window are dropped every
    ``purge_every`` calls, so one-off keys do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, purge_every: int = 256) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._purge_every = max(1, purge_every)
        self._calls = 0
        # key -> (window_seconds, hit times)
        self._hits: Dict[str, Tuple[int, Deque[float]]] = {}

    def _purge(self, now: float) -> None:
        stale = [key for key, (window, hits) in self._hits.items() if not hits or hits[-1] <= now - window]
        for key in stale:
            del self._hits[key]

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        now = self._clock()
        window_start = now - window_seconds
        with self._lock:
            self._calls += 1
            if self._calls % self._purge_every == 0:
                self._purge(now)
            _, hits = self._hits.get(key, (window_seconds, deque()))
            # prune
            while hits and hits[0] <= window_start:
                hits.popleft()
            hits.append(now)
            self._hits[key] = (window_seconds, hits)
            return len(hits) <= max_requests

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)
