from typing import Protocol


class RateLimiter(Protocol):
    """Windowed hit counter; ``allow`` records a hit and reports whether the key is still under the limit."""

    def allow(self, key: str, max_requests: int, window_seconds: int) -> bool:
        ...
