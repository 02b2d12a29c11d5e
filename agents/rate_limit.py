"""
Sliding-window rate limiter for agent analyses.

Non-blocking: an agent that is over budget skips the market instead of waiting.
"""
import time as _time

WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    def __init__(self, max_per_minute: int, window_seconds: float = WINDOW_SECONDS):
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self.calls: list[float] = []

    def _prune(self, now: float) -> None:
        self.calls = [t for t in self.calls if now - t < self.window_seconds]

    def try_acquire(self) -> bool:
        """Record a call and return True, or return False if the window is full."""
        now = _time.time()
        self._prune(now)
        if len(self.calls) >= self.max_per_minute:
            return False
        self.calls.append(now)
        return True

    @property
    def remaining(self) -> int:
        self._prune(_time.time())
        return max(0, self.max_per_minute - len(self.calls))

    def reset(self) -> None:
        self.calls.clear()
