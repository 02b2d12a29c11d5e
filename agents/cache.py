"""
Per-agent recommendation cache keyed by condition_id.

Entries older than the TTL read as absent. Stale entries are swept on access,
at most once per sweep interval, so the store stays bounded without a
background task.
"""
import time as _time
from dataclasses import dataclass
from typing import Optional

from models.types import AgentRecommendation


@dataclass
class CacheStats:
    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class RecommendationCache:
    def __init__(self, ttl_seconds: float = 300.0, sweep_interval: float = 60.0):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        # {condition_id: (recommendation, stored_at)}
        self._entries: dict[str, tuple[AgentRecommendation, float]] = {}
        self._last_sweep = _time.time()
        self.hits = 0
        self.misses = 0

    def _is_fresh(self, stored_at: float, now: float) -> bool:
        return now - stored_at < self.ttl_seconds

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        stale = [k for k, (_, ts) in self._entries.items() if not self._is_fresh(ts, now)]
        for key in stale:
            del self._entries[key]

    def get(self, condition_id: str) -> Optional[AgentRecommendation]:
        now = _time.time()
        self._maybe_sweep(now)
        entry = self._entries.get(condition_id)
        if entry is None or not self._is_fresh(entry[1], now):
            self.misses += 1
            return None
        self.hits += 1
        return entry[0]

    def put(self, condition_id: str, recommendation: AgentRecommendation) -> None:
        now = _time.time()
        self._maybe_sweep(now)
        self._entries[condition_id] = (recommendation, now)

    def sweep(self) -> int:
        """Evict all stale entries now. Returns the number evicted."""
        before = len(self._entries)
        self._last_sweep = -float("inf")
        self._maybe_sweep(_time.time())
        return before - len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), hits=self.hits, misses=self.misses)

    def __len__(self) -> int:
        return len(self._entries)
