"""
Request Queue: bounded-concurrency FIFO for estimator calls.

Every upstream AI call goes through here so that a batch of markets cannot
flood the provider:
  - at most max_concurrent operations in flight
  - at least delay_ms between consecutive dispatches
  - retryable failures (throttling, 5xx, connection/timeout) are retried with
    exponential backoff min(base * 2^(attempt-1), cap) and re-enter at the
    head of the queue
  - non-retryable failures reject the caller immediately

Usage:
    queue = RequestQueue(max_concurrent=3)
    result = await queue.add(lambda: client.generate(prompt), key="market-0xabc")
"""
import asyncio
import itertools
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import anthropic

from config import (
    QUEUE_DELAY_MS,
    QUEUE_MAX_CONCURRENT,
    QUEUE_MAX_RETRIES,
    QUEUE_RETRY_DELAY_BASE_MS,
    QUEUE_RETRY_DELAY_CAP_MS,
)
from models.errors import (
    QueueClearedError,
    RateLimitedError,
    UpstreamConnectionError,
    UpstreamServerError,
)

logger = logging.getLogger("recommender.queue")

Operation = Callable[[], Awaitable[Any]]

_RATE_LIMIT_MESSAGE = re.compile(r"\b429\b|rate limit|too many requests")


# ─────────────────────────────────────────────────────────────────────────────
# Failure classification
# ─────────────────────────────────────────────────────────────────────────────

def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None and isinstance(exc, aiohttp.ClientResponseError):
        status = exc.status
    return status if isinstance(status, int) else None


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, (RateLimitedError, anthropic.RateLimitError)):
        return True
    if _status_of(exc) == 429:
        return True
    return bool(_RATE_LIMIT_MESSAGE.search(str(exc).lower()))


def is_retryable(exc: BaseException) -> bool:
    """True for throttling, upstream 5xx, and connection/timeout failures."""
    if is_rate_limit_error(exc):
        return True
    if isinstance(exc, (UpstreamServerError, UpstreamConnectionError)):
        return True
    if isinstance(exc, (anthropic.APIConnectionError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError)):
        return True
    status = _status_of(exc)
    return status is not None and status >= 500


def backoff_ms(attempt: int, base_ms: float, cap_ms: float) -> float:
    """Delay before retry number `attempt` (1-based)."""
    return min(base_ms * (2 ** (attempt - 1)), cap_ms)


# ─────────────────────────────────────────────────────────────────────────────
# Queue
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class QueueStats:
    queue_length: int
    running: int
    rate_limit_hits: int
    completed: int = 0
    failed: int = 0


@dataclass
class _Task:
    task_id: int
    key: str
    operation: Operation
    future: asyncio.Future
    retries: int = 0


class RequestQueue:
    def __init__(
        self,
        max_concurrent: int = QUEUE_MAX_CONCURRENT,
        delay_ms: float = QUEUE_DELAY_MS,
        max_retries: int = QUEUE_MAX_RETRIES,
        retry_delay_base_ms: float = QUEUE_RETRY_DELAY_BASE_MS,
        retry_delay_cap_ms: float = QUEUE_RETRY_DELAY_CAP_MS,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.delay_ms = delay_ms
        self.max_retries = max_retries
        self.retry_delay_base_ms = retry_delay_base_ms
        self.retry_delay_cap_ms = retry_delay_cap_ms

        self._pending: deque[_Task] = deque()
        self._backing_off: set[int] = set()
        self._running = 0
        self._next_dispatch_at = 0.0
        self._ids = itertools.count(1)
        self._pump_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._retries: set[asyncio.Task] = set()

        self.rate_limit_hits = 0
        self.completed = 0
        self.failed = 0

    async def add(self, operation: Operation, key: Optional[str] = None) -> Any:
        """Enqueue an async operation and wait for its (possibly retried) result."""
        loop = asyncio.get_running_loop()
        task_id = next(self._ids)
        task = _Task(
            task_id=task_id,
            key=key or f"task-{task_id}",
            operation=operation,
            future=loop.create_future(),
        )
        self._pending.append(task)
        self._kick()
        return await task.future

    def stats(self) -> QueueStats:
        return QueueStats(
            queue_length=len(self._pending) + len(self._backing_off),
            running=self._running,
            rate_limit_hits=self.rate_limit_hits,
            completed=self.completed,
            failed=self.failed,
        )

    def clear(self) -> int:
        """Reject every task that has not started yet. Returns how many were rejected."""
        rejected = 0
        while self._pending:
            task = self._pending.popleft()
            if not task.future.done():
                task.future.set_exception(QueueClearedError("Queue cleared"))
                rejected += 1
        for retry in list(self._retries):
            retry.cancel()
        if rejected:
            logger.info("Queue cleared: %d pending tasks rejected", rejected)
        return rejected

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def _spawn(self, coro) -> asyncio.Task:
        t = asyncio.get_running_loop().create_task(coro)
        self._background.add(t)
        t.add_done_callback(self._background.discard)
        return t

    def _kick(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = self._spawn(self._pump())

    async def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending and self._running < self.max_concurrent:
            wait = self._next_dispatch_at - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
                continue
            task = self._pending.popleft()
            if task.future.done():
                continue
            self._running += 1
            self._next_dispatch_at = loop.time() + self.delay_ms / 1000
            self._spawn(self._run(task))

    async def _run(self, task: _Task) -> None:
        try:
            result = await task.operation()
        except Exception as e:
            self._running -= 1
            self._on_failure(task, e)
        else:
            self._running -= 1
            self.completed += 1
            if not task.future.done():
                task.future.set_result(result)
        self._kick()

    def _on_failure(self, task: _Task, exc: Exception) -> None:
        rate_limited = is_rate_limit_error(exc)
        if rate_limited:
            self.rate_limit_hits += 1

        if is_retryable(exc) and task.retries < self.max_retries:
            task.retries += 1
            delay = backoff_ms(task.retries, self.retry_delay_base_ms, self.retry_delay_cap_ms)
            logger.warning(
                "%s failed (%s: %s), retry %d/%d in %.0fms",
                task.key, type(exc).__name__, exc, task.retries, self.max_retries, delay,
                extra={"task_id": task.key, "attempt": task.retries},
            )
            self._backing_off.add(task.task_id)
            retry = self._spawn(self._requeue_after(task, delay / 1000))
            self._retries.add(retry)
            retry.add_done_callback(self._retries.discard)
            return

        self.failed += 1
        if is_retryable(exc):
            logger.error(
                "%s giving up after %d retries (%s: %s)",
                task.key, task.retries, type(exc).__name__, exc,
                extra={"task_id": task.key},
            )
        if not task.future.done():
            task.future.set_exception(exc)

    async def _requeue_after(self, task: _Task, delay_s: float) -> None:
        try:
            await asyncio.sleep(delay_s)
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.set_exception(QueueClearedError("Queue cleared"))
            raise
        finally:
            self._backing_off.discard(task.task_id)
        self._pending.appendleft(task)
        self._kick()
