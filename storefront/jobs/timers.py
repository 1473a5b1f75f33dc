"""In-memory keyed deadline queue (single-process timer wheel for offer phases).

Features:
- One armed timer per key; arming an existing key replaces the previous timer.
- Cancellation by key or by predicate (e.g. every timer of one job name).
- Capacity limits / depth warning via TIMER_SETTINGS.
- Thread-safe with a condition variable so a worker thread can block until
  the next deadline while request handlers arm and cancel timers.

Layout:
  heap:     (ready_at_ts, seq, handle) ordered by deadline, FIFO on ties
  registry: key -> live handle

Cancelled or replaced handles stay in the heap and are discarded lazily when
they reach the top, so cancel is O(1).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional
import heapq
import threading
import time

from storefront.config import TIMER_SETTINGS
from storefront.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class TimerHandle:
    key: Hashable
    job: Any
    armed_at: float
    ready_at: float
    seq: int
    cancelled: bool = False


class DeadlineQueue:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._warn_depth = int(TIMER_SETTINGS.get("warn_depth", 1000))
        self._max_in_memory = int(TIMER_SETTINGS.get("max_in_memory", 5000))
        self._lock = threading.RLock()
        self._cv = threading.Condition(self._lock)
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._armed: dict[Hashable, TimerHandle] = {}
        self._seq_counter = 0
        self._shutdown = False

    # ----------------------------- internal helpers ----------------------------- #
    def _next_seq(self) -> int:
        self._seq_counter += 1
        return self._seq_counter

    def _drop_dead_head(self) -> None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)

    def _pop_handle_if_due(self, now_ts: float) -> Optional[TimerHandle]:
        self._drop_dead_head()
        if not self._heap or self._heap[0][0] > now_ts:
            return None
        _, _, handle = heapq.heappop(self._heap)
        if self._armed.get(handle.key) is handle:
            del self._armed[handle.key]
        return handle

    def _compact_if_sparse(self) -> None:
        # Rebuild when cancelled entries dominate, keeps memory bounded under churn
        if len(self._heap) > 64 and len(self._heap) > 2 * len(self._armed):
            self._heap = [entry for entry in self._heap if not entry[2].cancelled]
            heapq.heapify(self._heap)

    # ----------------------------- public API ----------------------------- #
    def arm(self, key: Hashable, job: Any, ready_at: float) -> TimerHandle:
        with self._lock:
            if self._shutdown:
                raise RuntimeError("Timer queue shutdown")
            previous = self._armed.get(key)
            if previous is None and len(self._armed) >= self._max_in_memory:
                raise OverflowError("Timer capacity exceeded")
            if previous is not None:
                previous.cancelled = True
            handle = TimerHandle(
                key=key,
                job=job,
                armed_at=self._clock(),
                ready_at=ready_at,
                seq=self._next_seq(),
            )
            heapq.heappush(self._heap, (ready_at, handle.seq, handle))
            self._armed[key] = handle
            if len(self._armed) >= self._warn_depth:
                logger.warning("Timer queue depth warning", depth=len(self._armed))
            self._compact_if_sparse()
            self._cv.notify()
            return handle

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            handle = self._armed.pop(key, None)
            if handle is None:
                return False
            handle.cancelled = True
            self._cv.notify()
            return True

    def cancel_matching(self, predicate: Callable[[Hashable], bool]) -> int:
        with self._lock:
            keys = [k for k in self._armed if predicate(k)]
            for key in keys:
                self._armed.pop(key).cancelled = True
            if keys:
                self._cv.notify()
            return len(keys)

    def is_armed(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._armed

    def get(self, key: Hashable) -> Optional[TimerHandle]:
        with self._lock:
            return self._armed.get(key)

    def pop_due(self, now: Optional[float] = None) -> list[Any]:
        """Remove and return every job whose deadline is <= ``now`` (non-blocking)."""
        now_ts = self._clock() if now is None else now
        due: list[Any] = []
        with self._lock:
            while True:
                handle = self._pop_handle_if_due(now_ts)
                if handle is None:
                    return due
                due.append(handle.job)

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any:
        """Pop the next due job. Returns None if non-blocking and nothing is due, or on timeout."""
        end_time = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            while True:
                if self._shutdown:
                    return None
                handle = self._pop_handle_if_due(self._clock())
                if handle is not None:
                    return handle.job
                if not block:
                    return None
                remaining = None if end_time is None else end_time - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                wait_time = remaining
                if self._heap:
                    until_next = max(0.0, self._heap[0][0] - self._clock())
                    wait_time = until_next if wait_time is None else min(wait_time, until_next)
                if wait_time is None or wait_time > 0:
                    self._cv.wait(timeout=wait_time)

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True
            self._cv.notify_all()

    def purge(self) -> None:
        """Drop every armed timer. Used for test isolation."""
        with self._lock:
            for handle in self._armed.values():
                handle.cancelled = True
            self._armed.clear()
            self._heap.clear()
            self._cv.notify_all()

    # ----------------------------- inspection ----------------------------- #
    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._armed)

    def depth(self) -> int:
        with self._lock:
            return len(self._armed)

    def __len__(self) -> int:  # pragma: no cover
        return self.depth()

    def snapshot(self) -> dict:
        with self._lock:
            next_ready = min((h.ready_at for h in self._armed.values()), default=None)
            return {
                "armed": len(self._armed),
                "heap_entries": len(self._heap),
                "next_ready_at": next_ready,
                "shutdown": self._shutdown,
            }


__all__ = ["DeadlineQueue", "TimerHandle"]
