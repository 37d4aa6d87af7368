"""Single-loop scheduling used by the sync engine and the connectivity monitor.

All state changes run on the owner's event loop. Blocking work (HTTP calls)
is handed to ``submit`` and its outcome is delivered back on the loop.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

Callback = Callable[[], None]


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callback) -> Any: ...

    def cancel(self, handle: Any) -> None: ...

    def submit(
        self,
        work: Callable[[], T],
        on_success: Callable[[T], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...


class TkRoot(Protocol):
    def after(self, ms: int, func: Callback) -> str: ...

    def after_cancel(self, id: str) -> None: ...


class TkScheduler:
    """Runs timers with ``root.after`` and blocking work on daemon threads."""

    def __init__(self, root: TkRoot) -> None:
        self.root = root

    def call_later(self, delay: float, callback: Callback) -> str:
        return self.root.after(max(0, int(delay * 1000)), callback)

    def cancel(self, handle: str) -> None:
        self.root.after_cancel(handle)

    def submit(
        self,
        work: Callable[[], T],
        on_success: Callable[[T], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        def worker() -> None:
            try:
                result = work()
            except Exception as exc:
                self.root.after(0, lambda error=exc: on_error(error))
            else:
                self.root.after(0, lambda value=result: on_success(value))

        threading.Thread(target=worker, daemon=True).start()


class ManualScheduler:
    """Deterministic virtual clock for headless hosts and tests.

    Timers fire only from ``advance``. Submitted work is queued and runs from
    ``run_jobs``; with ``autorun_jobs`` the queue is drained after every timer
    as well.
    """

    def __init__(self, *, autorun_jobs: bool = True) -> None:
        self.now = 0.0
        self.autorun_jobs = autorun_jobs
        self._timers: list[tuple[float, int, Callback]] = []
        self._cancelled: set[int] = set()
        self._sequence = itertools.count()
        self._jobs: deque[Callback] = deque()

    @property
    def pending_jobs(self) -> int:
        return len(self._jobs)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, handle, _ in self._timers if handle not in self._cancelled)

    def call_later(self, delay: float, callback: Callback) -> int:
        handle = next(self._sequence)
        heapq.heappush(self._timers, (self.now + max(0.0, delay), handle, callback))
        return handle

    def cancel(self, handle: int) -> None:
        self._cancelled.add(handle)

    def submit(
        self,
        work: Callable[[], T],
        on_success: Callable[[T], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        def job() -> None:
            try:
                result = work()
            except Exception as exc:
                on_error(exc)
            else:
                on_success(result)

        self._jobs.append(job)

    def run_jobs(self) -> int:
        ran = 0
        while self._jobs:
            self._jobs.popleft()()
            ran += 1
        return ran

    def advance(self, seconds: float = 0.0) -> None:
        target = self.now + seconds
        if self.autorun_jobs:
            self.run_jobs()
        while self._timers and self._timers[0][0] <= target:
            due, handle, callback = heapq.heappop(self._timers)
            if handle in self._cancelled:
                self._cancelled.discard(handle)
                continue
            self.now = due
            callback()
            if self.autorun_jobs:
                self.run_jobs()
        self.now = target
