from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable

import pytest


class _VirtualHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Deterministic event loop: nothing runs until ``advance`` is called."""

    def __init__(self, start: float = 100.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _VirtualHandle]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _VirtualHandle:
        handle = _VirtualHandle(callback)
        heapq.heappush(self._queue, (self._now + max(0.0, delay_s), next(self._seq), handle))
        return handle

    def call_soon(self, callback: Callable[[], None]) -> None:
        self.call_later(0.0, callback)

    def advance(self, seconds: float = 0.0) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if not handle.cancelled:
                handle.callback()
        self._now = max(self._now, target)

    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)


class LoopCommandRunner:
    """Runs each command on a later loop turn, like a worker thread would."""

    def __init__(self, scheduler: VirtualScheduler) -> None:
        self._scheduler = scheduler
        self.submitted = 0

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        self.submitted += 1

        def run() -> None:
            try:
                result = fn()
            except Exception as exc:
                on_failure(exc)
            else:
                on_success(result)

        self._scheduler.call_soon(run)


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def runner(scheduler: VirtualScheduler) -> LoopCommandRunner:
    return LoopCommandRunner(scheduler)
