"""Qt event-loop scheduler and the off-loop command runner."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from interfaces import Scheduler

logger = logging.getLogger(__name__)

try:
    from PySide6.QtCore import QObject, Qt, QTimer, Signal
except Exception:  # pragma: no cover
    QObject = object  # type: ignore
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    Signal = None  # type: ignore


if Signal is not None:

    class _LoopBridge(QObject):
        post = Signal(object)

else:  # pragma: no cover
    _LoopBridge = None  # type: ignore


class _QtTimerHandle:
    def __init__(self, timer: Any, owner: "QtScheduler") -> None:
        self._timer = timer
        self._owner = owner

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._owner._timers.discard(self._timer)
            self._timer = None


class QtScheduler:
    """Runs everything on the Qt main thread; ``call_soon`` is thread-safe."""

    def __init__(self) -> None:
        if QTimer is None or _LoopBridge is None:
            raise RuntimeError("PySide6 is not installed")
        self._timers: set[Any] = set()
        self._bridge = _LoopBridge()
        self._bridge.post.connect(self._run, Qt.QueuedConnection)

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = QTimer()
        timer.setSingleShot(True)
        handle = _QtTimerHandle(timer, self)

        def fire() -> None:
            self._timers.discard(timer)
            handle._timer = None
            self._run(callback)

        timer.timeout.connect(fire)
        self._timers.add(timer)
        timer.start(max(0, int(round(delay_s * 1000))))
        return handle

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._bridge.post.emit(callback)

    def _run(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("unhandled error in event-loop callback")


class ThreadedCommandRunner:
    """Single worker: commands execute one at a time, in submission order."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="command")

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        future = self._executor.submit(fn)

        def done(fut: Future) -> None:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                self._scheduler.call_soon(lambda: on_failure(exc))  # type: ignore[arg-type]
            else:
                result = fut.result()
                self._scheduler.call_soon(lambda: on_success(result))

        future.add_done_callback(done)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
