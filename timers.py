"""Named, cancellable session timers with generation tags.

Every handle captures the generation that was live when it was armed. A
callback that reaches the loop after ``disarm_all()`` sees a newer generation
and returns without acting, even if the underlying scheduler had already
queued it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from interfaces import Cancellable, Scheduler

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    DURATION_TICKER = "duration_ticker"
    WARNING = "warning"
    MAX_DURATION = "max_duration"
    HEALTH_POLLER = "health_poller"


@dataclass
class TimerHandle:
    kind: TimerKind
    generation: int
    interval_s: float
    periodic: bool
    _pending: Optional[Cancellable] = field(default=None, repr=False)
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class TimerSet:
    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._generation = 0
        self._handles: dict[TimerKind, TimerHandle] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def armed_kinds(self) -> set[TimerKind]:
        return {kind for kind, handle in self._handles.items() if not handle.cancelled}

    def is_live(self, generation: int) -> bool:
        return generation == self._generation

    def arm(
        self,
        kind: TimerKind,
        delay_s: float,
        callback: Callable[[], None],
        periodic: bool = False,
    ) -> TimerHandle:
        previous = self._handles.pop(kind, None)
        if previous is not None:
            previous.cancel()
        handle = TimerHandle(
            kind=kind,
            generation=self._generation,
            interval_s=max(0.0, delay_s),
            periodic=periodic,
        )
        self._handles[kind] = handle
        self._schedule(handle, callback)
        return handle

    def disarm(self, kind: TimerKind) -> None:
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def disarm_all(self) -> None:
        self._generation += 1
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()

    def _schedule(self, handle: TimerHandle, callback: Callable[[], None]) -> None:
        def fire() -> None:
            handle._pending = None
            if handle.cancelled or handle.generation != self._generation:
                logger.debug("dropping stale %s timer (gen %d)", handle.kind.value, handle.generation)
                return
            if handle.periodic:
                self._schedule(handle, callback)
            else:
                self._handles.pop(handle.kind, None)
                handle.cancelled = True
            callback()

        handle._pending = self._scheduler.call_later(handle.interval_s, fire)
