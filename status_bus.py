"""One-way status broadcast to display surfaces.

Delivery is best-effort and at-most-once: no acknowledgement, no replay. A
subscriber that raises is logged and skipped; the others still receive the
event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from interfaces import Scheduler
from models import PipelineStage

logger = logging.getLogger(__name__)

AUDIO_LEVEL_MIN_INTERVAL_S = 0.033


class StatusEventKind(str, Enum):
    SESSION_STARTED = "session-started"
    AUDIO_LEVEL = "audio-level"
    SESSION_STOPPED = "session-stopped"
    STAGE_CHANGED = "stage-changed"
    SESSION_DONE = "session-done"
    SESSION_ERROR = "session-error"
    SESSION_CANCELLED = "session-cancelled"
    HIDE = "hide"


@dataclass(frozen=True)
class StatusEvent:
    kind: StatusEventKind
    timestamp: Optional[float] = None
    level: Optional[int] = None
    stage: Optional[PipelineStage] = None
    message: Optional[str] = None


Subscriber = Callable[[StatusEvent], None]


class StatusBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: StatusEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("status subscriber failed on %s", event.kind.value)


class StatusPublisher:
    """Coordinator-side helpers; throttles audio levels to ~30 Hz."""

    def __init__(
        self,
        bus: StatusBus,
        scheduler: Scheduler,
        level_interval_s: float = AUDIO_LEVEL_MIN_INTERVAL_S,
    ) -> None:
        self._bus = bus
        self._scheduler = scheduler
        self._level_interval_s = level_interval_s
        self._last_level_at: Optional[float] = None

    def session_started(self, timestamp: float) -> None:
        self._last_level_at = None
        self._bus.publish(StatusEvent(StatusEventKind.SESSION_STARTED, timestamp=timestamp))

    def audio_level(self, level: int) -> bool:
        now = self._scheduler.now()
        # tolerance absorbs float error on exact multiples of the interval
        if (
            self._last_level_at is not None
            and now - self._last_level_at < self._level_interval_s - 1e-9
        ):
            return False
        self._last_level_at = now
        self._bus.publish(StatusEvent(StatusEventKind.AUDIO_LEVEL, level=level))
        return True

    def session_stopped(self) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.SESSION_STOPPED))

    def stage_changed(self, stage: PipelineStage) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.STAGE_CHANGED, stage=stage))

    def session_done(self) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.SESSION_DONE))

    def session_error(self, message: str) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.SESSION_ERROR, message=message))

    def session_cancelled(self) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.SESSION_CANCELLED))

    def hide(self) -> None:
        self._bus.publish(StatusEvent(StatusEventKind.HIDE))
