"""Display state for the floating indicator, fed only by status events."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from interfaces import Cancellable, Scheduler
from models import PipelineStage
from status_bus import StatusEvent, StatusEventKind

DONE_HIDE_S = 1.5
ERROR_HIDE_S = 3.0
CANCELLED_HIDE_S = 1.0
FADE_S = 0.3


class IndicatorPhase(str, Enum):
    HIDDEN = "hidden"
    RECORDING = "recording"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    IMPROVING = "improving"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


PHASE_LABELS = {
    IndicatorPhase.HIDDEN: "",
    IndicatorPhase.RECORDING: "Recording",
    IndicatorPhase.PROCESSING: "Processing...",
    IndicatorPhase.TRANSCRIBING: "Transcribing...",
    IndicatorPhase.IMPROVING: "Improving...",
    IndicatorPhase.DONE: "Done",
    IndicatorPhase.ERROR: "Error",
    IndicatorPhase.CANCELLED: "Cancelled",
}


@dataclass(frozen=True)
class IndicatorView:
    phase: IndicatorPhase = IndicatorPhase.HIDDEN
    visible: bool = False
    fading: bool = False
    started_at: Optional[float] = None
    level: int = 0
    message: str = ""

    @property
    def label(self) -> str:
        if self.phase == IndicatorPhase.ERROR and self.message:
            return self.message
        return PHASE_LABELS[self.phase]


def format_elapsed(seconds: float) -> str:
    total = max(0, int(seconds))
    return f"{total // 60}:{total % 60:02d}"


class IndicatorMirror:
    """Non-authoritative mirror; its hide timers are independent of the coordinator's."""

    def __init__(
        self,
        scheduler: Scheduler,
        on_change: Optional[Callable[[IndicatorView], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self._on_change = on_change
        self._view = IndicatorView()
        self._hide_timer: Optional[Cancellable] = None

    @property
    def view(self) -> IndicatorView:
        return self._view

    def elapsed_text(self) -> str:
        if self._view.started_at is None:
            return format_elapsed(0)
        return format_elapsed(self._scheduler.now() - self._view.started_at)

    def handle_event(self, event: StatusEvent) -> None:
        kind = event.kind
        if kind == StatusEventKind.AUDIO_LEVEL:
            if self._view.phase == IndicatorPhase.RECORDING:
                self._set(level=max(0, min(100, event.level or 0)))
            return

        self._cancel_hide_timer()
        if kind == StatusEventKind.SESSION_STARTED:
            started = event.timestamp if event.timestamp is not None else self._scheduler.now()
            self._view = IndicatorView(
                phase=IndicatorPhase.RECORDING, visible=True, started_at=started
            )
            self._notify()
        elif kind == StatusEventKind.SESSION_STOPPED:
            self._set(phase=IndicatorPhase.PROCESSING, visible=True, level=0)
        elif kind == StatusEventKind.STAGE_CHANGED:
            if event.stage == PipelineStage.IMPROVING:
                self._set(phase=IndicatorPhase.IMPROVING, visible=True)
            elif event.stage == PipelineStage.TRANSCRIBING:
                self._set(phase=IndicatorPhase.TRANSCRIBING, visible=True)
        elif kind == StatusEventKind.SESSION_DONE:
            self._set(phase=IndicatorPhase.DONE, visible=True)
            self._hide_after(DONE_HIDE_S)
        elif kind == StatusEventKind.SESSION_ERROR:
            self._set(phase=IndicatorPhase.ERROR, visible=True, message=event.message or "")
            self._hide_after(ERROR_HIDE_S)
        elif kind == StatusEventKind.SESSION_CANCELLED:
            self._set(phase=IndicatorPhase.CANCELLED, visible=True)
            self._hide_after(CANCELLED_HIDE_S)
        elif kind == StatusEventKind.HIDE:
            self._fade_out()

    def _hide_after(self, delay_s: float) -> None:
        self._hide_timer = self._scheduler.call_later(delay_s, self._fade_out)

    def _fade_out(self) -> None:
        self._cancel_hide_timer()
        if not self._view.visible:
            return
        self._set(fading=True)
        self._hide_timer = self._scheduler.call_later(FADE_S, self._finish_hide)

    def _finish_hide(self) -> None:
        self._hide_timer = None
        self._view = IndicatorView()
        self._notify()

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.cancel()
            self._hide_timer = None

    def _set(self, **changes: object) -> None:
        self._view = replace(self._view, **changes)
        self._notify()

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self._view)
