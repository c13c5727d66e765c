"""Protocol interfaces used by SessionController and its collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from models import (
    AppContext,
    ArchiveEntry,
    CaptureResult,
    ImprovementResult,
    PasteResult,
    TranscriptionResult,
)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single-threaded event loop: time source plus deferred callbacks."""

    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable: ...

    def call_soon(self, callback: Callable[[], None]) -> None: ...


class CommandRunner(Protocol):
    """Runs a blocking command off the loop and resumes on the loop."""

    def submit(
        self,
        fn: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None: ...


class CaptureDevice(Protocol):
    def start_capture(self) -> None: ...

    def stop_capture(self) -> CaptureResult: ...

    def discard(self, path: str) -> None: ...

    def poll_health(self) -> Optional[str]: ...


class Pipeline(Protocol):
    def begin_transcription(
        self,
        path: str,
        context: Optional[AppContext],
        improve: bool = False,
        duration_ms: int = 0,
    ) -> None: ...

    def begin_improvement(self, text: str, context: Optional[AppContext]) -> None: ...


class ContextDetector(Protocol):
    def detect(self) -> AppContext: ...


class Notifier(Protocol):
    """User-facing notice surface (toasts, tray balloons)."""

    def show(self, notice_id: str, level: str, title: str, body: str = "") -> None: ...

    def dismiss(self, notice_id: str) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, path: str) -> TranscriptionResult: ...


class TextImprover(Protocol):
    def improve(
        self, text: str, context: Optional[AppContext], language: str = ""
    ) -> ImprovementResult: ...


class PasteService(Protocol):
    def paste_text(self, text: str) -> PasteResult: ...



class Archiver(Protocol):
    def archive(self, entry: ArchiveEntry) -> Path: ...
