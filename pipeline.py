"""Background dictation pipeline: transcribe, optionally improve, deliver, archive.

Stages run one at a time on a worker thread. Stage starts, completion and
failure are reported through callbacks that are posted back to the event
loop, never called on the worker thread directly.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from errors import ERR_OLLAMA_UNREACHABLE, ERR_TRANSCRIPTION_FAILED, error_code_of
from interfaces import Archiver, PasteService, TextImprover, Transcriber
from models import AppContext, ArchiveEntry, PipelineResult, PipelineStage

logger = logging.getLogger(__name__)

Post = Callable[[Callable[[], None]], None]
StageCallback = Callable[[PipelineStage], None]
CompleteCallback = Callable[[PipelineResult], None]
ErrorCallback = Callable[[str, Optional[PipelineStage], Optional[str], Optional[str]], None]
NoticeCallback = Callable[[str, str, str], None]


def _inline(callback: Callable[[], None]) -> None:
    callback()


def _archive_entry(
    text: str,
    original: str,
    was_edited: bool,
    context: Optional[AppContext],
    language: str = "",
    duration_ms: int = 0,
) -> ArchiveEntry:
    context = context or AppContext()
    return ArchiveEntry(
        text=text,
        original_text=original,
        was_edited=was_edited,
        app_name=context.app_name,
        category=context.category,
        language=language,
        duration_s=round(duration_ms / 1000),
    )


class DictationPipeline:
    def __init__(
        self,
        transcriber: Transcriber,
        paste_service: PasteService,
        improver: Optional[TextImprover] = None,
        archiver: Optional[Archiver] = None,
        post: Post = _inline,
        insert_enabled: Callable[[], bool] = lambda: True,
        archive_enabled: Callable[[], bool] = lambda: True,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._transcriber = transcriber
        self._paste_service = paste_service
        self._improver = improver
        self._archiver = archiver
        self._post = post
        self._insert_enabled = insert_enabled
        self._archive_enabled = archive_enabled
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipeline")
        self._on_stage: Optional[StageCallback] = None
        self._on_complete: Optional[CompleteCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_notice: Optional[NoticeCallback] = None

    def bind(
        self,
        on_stage: StageCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        on_notice: Optional[NoticeCallback] = None,
    ) -> None:
        self._on_stage = on_stage
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_notice = on_notice

    def replace_transcriber(self, transcriber: Transcriber) -> None:
        self._transcriber = transcriber

    def begin_transcription(
        self,
        path: str,
        context: Optional[AppContext],
        improve: bool = False,
        duration_ms: int = 0,
    ) -> None:
        self._executor.submit(
            self._guarded, self._run_transcription, path, context, improve, duration_ms
        )

    def begin_improvement(self, text: str, context: Optional[AppContext]) -> None:
        self._executor.submit(self._guarded, self._run_improvement, text, context)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _guarded(self, fn: Callable[..., None], *args: object) -> None:
        try:
            fn(*args)
        except Exception as exc:
            logger.exception("pipeline worker crashed")
            self._emit_error(str(exc), None, None, None)

    def _run_transcription(
        self, path: str, context: Optional[AppContext], improve: bool, duration_ms: int = 0
    ) -> None:
        self._emit_stage(PipelineStage.TRANSCRIBING)
        try:
            transcript = self._transcriber.transcribe(path)
        except Exception as exc:
            self._emit_error(
                str(exc), PipelineStage.TRANSCRIBING, error_code_of(exc, ERR_TRANSCRIPTION_FAILED), None
            )
            return

        raw = transcript.text.strip()
        if not raw:
            self._notice("info", "No speech detected", "Please try again.")
            self._emit_complete(PipelineResult(text="", original_text=""))
            return

        text = raw
        was_edited = False
        elapsed_ms = transcript.processing_time_ms
        warnings: list[str] = []
        if improve and self._improver is not None:
            self._emit_stage(PipelineStage.IMPROVING)
            try:
                improved = self._improver.improve(raw, context, transcript.language)
            except Exception as exc:
                logger.warning("improvement failed, using raw text: %s", exc)
                warnings.append(str(exc))
                self._notice("warning", "AI improvement failed", "Using the raw transcription.")
            else:
                if improved.was_edited and improved.text:
                    text = improved.text
                    was_edited = True
                elapsed_ms += improved.processing_time_ms

        entry = _archive_entry(text, raw, was_edited, context, transcript.language, duration_ms)
        self._deliver(entry, elapsed_ms, warnings)

    def _run_improvement(self, text: str, context: Optional[AppContext]) -> None:
        self._emit_stage(PipelineStage.IMPROVING)
        if self._improver is None:
            self._emit_error("text improvement is not configured", PipelineStage.IMPROVING, None, text)
            return
        try:
            improved = self._improver.improve(text, context)
        except Exception as exc:
            self._emit_error(
                str(exc), PipelineStage.IMPROVING, error_code_of(exc, ERR_OLLAMA_UNREACHABLE), text
            )
            return
        final = improved.text if improved.was_edited and improved.text else text
        entry = _archive_entry(final, text, improved.was_edited, context)
        self._deliver(entry, improved.processing_time_ms, [])

    def _deliver(self, entry: ArchiveEntry, elapsed_ms: int, warnings: list[str]) -> None:
        self._emit_stage(PipelineStage.DELIVERING)
        text = entry.text
        inserted = False
        summary = f"{len(text)} characters in {elapsed_ms / 1000:.1f}s"
        if self._insert_enabled():
            result = self._paste_service.paste_text(text)
            inserted = result.success
            if inserted:
                self._notice("success", "Text inserted", summary)
            else:
                logger.warning("text insertion failed: %s", result.reason)
                self._notice("warning", "Text could not be inserted", "The text is in the clipboard.")
        else:
            self._notice("success", "Transcription finished", summary)
        self._archive(entry, warnings)
        self._emit_complete(
            PipelineResult(
                text=text,
                original_text=entry.original_text,
                was_edited=entry.was_edited,
                inserted=inserted,
                processing_time_ms=elapsed_ms,
                warnings=tuple(warnings),
            )
        )

    def _archive(self, entry: ArchiveEntry, warnings: list[str]) -> None:
        if self._archiver is None or not self._archive_enabled():
            return
        try:
            self._archiver.archive(entry)
        except Exception as exc:
            logger.warning("archiving failed: %s", exc)
            warnings.append(f"archive: {exc}")
            self._notice("warning", "Archiving failed", "The text was still delivered.")

    def _emit_stage(self, stage: PipelineStage) -> None:
        if self._on_stage:
            on_stage = self._on_stage
            self._post(lambda: on_stage(stage))

    def _emit_complete(self, result: PipelineResult) -> None:
        if self._on_complete:
            on_complete = self._on_complete
            self._post(lambda: on_complete(result))

    def _emit_error(
        self, message: str, stage: Optional[PipelineStage], code: Optional[str], text: Optional[str]
    ) -> None:
        if self._on_error:
            on_error = self._on_error
            self._post(lambda: on_error(message, stage, code, text))

    def _notice(self, level: str, title: str, body: str) -> None:
        if self._on_notice:
            on_notice = self._on_notice
            self._post(lambda: on_notice(level, title, body))
