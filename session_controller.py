"""State-machine based session orchestration.

All public ``handle_*`` methods run on the event loop. Blocking collaborator
commands go through the ``CommandRunner`` and resume here via callbacks; each
continuation carries the session id it was issued under and does nothing if
that session has since ended.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from debounce import DebounceGate
from error_center import ErrorCenter
from errors import (
    ERR_ACCESSIBILITY_PERMISSION,
    ERR_AUDIO,
    ERR_AUDIO_STREAM,
    ERR_OLLAMA_UNREACHABLE,
    ERR_TRANSCRIPTION_FAILED,
    ERROR_CODES,
    ErrorCategory,
    ErrorRecord,
    RetryAction,
    RetryImprove,
    RetryStartCapture,
    RetryTranscribe,
    create_error,
    error_code_of,
)
from interfaces import CaptureDevice, Cancellable, CommandRunner, ContextDetector, Pipeline, Scheduler
from models import (
    AppContext,
    CaptureResult,
    PipelineResult,
    PipelineStage,
    Session,
    SessionConfig,
    SessionState,
    ShortcutMode,
)
from status_bus import StatusPublisher
from timers import TimerKind, TimerSet

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]

DURATION_TICK_S = 0.1
HEALTH_POLL_S = 0.5
WARNING_BEFORE_MAX_S = 30.0
TOGGLE_DEBOUNCE_S = 0.2

DONE_DISPLAY_S = 1.5
ERROR_DISPLAY_S = 3.0
CANCELLED_DISPLAY_S = 1.0

TOGGLE_TRIGGER = "toggle"


class SessionController:
    def __init__(
        self,
        capture: CaptureDevice,
        pipeline: Pipeline,
        scheduler: Scheduler,
        runner: CommandRunner,
        publisher: StatusPublisher,
        error_center: ErrorCenter,
        config_provider: Callable[[], SessionConfig],
        context_detector: Optional[ContextDetector] = None,
        debounce: Optional[DebounceGate] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._capture = capture
        self._pipeline = pipeline
        self._scheduler = scheduler
        self._runner = runner
        self._publisher = publisher
        self._errors = error_center
        self._config_provider = config_provider
        self._context_detector = context_detector
        self._debounce = debounce or DebounceGate(TOGGLE_DEBOUNCE_S)
        self._on_state_change = on_state_change

        self._session = Session()
        self._session_id = 0
        self._capture_sid = 0
        self._config = SessionConfig()
        self._timers = TimerSet(scheduler)
        self._terminal_timer: Optional[Cancellable] = None
        self._health_poll_in_flight = False
        self._improvement_only = False
        self._pending_retry: Optional[tuple[int, Callable[[], None], Callable[[str], None]]] = None
        self.permission_required = False

        error_center.set_retry_executor(self.execute_retry)

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def timers(self) -> TimerSet:
        return self._timers

    def snapshot(self) -> Session:
        return self._session.snapshot()

    # ------------------------------------------------------------------
    # Shortcut events
    # ------------------------------------------------------------------

    def handle_press(self, context: Optional[AppContext] = None) -> None:
        state = self._session.state
        config = self._config_provider() if state == SessionState.IDLE else self._config
        mode = config.mode if state == SessionState.IDLE else self._session.mode

        if mode == ShortcutMode.TOGGLE:
            if not self._debounce.accept(TOGGLE_TRIGGER, self._scheduler.now()):
                logger.debug("toggle trigger debounced")
                return
            if state == SessionState.IDLE:
                self._start(config, context)
            elif state == SessionState.RECORDING:
                self._stop()
            else:
                self.handle_busy()
            return

        if state == SessionState.IDLE:
            self._start(config, context)
        else:
            self.handle_busy()

    def handle_release(self) -> None:
        session = self._session
        if session.state != SessionState.RECORDING or session.mode != ShortcutMode.PUSH_TO_TALK:
            return
        held_s = self._scheduler.now() - (session.started_at or 0.0)
        if held_s + 1e-9 >= self._config.min_hold_s:
            self._stop()
        else:
            self._cancel(f"Key released too early (min. {self._config.min_hold_ms} ms)")

    def handle_escape(self) -> None:
        if self._session.state == SessionState.RECORDING and self._session.mode == ShortcutMode.TOGGLE:
            self._cancel("Recording cancelled")

    def handle_shortcut_cancelled(self, reason: str) -> None:
        if self._session.state == SessionState.RECORDING:
            self._cancel(reason)

    def handle_busy(self) -> None:
        logger.debug("start trigger while %s", self._session.state.value)
        self._errors.info(
            "Processing...",
            "Please wait until the current recording has been processed",
        )

    def handle_permission_required(self) -> None:
        self.permission_required = True
        self._errors.report(create_error(ERR_ACCESSIBILITY_PERMISSION, "hotkey"))

    def acknowledge_permission(self) -> None:
        self.permission_required = False

    def handle_audio_level(self, level: float) -> None:
        if self._session.state != SessionState.RECORDING:
            return
        value = max(0, min(100, int(round(level))))
        self._session.audio_level = value
        self._publisher.audio_level(value)

    # ------------------------------------------------------------------
    # Pipeline events
    # ------------------------------------------------------------------

    def handle_stage_started(self, stage: PipelineStage) -> None:
        state = self._session.state
        if stage == PipelineStage.TRANSCRIBING and state == SessionState.PROCESSING:
            self._transition(SessionState.TRANSCRIBING)
            self._publisher.stage_changed(stage)
        elif stage == PipelineStage.IMPROVING and self._session.improvement_enabled and (
            state == SessionState.TRANSCRIBING
            or (state == SessionState.PROCESSING and self._improvement_only)
        ):
            self._transition(SessionState.IMPROVING)
            self._publisher.stage_changed(stage)
        else:
            logger.debug("ignoring stage %s in %s", stage.value, state.value)

    def handle_pipeline_complete(self, result: PipelineResult) -> None:
        if self._session.state not in (SessionState.TRANSCRIBING, SessionState.IMPROVING):
            logger.debug("ignoring completion in %s", self._session.state.value)
            return
        self._transition(SessionState.DONE)
        self._publisher.session_done()
        self._enter_terminal(DONE_DISPLAY_S)
        self._settle_retry(succeeded=True)

    def handle_pipeline_error(
        self,
        message: str,
        stage: Optional[PipelineStage] = None,
        code: Optional[str] = None,
        text: Optional[str] = None,
    ) -> None:
        session = self._session
        if not session.state.is_pipeline:
            logger.debug("ignoring pipeline error in %s: %s", session.state.value, message)
            return
        context = session.detected_context
        action: Optional[RetryAction] = None
        if stage == PipelineStage.IMPROVING and text is not None:
            action = RetryImprove(text=text, context=context)
            code = code or ERR_OLLAMA_UNREACHABLE
        elif session.capture is not None:
            action = RetryTranscribe(path=session.capture.path, context=context)
        code = code or ERR_TRANSCRIPTION_FAILED
        component = "improver" if stage == PipelineStage.IMPROVING else "pipeline"
        self._fail(create_error(code, component, details=message, retry_action=action))

    def hide(self) -> None:
        if self._session.state.is_terminal:
            self._reset_to_idle()
        self._publisher.hide()

    # ------------------------------------------------------------------
    # Retry actions
    # ------------------------------------------------------------------

    def execute_retry(
        self,
        action: RetryAction,
        on_success: Callable[[], None],
        on_failure: Callable[[str], None],
    ) -> None:
        state = self._session.state
        if state != SessionState.IDLE and not state.is_terminal:
            on_failure(f"A session is already {state.value.lower()}")
            return
        if state.is_terminal:
            self._reset_to_idle()

        if isinstance(action, RetryStartCapture):
            self._start(self._config_provider(), None, on_success, on_failure)
        elif isinstance(action, RetryTranscribe):
            self._begin_pipeline_only(action.context, CaptureResult(action.path, 0))
            self._pending_retry = (self._session_id, on_success, on_failure)
            self._invoke_pipeline(
                lambda: self._pipeline.begin_transcription(
                    action.path, action.context, self._session.improvement_enabled
                )
            )
        elif isinstance(action, RetryImprove):
            self._begin_pipeline_only(action.context, None)
            self._session.improvement_enabled = True
            self._improvement_only = True
            self._pending_retry = (self._session_id, on_success, on_failure)
            self._invoke_pipeline(
                lambda: self._pipeline.begin_improvement(action.text, action.context)
            )
        else:
            on_failure(f"unsupported retry action {action!r}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _start(
        self,
        config: SessionConfig,
        context: Optional[AppContext],
        on_started: Optional[Callable[[], None]] = None,
        on_start_failed: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._cancel_terminal_timer()
        self._session_id += 1
        sid = self._session_id
        self._config = config
        self._improvement_only = False
        self._health_poll_in_flight = False

        session = self._session
        session.reset()
        session.mode = config.mode
        session.improvement_enabled = config.improvement_enabled
        session.started_at = self._scheduler.now()
        session.detected_context = context or self._detect_context()
        self._transition(SessionState.RECORDING)
        self._arm_timers(config)
        self._publisher.session_started(session.started_at)

        def started(_: object) -> None:
            if on_started and sid == self._session_id:
                on_started()

        def failed(exc: Exception) -> None:
            if sid != self._capture_sid:
                logger.warning("capture start failed for superseded session %d: %s", sid, exc)
                return
            current = sid == self._session_id
            state = self._session.state
            record: Optional[ErrorRecord] = None
            if current and state == SessionState.RECORDING:
                self._timers.disarm_all()
                self._reset_to_idle()
                self._publisher.hide()
            elif current and state == SessionState.PROCESSING:
                # the stop already went out; its result is stale once we are in Error
                record = self._start_failure_record(exc)
                self._enter_error(record)
            else:
                logger.warning("capture start failed after session %d moved on: %s", sid, exc)
            if on_start_failed:
                on_start_failed(str(exc))
            else:
                self._errors.report(record or self._start_failure_record(exc))

        self._capture_sid = sid
        self._runner.submit(self._capture.start_capture, started, failed)

    def _start_failure_record(self, exc: Exception) -> ErrorRecord:
        code = error_code_of(exc, ERR_AUDIO)
        category = ERROR_CODES[code][1]
        if category in (ErrorCategory.PERMISSION, ErrorCategory.USER_ACTION):
            return create_error(code, "recorder", details=str(exc))
        return create_error(
            code,
            "recorder",
            details=str(exc),
            retry_action=RetryStartCapture(),
            category=ErrorCategory.TRANSIENT,
            retryable=True,
        )

    def _stop(self) -> None:
        sid = self._session_id
        self._leave_recording()
        self._transition(SessionState.PROCESSING)
        self._publisher.session_stopped()

        def stopped(result: CaptureResult) -> None:
            if sid != self._session_id or self._session.state != SessionState.PROCESSING:
                logger.debug("stale capture result for session %d", sid)
                return
            self._session.capture = result
            context = self._session.detected_context
            improve = self._session.improvement_enabled
            self._invoke_pipeline(
                lambda: self._pipeline.begin_transcription(
                    result.path, context, improve, duration_ms=result.duration_ms
                )
            )

        def failed(exc: Exception) -> None:
            if sid != self._session_id or self._session.state != SessionState.PROCESSING:
                logger.warning("capture stop failed after session %d moved on: %s", sid, exc)
                return
            self._fail(create_error(error_code_of(exc, ERR_AUDIO), "recorder", details=str(exc)))

        self._runner.submit(self._capture.stop_capture, stopped, failed)

    def _cancel(self, reason: str, record: Optional[ErrorRecord] = None) -> None:
        self._leave_recording()
        self._transition(SessionState.CANCELLED)
        self._publisher.session_cancelled()

        def discarded(_: object) -> None:
            logger.debug("capture discarded: %s", reason)

        def discard_failed(exc: Exception) -> None:
            logger.warning("stop and discard failed: %s", exc)

        self._runner.submit(self._stop_and_discard, discarded, discard_failed)
        self._enter_terminal(CANCELLED_DISPLAY_S)
        if record is not None:
            self._errors.report(record)
        else:
            self._errors.info(reason)

    def _stop_and_discard(self) -> None:
        result = self._capture.stop_capture()
        self._capture.discard(result.path)

    def _fail(self, record: ErrorRecord) -> None:
        self._enter_error(record)
        if not self._settle_retry(succeeded=False, details=record.details or record.message):
            self._errors.report(record)

    def _enter_error(self, record: ErrorRecord) -> None:
        self._session.error = record
        self._transition(SessionState.ERROR)
        self._publisher.session_error(record.message)
        self._enter_terminal(ERROR_DISPLAY_S)

    def _begin_pipeline_only(self, context: Optional[AppContext], capture: Optional[CaptureResult]) -> None:
        self._session_id += 1
        config = self._config_provider()
        self._config = config
        self._improvement_only = False
        session = self._session
        session.reset()
        session.mode = config.mode
        session.improvement_enabled = config.improvement_enabled
        session.detected_context = context
        session.capture = capture
        self._transition(SessionState.PROCESSING)
        self._publisher.session_stopped()

    def _invoke_pipeline(self, begin: Callable[[], None]) -> None:
        try:
            begin()
        except Exception as exc:
            logger.exception("pipeline refused to start")
            self.handle_pipeline_error(str(exc))

    def _settle_retry(self, succeeded: bool, details: str = "") -> bool:
        pending = self._pending_retry
        if pending is None or pending[0] != self._session_id:
            return False
        self._pending_retry = None
        _, on_success, on_failure = pending
        if succeeded:
            on_success()
        else:
            on_failure(details)
        return True

    def _enter_terminal(self, delay_s: float) -> None:
        self._cancel_terminal_timer()
        sid = self._session_id

        def expire() -> None:
            self._terminal_timer = None
            if sid == self._session_id and self._session.state.is_terminal:
                self._reset_to_idle()

        self._terminal_timer = self._scheduler.call_later(delay_s, expire)

    def _cancel_terminal_timer(self) -> None:
        if self._terminal_timer is not None:
            self._terminal_timer.cancel()
            self._terminal_timer = None

    def _reset_to_idle(self) -> None:
        self._cancel_terminal_timer()
        self._session_id += 1
        self._improvement_only = False
        self._transition(SessionState.IDLE)
        self._session.reset()

    def _leave_recording(self) -> None:
        self._timers.disarm_all()
        session = self._session
        if session.started_at is not None:
            session.elapsed_s = self._scheduler.now() - session.started_at
        session.audio_level = 0

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm_timers(self, config: SessionConfig) -> None:
        max_s = config.max_duration_s
        self._timers.arm(TimerKind.DURATION_TICKER, DURATION_TICK_S, self._on_tick, periodic=True)
        self._timers.arm(TimerKind.WARNING, max(0.0, max_s - WARNING_BEFORE_MAX_S), self._on_warning)
        self._timers.arm(TimerKind.MAX_DURATION, max_s, self._on_max_duration)
        self._timers.arm(TimerKind.HEALTH_POLLER, HEALTH_POLL_S, self._poll_health, periodic=True)

    def _on_tick(self) -> None:
        started = self._session.started_at
        if started is not None:
            self._session.elapsed_s = self._scheduler.now() - started

    def _on_warning(self) -> None:
        self._errors.warning("30 seconds remaining", "Maximum recording time will be reached soon")

    def _on_max_duration(self) -> None:
        self._errors.info("Maximum recording time reached", "Recording stops automatically")
        if self._session.state == SessionState.RECORDING:
            self._stop()

    def _poll_health(self) -> None:
        if self._health_poll_in_flight:
            return
        self._health_poll_in_flight = True
        sid = self._session_id
        generation = self._timers.generation

        def live() -> bool:
            return (
                sid == self._session_id
                and self._timers.is_live(generation)
                and self._session.state == SessionState.RECORDING
            )

        def polled(fault: Optional[str]) -> None:
            if sid == self._session_id:
                self._health_poll_in_flight = False
            if fault and live():
                self._on_device_fault(fault)

        def poll_failed(exc: Exception) -> None:
            if sid == self._session_id:
                self._health_poll_in_flight = False
            if live():
                self._on_device_fault(str(exc) or exc.__class__.__name__)

        self._runner.submit(self._capture.poll_health, polled, poll_failed)

    def _on_device_fault(self, fault: str) -> None:
        record = create_error(
            ERR_AUDIO_STREAM,
            "recorder",
            details=fault,
            retry_action=RetryStartCapture(),
        )
        self._cancel(fault, record)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _detect_context(self) -> AppContext:
        if self._context_detector is None:
            return AppContext()
        try:
            return self._context_detector.detect()
        except Exception:
            logger.exception("context detection failed")
            return AppContext()

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._session.state
        if from_state == to_state:
            return
        self._session.state = to_state
        logger.debug("session %d: %s -> %s", self._session_id, from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
