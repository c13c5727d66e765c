from __future__ import annotations

from indicator import IndicatorMirror, IndicatorPhase, IndicatorView, format_elapsed
from models import PipelineStage
from status_bus import StatusBus, StatusPublisher


def _wire(scheduler):  # noqa: ANN001, ANN202
    bus = StatusBus()
    views: list[IndicatorView] = []
    mirror = IndicatorMirror(scheduler, on_change=views.append)
    bus.subscribe(mirror.handle_event)
    return StatusPublisher(bus, scheduler), mirror, views


def test_format_elapsed() -> None:
    assert format_elapsed(0) == "0:00"
    assert format_elapsed(65.9) == "1:05"
    assert format_elapsed(-3) == "0:00"


def test_follows_session_lifecycle(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)

    publisher.session_started(scheduler.now())
    assert mirror.view.phase == IndicatorPhase.RECORDING
    assert mirror.view.visible

    publisher.audio_level(42)
    assert mirror.view.level == 42

    publisher.session_stopped()
    assert mirror.view.phase == IndicatorPhase.PROCESSING
    assert mirror.view.level == 0

    publisher.stage_changed(PipelineStage.TRANSCRIBING)
    assert mirror.view.label == "Transcribing..."

    publisher.stage_changed(PipelineStage.IMPROVING)
    assert mirror.view.phase == IndicatorPhase.IMPROVING

    publisher.session_done()
    assert mirror.view.phase == IndicatorPhase.DONE


def test_elapsed_text_uses_start_timestamp(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_started(scheduler.now())
    scheduler.advance(72.0)
    assert mirror.elapsed_text() == "1:12"


def test_audio_level_ignored_outside_recording(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, views = _wire(scheduler)
    publisher.audio_level(80)
    assert mirror.view.level == 0
    assert views == []


def test_done_hides_after_display_time_and_fade(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_started(scheduler.now())
    publisher.session_stopped()
    publisher.session_done()

    scheduler.advance(1.49)
    assert mirror.view.visible and not mirror.view.fading

    scheduler.advance(0.02)
    assert mirror.view.fading

    scheduler.advance(0.3)
    assert mirror.view == IndicatorView()


def test_error_stays_longer_and_shows_message(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_error("Transcription failed")
    assert mirror.view.label == "Transcription failed"

    scheduler.advance(2.9)
    assert mirror.view.visible and not mirror.view.fading

    scheduler.advance(0.5)
    assert not mirror.view.visible


def test_cancelled_hides_after_one_second(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_started(scheduler.now())
    publisher.session_cancelled()

    scheduler.advance(1.31)
    assert mirror.view.phase == IndicatorPhase.HIDDEN


def test_new_session_cancels_pending_hide(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_done()
    scheduler.advance(1.0)
    publisher.session_started(scheduler.now())

    scheduler.advance(5.0)
    assert mirror.view.phase == IndicatorPhase.RECORDING
    assert mirror.view.visible


def test_explicit_hide_fades_out(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, _ = _wire(scheduler)
    publisher.session_error("boom")
    publisher.hide()
    assert mirror.view.fading

    scheduler.advance(0.31)
    assert not mirror.view.visible


def test_hide_while_hidden_is_noop(scheduler) -> None:  # noqa: ANN001
    publisher, mirror, views = _wire(scheduler)
    publisher.hide()
    scheduler.advance(1.0)
    assert views == []
