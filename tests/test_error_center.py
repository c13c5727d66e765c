from __future__ import annotations

from error_center import (
    GROUP_NOTICE_ID,
    RETRY_NOTICE_ID,
    ErrorCenter,
    backoff_delay,
    details_text,
)
from errors import (
    ERR_ACCESSIBILITY_PERMISSION,
    ERR_MIC_BUSY,
    ERR_TRANSCRIPTION_FAILED,
    ErrorRecord,
    RetryTranscribe,
    create_error,
)


class FakeNotifier:
    def __init__(self) -> None:
        self.shown: list[tuple[str, str, str, str]] = []
        self.dismissed: list[str] = []

    def show(self, notice_id: str, level: str, title: str, body: str = "") -> None:
        self.shown.append((notice_id, level, title, body))

    def dismiss(self, notice_id: str) -> None:
        self.dismissed.append(notice_id)


class FakeRetryExecutor:
    def __init__(self, outcome: str | None = None) -> None:
        self.outcome = outcome
        self.calls: list[object] = []
        self.pending: list[tuple] = []

    def __call__(self, action, on_success, on_failure) -> None:  # noqa: ANN001
        self.calls.append(action)
        if self.outcome == "success":
            on_success()
        elif self.outcome == "failure":
            on_failure(f"attempt {len(self.calls)} failed")
        else:
            self.pending.append((on_success, on_failure))


def _transient(component: str = "pipeline", details: str = "network down") -> ErrorRecord:
    return create_error(
        ERR_TRANSCRIPTION_FAILED,
        component,
        details=details,
        retry_action=RetryTranscribe(path="/tmp/a.wav"),
    )


def test_backoff_schedule() -> None:
    assert backoff_delay(0) == 0.0
    assert backoff_delay(1) == 1.0
    assert backoff_delay(2) == 3.0
    assert backoff_delay(7) == 3.0


def test_transient_error_expires(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    center.report(_transient())
    assert len(center.displayed_errors()) == 1

    scheduler.advance(10.0)
    assert center.displayed_errors() == []


def test_persistent_categories_stay_until_dismissed(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    permission_id = center.report(create_error(ERR_ACCESSIBILITY_PERMISSION, "hotkey"))
    center.report(create_error(ERR_MIC_BUSY, "recorder"))

    scheduler.advance(120.0)
    assert len(center.displayed_errors()) == 2

    center.dismiss(permission_id)
    assert len(center.displayed_errors()) == 1


def test_dismiss_all_clears_notices_and_timers(scheduler) -> None:  # noqa: ANN001
    notifier = FakeNotifier()
    center = ErrorCenter(scheduler, notifier)
    center.report(_transient())
    center.warning("Hotkey disabled", persistent=True)

    center.dismiss_all()

    assert center.displayed == []
    assert len(notifier.dismissed) == 2
    scheduler.advance(60.0)
    assert len(notifier.dismissed) == 2


def test_five_errors_within_one_second_show_one_aggregate(scheduler) -> None:  # noqa: ANN001
    notifier = FakeNotifier()
    center = ErrorCenter(scheduler, notifier)

    for _ in range(5):
        center.report(_transient())
        scheduler.advance(0.2)

    displayed = center.displayed_errors()
    assert len(displayed) == 1
    assert displayed[0].is_group
    assert displayed[0].group_count == 5
    assert center.is_grouping


def test_four_errors_within_two_seconds_show_individually(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())

    for _ in range(4):
        center.report(_transient())
        scheduler.advance(0.5)

    displayed = center.displayed_errors()
    assert len(displayed) == 4
    assert not any(n.is_group for n in displayed)
    assert not center.is_grouping


def test_group_counter_updates_and_resets_after_quiet_period(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    for _ in range(6):
        center.report(_transient())
    group = [n for n in center.displayed_errors() if n.notice_id == GROUP_NOTICE_ID]
    assert group[0].group_count == 6

    scheduler.advance(2.5)
    assert not center.is_grouping

    notice_id = center.report(_transient())
    assert notice_id != GROUP_NOTICE_ID


def test_every_error_is_logged_during_burst(scheduler, caplog) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    with caplog.at_level("ERROR", logger="error_center"):
        for i in range(7):
            center.report(_transient(details=f"failure {i}"))

    assert len([r for r in caplog.records if r.name == "error_center"]) == 7


def test_long_messages_are_truncated(scheduler) -> None:  # noqa: ANN001
    notifier = FakeNotifier()
    center = ErrorCenter(scheduler, notifier)
    center.report(_transient(details="x" * 300))

    _, _, _, body = notifier.shown[-1]
    assert body == "x" * 80 + "..."


def test_retry_twice_runs_one_execution(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor()
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)
    record = _transient()

    assert center.retry(record) is True
    assert center.retry(record) is False
    scheduler.advance(10.0)

    assert len(executor.calls) == 1
    assert center.retry_state(record).is_retrying


def test_retry_is_noop_for_non_retryable(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor("success")
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)

    assert center.retry(create_error(ERR_MIC_BUSY, "recorder")) is False
    assert center.retry(create_error(ERR_TRANSCRIPTION_FAILED, "pipeline")) is False
    assert executor.calls == []


def test_retry_success_clears_state(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor("success")
    notifier = FakeNotifier()
    center = ErrorCenter(scheduler, notifier, retry_executor=executor)
    record = _transient()

    center.retry(record)

    assert center.retry_state(record) is None
    assert RETRY_NOTICE_ID in notifier.dismissed
    assert notifier.shown[-1][1] == "success"


def test_retry_failure_rereports_with_new_details(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor("failure")
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)
    record = _transient()

    center.retry(record)

    state = center.retry_state(record)
    assert state.attempt_count == 1
    assert not state.is_retrying
    latest = center.recent_records()[-1]
    assert latest.code == record.code
    assert latest.details == "attempt 1 failed"


def test_retry_backoff_waits_one_then_three_seconds(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor("failure")
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)
    record = _transient()

    center.retry(record)
    assert len(executor.calls) == 1

    center.retry(record)
    scheduler.advance(0.99)
    assert len(executor.calls) == 1
    scheduler.advance(0.02)
    assert len(executor.calls) == 2

    center.retry(record)
    scheduler.advance(2.9)
    assert len(executor.calls) == 2
    scheduler.advance(0.2)
    assert len(executor.calls) == 3

    center.retry(record)
    scheduler.advance(2.9)
    assert len(executor.calls) == 3
    scheduler.advance(0.2)
    assert len(executor.calls) == 4


def test_retry_keys_are_independent(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor()
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)

    assert center.retry(_transient("pipeline"))
    assert center.retry(_transient("improver"))
    assert len(executor.calls) == 2


def test_late_settlement_is_ignored(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor()
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)
    record = _transient()

    center.retry(record)
    on_success, on_failure = executor.pending[0]
    on_success()
    on_failure("too late")

    assert center.retry_state(record) is None
    assert center.recent_records() == []


def test_executor_exception_counts_as_failure(scheduler) -> None:  # noqa: ANN001
    def broken(action, on_success, on_failure) -> None:  # noqa: ANN001
        raise RuntimeError("executor crashed")

    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=broken)
    record = _transient()
    center.retry(record)

    assert center.retry_state(record).attempt_count == 1
    assert center.recent_records()[-1].details == "executor crashed"


def test_delayed_retry_without_executor_settles_as_failure(scheduler) -> None:  # noqa: ANN001
    executor = FakeRetryExecutor("failure")
    center = ErrorCenter(scheduler, FakeNotifier(), retry_executor=executor)
    record = _transient()
    center.retry(record)

    assert center.retry(record) is True
    center.set_retry_executor(None)
    scheduler.advance(1.1)

    state = center.retry_state(record)
    assert state.attempt_count == 2
    assert not state.is_retrying
    assert center.recent_records()[-1].details == "no retry executor for this error"


def test_show_details_notifies_listeners(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    seen: list[ErrorRecord] = []
    unsubscribe = center.on_show_details(seen.append)

    notice_id = center.report(_transient(details="first"))
    center.show_details(notice_id)
    assert [r.details for r in seen] == ["first"]

    unsubscribe()
    center.show_details(notice_id)
    assert len(seen) == 1


def test_details_text_for_a_clicked_notice(scheduler) -> None:  # noqa: ANN001
    notifier = FakeNotifier()
    center = ErrorCenter(scheduler, notifier)
    texts: list[str] = []
    center.on_show_details(lambda record: texts.append(details_text(record)))

    center.report(_transient(component="pipeline", details="network down"))
    last_shown_id = notifier.shown[-1][0]
    center.show_details(last_shown_id)

    lines = texts[0].splitlines()
    assert lines[0] == "Transcription failed (ERR_TRANSCRIPTION_FAILED)"
    assert lines[1] == "Component: pipeline"
    assert lines[-1] == "network down"


def test_details_of_a_burst_notice_show_latest_record(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    seen: list[ErrorRecord] = []
    center.on_show_details(seen.append)
    for i in range(5):
        center.report(_transient(details=f"failure {i}"))

    center.show_details(GROUP_NOTICE_ID)

    assert [r.details for r in seen] == ["failure 4"]


def test_plain_notices_use_level_durations(scheduler) -> None:  # noqa: ANN001
    center = ErrorCenter(scheduler, FakeNotifier())
    center.success("Saved")
    center.info("Heads up")
    center.warning("Careful", persistent=True)

    scheduler.advance(3.0)
    assert sorted(n.level for n in center.displayed) == ["info", "warning"]

    scheduler.advance(2.0)
    assert [n.level for n in center.displayed] == ["warning"]
