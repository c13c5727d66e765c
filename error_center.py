"""Error display, burst grouping and retry with backoff.

Every reported record is logged. Display goes through a ``Notifier``:
transient errors expire after a fixed timeout, the other categories stay
until dismissed. When five or more errors land within two seconds the
individual notices are replaced by a single aggregated counter.

Retry actions are plain data; executing one is delegated to a callable
supplied by the owner (the session controller), which reports success or
failure back through the two callbacks it receives.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from errors import ErrorRecord, RetryAction, truncate
from interfaces import Cancellable, Notifier, Scheduler

logger = logging.getLogger(__name__)

BURST_WINDOW_S = 2.0
BURST_THRESHOLD = 5
GROUP_NOTICE_ID = "error-group"
RETRY_NOTICE_ID = "retry-loading"
BACKOFF_DELAYS_S = (1.0, 3.0)

DURATIONS_S = {
    "success": 3.0,
    "warning": 5.0,
    "info": 5.0,
    "error": 10.0,
}

RetryExecutor = Callable[
    [RetryAction, Callable[[], None], Callable[[str], None]], None
]
DetailsListener = Callable[[ErrorRecord], None]


def details_text(record: ErrorRecord) -> str:
    """Multi-line description shown when the user asks for error details."""
    lines = [
        f"{record.message} ({record.code})",
        f"Component: {record.component}",
        f"Time: {record.timestamp:%Y-%m-%d %H:%M:%S}",
    ]
    if record.details:
        lines += ["", record.details]
    return "\n".join(lines)


@dataclass
class RetryState:
    attempt_count: int = 0
    is_retrying: bool = False


@dataclass
class Notice:
    notice_id: str
    level: str
    title: str
    body: str = ""
    record: Optional[ErrorRecord] = None
    group_count: int = 0
    expires: Optional[Cancellable] = None

    @property
    def is_group(self) -> bool:
        return self.notice_id == GROUP_NOTICE_ID


def backoff_delay(attempt_count: int) -> float:
    """Delay before a retry whose key has already failed ``attempt_count`` times."""
    if attempt_count <= 0:
        return 0.0
    return BACKOFF_DELAYS_S[min(attempt_count, len(BACKOFF_DELAYS_S)) - 1]


class ErrorCenter:
    def __init__(
        self,
        scheduler: Scheduler,
        notifier: Optional[Notifier] = None,
        retry_executor: Optional[RetryExecutor] = None,
    ) -> None:
        self._scheduler = scheduler
        self._notifier = notifier
        self._retry_executor = retry_executor
        self._ids = itertools.count(1)
        self._recent: deque[tuple[float, ErrorRecord, str]] = deque()
        self._visible: dict[str, Notice] = {}
        self._retry_states: dict[tuple[str, str], RetryState] = {}
        self._details_listeners: list[DetailsListener] = []
        self._group_count = 0
        self._group_reset: Optional[Cancellable] = None
        self._last_error_at: Optional[float] = None

    def set_retry_executor(self, executor: Optional[RetryExecutor]) -> None:
        self._retry_executor = executor

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def displayed(self) -> list[Notice]:
        return list(self._visible.values())

    def displayed_errors(self) -> list[Notice]:
        return [n for n in self._visible.values() if n.level == "error"]

    def retry_state(self, record: ErrorRecord) -> Optional[RetryState]:
        return self._retry_states.get(record.retry_key)

    @property
    def is_grouping(self) -> bool:
        return self._group_count > 0

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def report(self, record: ErrorRecord) -> str:
        now = self._scheduler.now()
        self._log(record)
        self._last_error_at = now
        self._prune(now)

        if len(self._recent) + 1 >= BURST_THRESHOLD:
            self._recent.append((now, record, GROUP_NOTICE_ID))
            self._show_group(len(self._recent))
            return GROUP_NOTICE_ID

        notice_id = f"error-{next(self._ids)}"
        self._recent.append((now, record, notice_id))
        duration = None if record.category.is_persistent else DURATIONS_S["error"]
        self._show(
            Notice(
                notice_id=notice_id,
                level="error",
                title=truncate(record.message),
                body=truncate(record.details, 80) if record.details else "",
                record=record,
            ),
            duration,
        )
        return notice_id

    def retry(self, record: ErrorRecord) -> bool:
        """Start a retry; returns False when it was not started."""
        if not record.can_retry or self._retry_executor is None:
            return False
        key = record.retry_key
        state = self._retry_states.setdefault(key, RetryState())
        if state.is_retrying:
            logger.debug("retry already in flight for %s/%s", *key)
            return False
        state.is_retrying = True
        self._show(Notice(RETRY_NOTICE_ID, "loading", "Retrying..."), None)

        delay = backoff_delay(state.attempt_count)
        if delay > 0:
            self._scheduler.call_later(delay, lambda: self._run_retry(record))
        else:
            self._run_retry(record)
        return True

    def _run_retry(self, record: ErrorRecord) -> None:
        executor = self._retry_executor
        action = record.retry_action
        settled = False

        def succeeded() -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            self._retry_states.pop(record.retry_key, None)
            self.dismiss(RETRY_NOTICE_ID)
            self.success("Retried successfully")

        def failed(details: str) -> None:
            nonlocal settled
            if settled:
                return
            settled = True
            state = self._retry_states.setdefault(record.retry_key, RetryState())
            state.attempt_count += 1
            state.is_retrying = False
            self.dismiss(RETRY_NOTICE_ID)
            self.report(record.with_details(details or record.details))

        try:
            if executor is None or action is None:
                raise RuntimeError("no retry executor for this error")
            executor(action, succeeded, failed)
        except Exception as exc:
            logger.exception("retry executor raised for %s", record.code)
            failed(str(exc))

    def on_show_details(self, listener: DetailsListener) -> Callable[[], None]:
        self._details_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._details_listeners:
                self._details_listeners.remove(listener)

        return unsubscribe

    def show_details(self, notice_id: str) -> None:
        notice = self._visible.get(notice_id)
        if notice is None:
            return
        if notice.is_group:
            records = self.recent_records()
            record = records[-1] if records else None
        else:
            record = notice.record
        if record is None:
            return
        for listener in list(self._details_listeners):
            listener(record)

    def recent_records(self, limit: int = 5) -> list[ErrorRecord]:
        return [record for _, record, _ in list(self._recent)[-limit:]]

    # ------------------------------------------------------------------
    # Plain notices
    # ------------------------------------------------------------------

    def info(self, title: str, body: str = "") -> str:
        return self._plain("info", title, body)

    def warning(self, title: str, body: str = "", persistent: bool = False) -> str:
        return self._plain("warning", title, body, persistent)

    def success(self, title: str, body: str = "") -> str:
        return self._plain("success", title, body)

    def loading(self, title: str) -> str:
        return self._plain("loading", title, persistent=True)

    def dismiss(self, notice_id: str) -> None:
        notice = self._visible.pop(notice_id, None)
        if notice is None:
            return
        if notice.expires is not None:
            notice.expires.cancel()
        if self._notifier:
            self._notifier.dismiss(notice_id)

    def dismiss_all(self) -> None:
        for notice_id in list(self._visible):
            self.dismiss(notice_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _plain(self, level: str, title: str, body: str = "", persistent: bool = False) -> str:
        notice_id = f"{level}-{next(self._ids)}"
        duration = None if persistent else DURATIONS_S[level]
        self._show(Notice(notice_id, level, truncate(title), truncate(body, 80)), duration)
        return notice_id

    def _show(self, notice: Notice, duration_s: Optional[float]) -> None:
        previous = self._visible.get(notice.notice_id)
        if previous is not None and previous.expires is not None:
            previous.expires.cancel()
        if duration_s is not None:
            notice_id = notice.notice_id
            notice.expires = self._scheduler.call_later(
                duration_s, lambda: self._expire(notice_id, notice)
            )
        self._visible[notice.notice_id] = notice
        if self._notifier:
            self._notifier.show(notice.notice_id, notice.level, notice.title, notice.body)

    def _expire(self, notice_id: str, notice: Notice) -> None:
        if self._visible.get(notice_id) is notice:
            notice.expires = None
            self.dismiss(notice_id)

    def _show_group(self, count: int) -> None:
        self._group_count = count
        for _, _, notice_id in self._recent:
            if notice_id != GROUP_NOTICE_ID:
                self.dismiss(notice_id)
        self._show(
            Notice(
                notice_id=GROUP_NOTICE_ID,
                level="error",
                title=f"{count} errors occurred",
                body="Several errors in a short time. Open details for more.",
                group_count=count,
            ),
            DURATIONS_S["error"],
        )
        if self._group_reset is not None:
            self._group_reset.cancel()
        self._group_reset = self._scheduler.call_later(BURST_WINDOW_S, self._maybe_reset_group)

    def _maybe_reset_group(self) -> None:
        self._group_reset = None
        now = self._scheduler.now()
        if self._last_error_at is not None and now - self._last_error_at >= BURST_WINDOW_S - 1e-9:
            self._group_count = 0
            self._prune(now)

    def _prune(self, now: float) -> None:
        while self._recent and now - self._recent[0][0] >= BURST_WINDOW_S:
            self._recent.popleft()

    def _log(self, record: ErrorRecord) -> None:
        logger.error(
            "[%s] [%s] %s: %s %s",
            record.timestamp.isoformat(),
            record.component,
            record.code,
            record.message,
            record.details or "",
        )
