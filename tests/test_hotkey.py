from __future__ import annotations

from types import SimpleNamespace

import pytest

import hotkey
from hotkey import GlobalHotkeyAdapter


class FakeListener:
    IS_TRUSTED = True
    last: "FakeListener | None" = None

    def __init__(self, on_press, on_release) -> None:  # noqa: ANN001
        self.on_press = on_press
        self.on_release = on_release
        self.started = False
        self.stopped = False
        FakeListener.last = self

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


class UntrustedListener(FakeListener):
    IS_TRUSTED = False


def _start(monkeypatch, listener_cls=FakeListener):  # noqa: ANN001, ANN202
    monkeypatch.setattr(hotkey, "keyboard", SimpleNamespace(Listener=listener_cls))
    events: list[str] = []
    adapter = GlobalHotkeyAdapter("Key.f9")
    adapter.start(
        on_press=lambda: events.append("press"),
        on_release=lambda: events.append("release"),
        on_escape=lambda: events.append("escape"),
        on_permission_required=lambda: events.append("permission"),
    )
    return adapter, FakeListener.last, events


def test_press_and_release_of_hotkey(monkeypatch) -> None:  # noqa: ANN001
    _, listener, events = _start(monkeypatch)

    listener.on_press("Key.f9")
    listener.on_release("Key.f9")

    assert listener.started
    assert events == ["press", "release"]


def test_auto_repeat_collapses_to_one_press(monkeypatch) -> None:  # noqa: ANN001
    _, listener, events = _start(monkeypatch)

    for _ in range(5):
        listener.on_press("Key.f9")
    listener.on_release("Key.f9")
    listener.on_release("Key.f9")

    assert events == ["press", "release"]


def test_other_keys_are_ignored_except_escape(monkeypatch) -> None:  # noqa: ANN001
    _, listener, events = _start(monkeypatch)

    listener.on_press("'a'")
    listener.on_release("'a'")
    listener.on_press("Key.esc")

    assert events == ["escape"]


def test_untrusted_listener_requests_permission(monkeypatch) -> None:  # noqa: ANN001
    _, _, events = _start(monkeypatch, UntrustedListener)
    assert events == ["permission"]


def test_stop_resets_pressed_state(monkeypatch) -> None:  # noqa: ANN001
    adapter, listener, events = _start(monkeypatch)
    listener.on_press("Key.f9")

    adapter.stop()
    assert listener.stopped

    adapter.start(on_press=lambda: events.append("press"), on_release=lambda: None)
    FakeListener.last.on_press("Key.f9")
    assert events == ["press", "press"]


def test_start_without_pynput_raises(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(hotkey, "keyboard", None)
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        GlobalHotkeyAdapter().start(on_press=lambda: None, on_release=lambda: None)
