from __future__ import annotations

from unittest.mock import MagicMock

import auto_paste
from auto_paste import ClipboardPasteService


def _fake_keyboard(monkeypatch, fail: bool = False) -> MagicMock:  # noqa: ANN001
    controller = MagicMock()
    if fail:
        controller.press.side_effect = RuntimeError("no display")
    monkeypatch.setattr(auto_paste, "Controller", MagicMock(return_value=controller))
    monkeypatch.setattr(auto_paste, "Key", MagicMock())
    return controller


def test_paste_returns_failure_when_dependencies_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(auto_paste, "pyperclip", None)
    monkeypatch.setattr(auto_paste, "Controller", None)
    monkeypatch.setattr(auto_paste, "Key", None)

    service = ClipboardPasteService()
    result = service.paste_text("hello")

    assert result.success is False
    assert result.clipboard_restored is False


def test_paste_returns_failure_on_empty_text() -> None:
    service = ClipboardPasteService()
    result = service.paste_text("   ")

    assert result.success is False
    assert result.clipboard_restored is True


def test_paste_restores_previous_clipboard(monkeypatch) -> None:  # noqa: ANN001
    clipboard = MagicMock()
    clipboard.paste.return_value = "previous"
    monkeypatch.setattr(auto_paste, "pyperclip", clipboard)
    keyboard = _fake_keyboard(monkeypatch)

    result = ClipboardPasteService(restore_delay_s=0).paste_text("dictated")

    assert result.success is True
    assert result.clipboard_restored is True
    assert [c.args[0] for c in clipboard.copy.call_args_list] == ["dictated", "previous"]
    keyboard.press.assert_any_call("v")


def test_keystroke_failure_leaves_text_in_clipboard(monkeypatch) -> None:  # noqa: ANN001
    clipboard = MagicMock()
    clipboard.paste.return_value = "previous"
    monkeypatch.setattr(auto_paste, "pyperclip", clipboard)
    _fake_keyboard(monkeypatch, fail=True)

    result = ClipboardPasteService(restore_delay_s=0).paste_text("dictated")

    assert result.success is False
    assert "ERR_INSERT_FAILED" in result.reason
    assert [c.args[0] for c in clipboard.copy.call_args_list] == ["dictated"]


def test_restore_can_be_disabled(monkeypatch) -> None:  # noqa: ANN001
    clipboard = MagicMock()
    clipboard.paste.return_value = "previous"
    monkeypatch.setattr(auto_paste, "pyperclip", clipboard)
    _fake_keyboard(monkeypatch)

    result = ClipboardPasteService(restore_clipboard=False).paste_text("dictated")

    assert result.success is True
    assert result.clipboard_restored is False
    assert clipboard.copy.call_count == 1
