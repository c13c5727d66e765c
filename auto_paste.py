"""Auto paste service for text insertion."""

from __future__ import annotations

import sys
import time

from errors import ERR_INSERT_FAILED
from models import PasteResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore


class ClipboardPasteService:
    """Pastes via the clipboard; the text stays in the clipboard if pasting fails."""

    def __init__(self, restore_delay_s: float = 0.1, restore_clipboard: bool = True) -> None:
        self._restore_delay_s = restore_delay_s
        self._restore_clipboard = restore_clipboard

    def paste_text(self, text: str) -> PasteResult:
        if not text.strip():
            return PasteResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return PasteResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
        except Exception as exc:
            return PasteResult(
                success=False,
                reason=f"{ERR_INSERT_FAILED}: clipboard unavailable: {exc}",
                clipboard_restored=False,
            )

        try:
            modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
            keyboard = Controller()
            keyboard.press(modifier)
            keyboard.press("v")
            keyboard.release("v")
            keyboard.release(modifier)
        except Exception as exc:
            # leave the dictated text in the clipboard for a manual paste
            return PasteResult(
                success=False,
                reason=f"{ERR_INSERT_FAILED}: {exc}",
                clipboard_restored=False,
            )

        if not self._restore_clipboard or old_clip is None:
            return PasteResult(success=True, reason="ok", clipboard_restored=False)
        time.sleep(self._restore_delay_s)
        try:
            pyperclip.copy(old_clip)
        except Exception:
            return PasteResult(success=True, reason="ok", clipboard_restored=False)
        return PasteResult(success=True, reason="ok", clipboard_restored=True)
