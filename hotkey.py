"""Global shortcut adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

ESCAPE_KEY = "Key.esc"


class GlobalHotkeyAdapter:
    """Turns raw key events into press/release/escape signals.

    Callbacks run on the pynput listener thread; the caller is responsible
    for moving them onto its event loop. Auto-repeat presses of a held key
    are collapsed into one press.
    """

    def __init__(self, hotkey_name: str = "Key.f9") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()

    @property
    def hotkey_name(self) -> str:
        return self._hotkey_name

    def start(
        self,
        on_press: Callable[[], None],
        on_release: Callable[[], None],
        on_escape: Optional[Callable[[], None]] = None,
        on_permission_required: Optional[Callable[[], None]] = None,
    ) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            name = str(key)
            if name == ESCAPE_KEY and on_escape is not None:
                on_escape()
                return
            if name != self._hotkey_name:
                return
            with self._lock:
                if self._pressed:
                    return
                self._pressed = True
            on_press()

        def _on_release(key: object) -> None:
            if str(key) != self._hotkey_name:
                return
            with self._lock:
                if not self._pressed:
                    return
                self._pressed = False
            on_release()

        listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        listener.start()
        self._listener = listener
        # macOS only: False when the process lacks accessibility trust
        if getattr(listener, "IS_TRUSTED", True) is False and on_permission_required:
            logger.warning("global shortcut needs accessibility permission")
            on_permission_required()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        with self._lock:
            self._pressed = False
