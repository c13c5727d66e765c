"""Per-kind trigger debounce."""

from __future__ import annotations

from typing import Hashable


class DebounceGate:
    def __init__(self, window_s: float = 0.2) -> None:
        self.window_s = window_s
        self._last_accepted: dict[Hashable, float] = {}

    def accept(self, kind: Hashable, now: float) -> bool:
        last = self._last_accepted.get(kind)
        if last is not None and now - last < self.window_s:
            return False
        self._last_accepted[kind] = now
        return True

    def reset(self, kind: Hashable | None = None) -> None:
        if kind is None:
            self._last_accepted.clear()
        else:
            self._last_accepted.pop(kind, None)
