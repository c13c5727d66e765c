from __future__ import annotations

from debounce import DebounceGate


def test_rejects_within_window() -> None:
    gate = DebounceGate(0.2)
    assert gate.accept("toggle", 0.0) is True
    assert gate.accept("toggle", 0.19) is False
    assert gate.accept("toggle", 0.2) is True


def test_rejection_does_not_extend_window() -> None:
    gate = DebounceGate(0.2)
    gate.accept("toggle", 0.0)
    gate.accept("toggle", 0.15)
    assert gate.accept("toggle", 0.21) is True


def test_kinds_are_independent() -> None:
    gate = DebounceGate(0.2)
    assert gate.accept("toggle", 1.0)
    assert gate.accept("escape", 1.05)


def test_reset_clears_history() -> None:
    gate = DebounceGate(0.2)
    gate.accept("toggle", 1.0)
    gate.reset("toggle")
    assert gate.accept("toggle", 1.01)

    gate.accept("escape", 2.0)
    gate.reset()
    assert gate.accept("escape", 2.01)
