"""Floating always-on-top recording indicator."""

from __future__ import annotations

from indicator import IndicatorMirror, IndicatorPhase, IndicatorView

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QProgressBar, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QProgressBar = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

BASE_STYLE = (
    "font-size: 16px; padding: 10px 14px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
PHASE_COLORS = {
    IndicatorPhase.RECORDING: "#FF6B6B",
    IndicatorPhase.ERROR: "#FF8800",
    IndicatorPhase.DONE: "#7CD992",
}


class OverlayWindow(QWidget):
    """Renders an ``IndicatorMirror``; holds no session state of its own."""

    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(220)

        self._label = QLabel("")
        self._level = QProgressBar()
        self._level.setRange(0, 100)
        self._level.setTextVisible(False)
        self._level.setFixedHeight(6)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        layout.addWidget(self._level)
        self.setLayout(layout)

        self._mirror: IndicatorMirror | None = None
        self._clock = QTimer(self)
        self._clock.setInterval(250)
        self._clock.timeout.connect(self._refresh_elapsed)

    def attach(self, mirror: IndicatorMirror) -> None:
        self._mirror = mirror

    def _center_top(self) -> None:
        """Position the window at the top center of the primary screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + 20
        self.move(x, y)

    def show_view(self, view: IndicatorView) -> None:
        if not view.visible:
            self._clock.stop()
            self.hide()
            return
        color = PHASE_COLORS.get(view.phase, "white")
        self._label.setStyleSheet(f"color: {color}; {BASE_STYLE}")
        self._level.setVisible(view.phase == IndicatorPhase.RECORDING)
        self._level.setValue(view.level)
        self.setWindowOpacity(0.4 if view.fading else 1.0)
        if view.phase == IndicatorPhase.RECORDING:
            self._clock.start()
            self._refresh_elapsed()
        else:
            self._clock.stop()
            self._label.setText(view.label)
        if not self.isVisible():
            self._center_top()
            self.show()

    def _refresh_elapsed(self) -> None:
        if self._mirror is None:
            return
        self._label.setText(f"● {self._mirror.elapsed_text()}")
