"""Application entrypoint."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from archive import MarkdownArchive
from auto_paste import ClipboardPasteService
from config import JsonConfigStore
from context_detect import ForegroundAppDetector
from debounce import DebounceGate
from error_center import ErrorCenter, details_text
from errors import ErrorRecord
from hotkey import GlobalHotkeyAdapter
from improver import OllamaImprover
from indicator import IndicatorMirror
from models import SessionState, ShortcutMode
from overlay import OverlayWindow
from pipeline import DictationPipeline
from recognizer import DashscopeTranscriber
from recorder import SoundDeviceCapture
from scheduler import QtScheduler, ThreadedCommandRunner
from session_controller import TOGGLE_DEBOUNCE_S, SessionController
from status_bus import StatusBus, StatusPublisher

try:
    from PySide6.QtCore import QSize
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_RECORDING = "#FF4444"  # red
ICON_PROCESSING = "#4488FF"  # blue
ICON_ERROR = "#FF8800"     # orange

TRAY_STATUS = {
    SessionState.IDLE: (ICON_IDLE, "Ready"),
    SessionState.RECORDING: (ICON_RECORDING, "Recording..."),
    SessionState.PROCESSING: (ICON_PROCESSING, "Processing..."),
    SessionState.TRANSCRIBING: (ICON_PROCESSING, "Transcribing..."),
    SessionState.IMPROVING: (ICON_PROCESSING, "Improving text..."),
    SessionState.DONE: (ICON_IDLE, "Done"),
    SessionState.ERROR: (ICON_ERROR, "Error"),
    SessionState.CANCELLED: (ICON_IDLE, "Cancelled"),
}

NOTICE_MS = {"success": 3000, "warning": 5000, "info": 5000, "error": 10000}


class TrayNotifier:
    """Shows notices as tray balloons; balloons cannot be withdrawn once shown."""

    def __init__(self, tray: QSystemTrayIcon) -> None:
        self._tray = tray
        self.last_notice_id: Optional[str] = None

    def show(self, notice_id: str, level: str, title: str, body: str = "") -> None:
        if level == "loading":
            self._tray.setToolTip(f"voxdesk - {title}")
            return
        self.last_notice_id = notice_id
        icon = {
            "error": QSystemTrayIcon.Critical,
            "warning": QSystemTrayIcon.Warning,
        }.get(level, QSystemTrayIcon.Information)
        self._tray.showMessage(title, body, icon, NOTICE_MS.get(level, 5000))

    def dismiss(self, notice_id: str) -> None:
        if notice_id == self.last_notice_id:
            self.last_notice_id = None
        logger.debug("notice %s dismissed", notice_id)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.scheduler = QtScheduler()
        self.runner = ThreadedCommandRunner(self.scheduler)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("voxdesk - Ready")

        self.notifier = TrayNotifier(self.tray)
        self.errors = ErrorCenter(self.scheduler, self.notifier)
        self.errors.on_show_details(self._show_error_details)
        self.bus = StatusBus()
        self.publisher = StatusPublisher(self.bus, self.scheduler)

        self.overlay = OverlayWindow()
        self.indicator = IndicatorMirror(self.scheduler, on_change=self.overlay.show_view)
        self.overlay.attach(self.indicator)
        self.bus.subscribe(self.indicator.handle_event)

        self.capture = SoundDeviceCapture(on_level=self._on_level)
        self.pipeline = DictationPipeline(
            transcriber=DashscopeTranscriber(api_key=self.config_store.get_api_key()),
            paste_service=ClipboardPasteService(),
            improver=OllamaImprover(
                url=self.config_store.get_ollama_url(),
                model=self.config_store.get_ollama_model(),
                timeout_s=self.config_store.get_ollama_timeout_s(),
            ),
            archiver=MarkdownArchive(
                self.config_store.get_archive_path(),
                include_original=self.config_store.get_archive_include_original(),
                nested=self.config_store.get_archive_nested(),
            ),
            post=self.scheduler.call_soon,
            insert_enabled=self.config_store.get_text_insert_enabled,
            archive_enabled=self.config_store.get_archive_enabled,
        )
        self.controller = SessionController(
            capture=self.capture,
            pipeline=self.pipeline,
            scheduler=self.scheduler,
            runner=self.runner,
            publisher=self.publisher,
            error_center=self.errors,
            config_provider=self.config_store.load_session_config,
            context_detector=ForegroundAppDetector(),
            debounce=DebounceGate(TOGGLE_DEBOUNCE_S),
            on_state_change=self._on_state_change,
        )
        self.pipeline.bind(
            on_stage=self.controller.handle_stage_started,
            on_complete=self.controller.handle_pipeline_complete,
            on_error=self.controller.handle_pipeline_error,
            on_notice=self._on_notice,
        )
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())

        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        mode_action = QAction("Toggle Mode", menu)
        mode_action.setCheckable(True)
        mode_action.setChecked(self.config_store.get_shortcut_mode().value == "Toggle")
        mode_action.toggled.connect(self._set_toggle_mode)
        menu.addAction(mode_action)

        improve_action = QAction("AI Text Improvement", menu)
        improve_action.setCheckable(True)
        improve_action.setChecked(self.config_store.get_improvement_enabled())
        improve_action.toggled.connect(self.config_store.set_improvement_enabled)
        menu.addAction(improve_action)

        archive_action = QAction("Archive Transcriptions", menu)
        archive_action.setCheckable(True)
        archive_action.setChecked(self.config_store.get_archive_enabled())
        archive_action.toggled.connect(self.config_store.set_archive_enabled)
        menu.addAction(archive_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)
        self.tray.messageClicked.connect(self._on_message_clicked)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.pipeline.replace_transcriber(DashscopeTranscriber(api_key=value))
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.f9"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    def _set_toggle_mode(self, enabled: bool) -> None:
        self.config_store.set_shortcut_mode(
            ShortcutMode.TOGGLE if enabled else ShortcutMode.PUSH_TO_TALK
        )

    # ------------------------------------------------------------------
    # Worker-thread callbacks (marshalled onto the Qt main thread)
    # ------------------------------------------------------------------

    def _on_level(self, level: int) -> None:
        self.scheduler.call_soon(lambda: self.controller.handle_audio_level(level))

    def _on_hotkey_press(self) -> None:
        self.scheduler.call_soon(self.controller.handle_press)

    def _on_hotkey_release(self) -> None:
        self.scheduler.call_soon(self.controller.handle_release)

    def _on_escape(self) -> None:
        self.scheduler.call_soon(self.controller.handle_escape)

    def _on_permission_required(self) -> None:
        self.scheduler.call_soon(self.controller.handle_permission_required)

    # ------------------------------------------------------------------
    # Main-thread handlers
    # ------------------------------------------------------------------

    def _on_notice(self, level: str, title: str, body: str) -> None:
        if level == "warning":
            self.errors.warning(title, body)
        elif level == "success":
            self.errors.success(title, body)
        else:
            self.errors.info(title, body)

    def _on_message_clicked(self) -> None:
        if self.controller.permission_required:
            self.controller.acknowledge_permission()
        notice_id = self.notifier.last_notice_id
        self.controller.hide()
        if notice_id is not None:
            self.errors.show_details(notice_id)

    def _show_error_details(self, record: ErrorRecord) -> None:
        box = QMessageBox()
        box.setWindowTitle("voxdesk error")
        box.setIcon(QMessageBox.Warning)
        box.setText(details_text(record))
        retry_button = box.addButton("Retry", QMessageBox.AcceptRole) if record.can_retry else None
        box.addButton(QMessageBox.Close)
        box.exec()
        if retry_button is not None and box.clickedButton() is retry_button:
            self.errors.retry(record)

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        color, text = TRAY_STATUS[to_state]
        self.tray.setIcon(_create_icon(color))
        self.tray.setToolTip(f"voxdesk - {text}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
                on_escape=self._on_escape,
                on_permission_required=self._on_permission_required,
            )
        except Exception as exc:
            self.errors.warning("Hotkey disabled", str(exc), persistent=True)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.handle_shortcut_cancelled("app quit")
        self.errors.dismiss_all()
        self.pipeline.shutdown()
        self.runner.shutdown()
        self.app.quit()


def main() -> int:
    logging.basicConfig(
        level=os.getenv("VOXDESK_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
