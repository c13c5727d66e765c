"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SessionState(str, Enum):
    IDLE = "Idle"
    RECORDING = "Recording"
    PROCESSING = "Processing"
    TRANSCRIBING = "Transcribing"
    IMPROVING = "Improving"
    DONE = "Done"
    ERROR = "Error"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.ERROR, SessionState.CANCELLED)

    @property
    def is_pipeline(self) -> bool:
        return self in (
            SessionState.PROCESSING,
            SessionState.TRANSCRIBING,
            SessionState.IMPROVING,
        )


class ShortcutMode(str, Enum):
    PUSH_TO_TALK = "PushToTalk"
    TOGGLE = "Toggle"


class PipelineStage(str, Enum):
    TRANSCRIBING = "transcribing"
    IMPROVING = "improving"
    DELIVERING = "delivering"


class AppCategory(str, Enum):
    EMAIL = "email"
    CHAT = "chat"
    CODE = "code"
    DOCS = "docs"
    BROWSER = "browser"
    NOTES = "notes"
    TERMINAL = "terminal"
    SOCIAL = "social"
    OTHER = "other"


@dataclass(frozen=True)
class AppContext:
    app_name: str = "Desktop"
    window_title: str = ""
    category: AppCategory = AppCategory.OTHER


@dataclass(frozen=True)
class SessionConfig:
    """Read-only settings snapshot taken when a session starts."""

    mode: ShortcutMode = ShortcutMode.PUSH_TO_TALK
    max_duration_minutes: float = 6.0
    min_hold_ms: int = 300
    improvement_enabled: bool = False

    @property
    def max_duration_s(self) -> float:
        return self.max_duration_minutes * 60.0

    @property
    def min_hold_s(self) -> float:
        return self.min_hold_ms / 1000.0


@dataclass
class Session:
    state: SessionState = SessionState.IDLE
    mode: ShortcutMode = ShortcutMode.PUSH_TO_TALK
    started_at: Optional[float] = None
    elapsed_s: float = 0.0
    detected_context: Optional[AppContext] = None
    audio_level: int = 0
    improvement_enabled: bool = False
    capture: Optional["CaptureResult"] = None
    error: Any = None

    def reset(self) -> None:
        self.state = SessionState.IDLE
        self.mode = ShortcutMode.PUSH_TO_TALK
        self.started_at = None
        self.elapsed_s = 0.0
        self.detected_context = None
        self.audio_level = 0
        self.improvement_enabled = False
        self.capture = None
        self.error = None

    def snapshot(self) -> "Session":
        """Copy handed to collaborators and views; never the live object."""
        return replace(self)


@dataclass(frozen=True)
class CaptureResult:
    path: str
    duration_ms: int


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    language: str = ""
    processing_time_ms: int = 0


@dataclass(frozen=True)
class ImprovementResult:
    text: str
    was_edited: bool
    processing_time_ms: int = 0


@dataclass
class PasteResult:
    success: bool
    reason: str
    clipboard_restored: bool


@dataclass(frozen=True)
class PipelineResult:
    text: str
    original_text: str
    was_edited: bool = False
    inserted: bool = False
    processing_time_ms: int = 0
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ArchiveEntry:
    text: str
    original_text: str
    was_edited: bool = False
    app_name: str = "Desktop"
    category: AppCategory = AppCategory.OTHER
    language: str = ""
    duration_s: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def word_count(self) -> int:
        return len(self.text.split())
