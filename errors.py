"""Shared error codes, categories and retry actions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from models import AppContext


class ErrorCategory(str, Enum):
    TRANSIENT = "transient"
    USER_ACTION = "user_action"
    FATAL = "fatal"
    PERMISSION = "permission"

    @property
    def is_persistent(self) -> bool:
        return self is not ErrorCategory.TRANSIENT


ERR_MIC_NOT_FOUND = "ERR_MIC_NOT_FOUND"
ERR_MIC_PERMISSION = "ERR_MIC_PERMISSION"
ERR_MIC_BUSY = "ERR_MIC_BUSY"
ERR_MIC_DISCONNECTED = "ERR_MIC_DISCONNECTED"
ERR_AUDIO = "ERR_AUDIO"
ERR_AUDIO_STREAM = "ERR_AUDIO_STREAM"
ERR_TRANSCRIPTION_FAILED = "ERR_TRANSCRIPTION_FAILED"
ERR_API_KEY_INVALID = "ERR_API_KEY_INVALID"
ERR_OLLAMA_UNREACHABLE = "ERR_OLLAMA_UNREACHABLE"
ERR_OLLAMA_TIMEOUT = "ERR_OLLAMA_TIMEOUT"
ERR_OLLAMA_INVALID_URL = "ERR_OLLAMA_INVALID_URL"
ERR_INSERT_FAILED = "ERR_INSERT_FAILED"
ERR_NO_SPEECH = "ERR_NO_SPEECH"
ERR_TIMEOUT = "ERR_TIMEOUT"
ERR_ACCESSIBILITY_PERMISSION = "ERR_ACCESSIBILITY_PERMISSION"
ERR_UNKNOWN = "ERR_UNKNOWN"

# code -> (message, category, retryable)
ERROR_CODES = {
    ERR_MIC_NOT_FOUND: ("No microphone found", ErrorCategory.PERMISSION, False),
    ERR_MIC_PERMISSION: ("Microphone permission is missing", ErrorCategory.PERMISSION, False),
    ERR_MIC_BUSY: ("Microphone is in use by another application", ErrorCategory.USER_ACTION, False),
    ERR_MIC_DISCONNECTED: ("Microphone disconnected", ErrorCategory.USER_ACTION, False),
    ERR_AUDIO: ("Audio capture failed", ErrorCategory.TRANSIENT, True),
    ERR_AUDIO_STREAM: ("Audio stream interrupted", ErrorCategory.TRANSIENT, True),
    ERR_TRANSCRIPTION_FAILED: ("Transcription failed", ErrorCategory.TRANSIENT, True),
    ERR_API_KEY_INVALID: ("The speech API key was rejected", ErrorCategory.USER_ACTION, False),
    ERR_OLLAMA_UNREACHABLE: ("Ollama is not reachable", ErrorCategory.TRANSIENT, True),
    ERR_OLLAMA_TIMEOUT: ("AI improvement took too long", ErrorCategory.TRANSIENT, True),
    ERR_OLLAMA_INVALID_URL: ("Invalid Ollama URL", ErrorCategory.USER_ACTION, False),
    ERR_INSERT_FAILED: ("Text could not be inserted", ErrorCategory.USER_ACTION, False),
    ERR_NO_SPEECH: ("No speech detected", ErrorCategory.USER_ACTION, False),
    ERR_TIMEOUT: ("Operation timed out", ErrorCategory.TRANSIENT, True),
    ERR_ACCESSIBILITY_PERMISSION: (
        "Accessibility permission is required for the global shortcut",
        ErrorCategory.PERMISSION,
        False,
    ),
    ERR_UNKNOWN: ("An unexpected error occurred", ErrorCategory.FATAL, False),
}


@dataclass(frozen=True)
class RetryStartCapture:
    pass


@dataclass(frozen=True)
class RetryTranscribe:
    path: str
    context: Optional[AppContext] = None


@dataclass(frozen=True)
class RetryImprove:
    text: str
    context: Optional[AppContext] = None


RetryAction = Union[RetryStartCapture, RetryTranscribe, RetryImprove]


@dataclass(frozen=True)
class ErrorRecord:
    code: str
    message: str
    category: ErrorCategory
    retryable: bool
    component: str
    timestamp: datetime = field(default_factory=datetime.now)
    details: Optional[str] = None
    retry_action: Optional[RetryAction] = None

    @property
    def retry_key(self) -> tuple[str, str]:
        return (self.code, self.component)

    @property
    def can_retry(self) -> bool:
        return self.retryable and self.retry_action is not None

    def with_details(self, details: Optional[str]) -> "ErrorRecord":
        return replace(self, details=details, timestamp=datetime.now())


class CommandError(Exception):
    """Raised by collaborators when a command fails with a known error code."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


def create_error(
    code: str,
    component: str,
    details: Optional[str] = None,
    retry_action: Optional[RetryAction] = None,
    message: Optional[str] = None,
    category: Optional[ErrorCategory] = None,
    retryable: Optional[bool] = None,
) -> ErrorRecord:
    """Build a record from a known code, with optional overrides."""
    default_message, default_category, default_retryable = ERROR_CODES.get(
        code, ERROR_CODES[ERR_UNKNOWN]
    )
    return ErrorRecord(
        code=code,
        message=message or default_message,
        category=category or default_category,
        retryable=default_retryable if retryable is None else retryable,
        component=component,
        details=details,
        retry_action=retry_action,
    )


def error_code_of(exc: BaseException, fallback: str) -> str:
    if isinstance(exc, CommandError) and exc.code in ERROR_CODES:
        return exc.code
    return fallback


def truncate(message: str, max_length: int = 100) -> str:
    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."
