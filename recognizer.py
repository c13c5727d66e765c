"""Speech-to-text collaborator using DashScope qwen3-asr-flash.

The model accepts complete audio (file path, URL, or base64) and streams back
recognition results via ``stream=True``. We read the finished WAV recording,
send it base64-encoded, and keep the last streamed text as the transcription.
"""

from __future__ import annotations

import base64
import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

from errors import ERR_API_KEY_INVALID, ERR_TIMEOUT, ERR_TRANSCRIPTION_FAILED, CommandError
from models import TranscriptionResult

logger = logging.getLogger(__name__)

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

def _file_to_base64(path: str) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        on_partial: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._on_partial = on_partial

    def transcribe(self, path: str) -> TranscriptionResult:
        if dashscope is None:
            raise CommandError(ERR_TRANSCRIPTION_FAILED, "dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise CommandError(ERR_TRANSCRIPTION_FAILED, "No API key configured")
        try:
            audio = _file_to_base64(path)
        except OSError as exc:
            raise CommandError(ERR_TRANSCRIPTION_FAILED, f"cannot read recording: {exc}") from exc

        started = time.monotonic()
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": audio}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            for chunk in response:
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    if self._on_partial:
                        self._on_partial(text)
        except CommandError:
            raise
        except Exception as exc:
            raise self._to_command_error(exc) from exc

        return TranscriptionResult(
            text=latest_text.strip(),
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output", {})
            choices = output.get("choices", [])
            if not choices:
                return ""
            message = choices[0].get("message", {})
            content = message.get("content", [])
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    def _to_command_error(self, exc: Exception) -> CommandError:
        """Map an SDK/network exception to a command error."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            return CommandError(ERR_API_KEY_INVALID, message)
        if "timeout" in low:
            return CommandError(ERR_TIMEOUT, message)
        return CommandError(ERR_TRANSCRIPTION_FAILED, message)
