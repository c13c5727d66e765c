"""Text improvement through a local Ollama server."""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import urlparse

import requests

from errors import ERR_OLLAMA_INVALID_URL, ERR_OLLAMA_TIMEOUT, ERR_OLLAMA_UNREACHABLE, CommandError
from models import AppCategory, AppContext, ImprovementResult

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}
TEXT_DELIMITER = "<<<USER_TEXT>>>"

BASE_PROMPT = (
    "Fix grammar, punctuation and obvious transcription mistakes in the text between the "
    "markers. Keep the language, meaning and wording. Answer with the corrected text only."
)

STYLE_HINTS = {
    AppCategory.EMAIL: "Format it as an email body with a greeting and paragraphs.",
    AppCategory.CHAT: "Keep it short and conversational, like a chat message.",
    AppCategory.CODE: "Keep identifiers and technical terms exactly as spoken.",
}


def validate_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or parsed.hostname not in LOCAL_HOSTS:
        raise CommandError(ERR_OLLAMA_INVALID_URL, f"only local Ollama URLs are allowed: {url}")


def build_prompt(text: str, context: Optional[AppContext], language: str = "") -> str:
    parts = [BASE_PROMPT]
    if context is not None and context.category in STYLE_HINTS:
        parts.append(STYLE_HINTS[context.category])
    if language:
        parts.append(f"The text is in language '{language}'.")
    parts.append(f"{TEXT_DELIMITER}\n{text}\n{TEXT_DELIMITER}")
    return "\n\n".join(parts)


class OllamaImprover:
    def __init__(
        self,
        url: str = "http://localhost:11434",
        model: str = "llama3.2:3b",
        timeout_s: float = 10.0,
    ) -> None:
        self.url = url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s

    def improve(
        self, text: str, context: Optional[AppContext], language: str = ""
    ) -> ImprovementResult:
        validate_url(self.url)
        if not text.strip():
            return ImprovementResult(text=text, was_edited=False)

        payload = {
            "model": self.model,
            "prompt": build_prompt(text, context, language),
            "stream": False,
            "options": {"temperature": 0.3},
        }
        started = time.monotonic()
        try:
            response = requests.post(f"{self.url}/api/generate", json=payload, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise CommandError(ERR_OLLAMA_TIMEOUT, f"no answer within {self.timeout_s:g}s") from exc
        except requests.exceptions.RequestException as exc:
            raise CommandError(ERR_OLLAMA_UNREACHABLE, str(exc)) from exc

        edited = str(response.json().get("response", "")).replace(TEXT_DELIMITER, "").strip()
        elapsed_ms = int((time.monotonic() - started) * 1000)
        if not edited:
            return ImprovementResult(text=text, was_edited=False, processing_time_ms=elapsed_ms)
        return ImprovementResult(
            text=edited, was_edited=edited != text.strip(), processing_time_ms=elapsed_ms
        )
