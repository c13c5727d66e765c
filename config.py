"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from models import SessionConfig, ShortcutMode

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "api_key": "",
    "hotkey": "Key.f9",
    "shortcut_mode": ShortcutMode.PUSH_TO_TALK.value,
    "max_duration_minutes": 6,
    "min_hold_ms": 300,
    "improvement_enabled": False,
    "ollama_url": "http://localhost:11434",
    "ollama_model": "llama3.2:3b",
    "ollama_timeout_s": 10,
    "text_insert_enabled": True,
    "archive_enabled": True,
    "archive_path": "",
    "archive_include_original": True,
    "archive_nested": False,
}

LIMITS = {
    "max_duration_minutes": (1, 30),
    "min_hold_ms": (0, 2000),
    "ollama_timeout_s": (1, 120),
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voxdesk" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_api_key(self) -> str:
        key = str(self._read_all().get("api_key", ""))
        return key or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", DEFAULTS["hotkey"]))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_shortcut_mode(self) -> ShortcutMode:
        value = self._read_all().get("shortcut_mode", DEFAULTS["shortcut_mode"])
        try:
            return ShortcutMode(value)
        except ValueError:
            logger.warning("unknown shortcut mode %r, using default", value)
            return ShortcutMode(DEFAULTS["shortcut_mode"])

    def set_shortcut_mode(self, mode: ShortcutMode) -> None:
        self._set("shortcut_mode", ShortcutMode(mode).value)

    def get_max_duration_minutes(self) -> float:
        return self._get_number("max_duration_minutes")

    def get_min_hold_ms(self) -> int:
        return int(self._get_number("min_hold_ms"))

    def get_improvement_enabled(self) -> bool:
        return bool(self._read_all().get("improvement_enabled", DEFAULTS["improvement_enabled"]))

    def set_improvement_enabled(self, enabled: bool) -> None:
        self._set("improvement_enabled", bool(enabled))

    def get_text_insert_enabled(self) -> bool:
        return bool(self._read_all().get("text_insert_enabled", DEFAULTS["text_insert_enabled"]))

    def get_archive_enabled(self) -> bool:
        return bool(self._read_all().get("archive_enabled", DEFAULTS["archive_enabled"]))

    def set_archive_enabled(self, enabled: bool) -> None:
        self._set("archive_enabled", bool(enabled))

    def get_archive_path(self) -> Path:
        value = str(self._read_all().get("archive_path") or "")
        if not value:
            return Path.home() / "voxdesk" / "transcriptions"
        return Path(value).expanduser()

    def get_archive_include_original(self) -> bool:
        data = self._read_all()
        return bool(data.get("archive_include_original", DEFAULTS["archive_include_original"]))

    def get_archive_nested(self) -> bool:
        return bool(self._read_all().get("archive_nested", DEFAULTS["archive_nested"]))

    def get_ollama_url(self) -> str:
        return str(self._read_all().get("ollama_url", DEFAULTS["ollama_url"])).rstrip("/")

    def get_ollama_model(self) -> str:
        return str(self._read_all().get("ollama_model", DEFAULTS["ollama_model"]))

    def get_ollama_timeout_s(self) -> float:
        return self._get_number("ollama_timeout_s")

    def set_value(self, key: str, value: Any) -> None:
        if key not in DEFAULTS:
            raise KeyError(key)
        self._set(key, value)

    def load_session_config(self) -> SessionConfig:
        data = self._read_all()
        return SessionConfig(
            mode=self.get_shortcut_mode(),
            max_duration_minutes=self._number_from(data, "max_duration_minutes"),
            min_hold_ms=int(self._number_from(data, "min_hold_ms")),
            improvement_enabled=bool(data.get("improvement_enabled", DEFAULTS["improvement_enabled"])),
        )

    def _get_number(self, key: str) -> float:
        return self._number_from(self._read_all(), key)

    def _number_from(self, data: dict, key: str) -> float:
        value = data.get(key, DEFAULTS[key])
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = float(DEFAULTS[key])
        low, high = LIMITS[key]
        return min(max(number, low), high)

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
