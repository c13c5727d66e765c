"""Foreground application detection."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from typing import Optional

from models import AppCategory, AppContext

logger = logging.getLogger(__name__)

# Lower-case substrings of an app name or window title, checked in order.
CATEGORY_PATTERNS: list[tuple[str, AppCategory]] = [
    ("outlook", AppCategory.EMAIL),
    ("thunderbird", AppCategory.EMAIL),
    ("mail", AppCategory.EMAIL),
    ("gmail", AppCategory.EMAIL),
    ("slack", AppCategory.CHAT),
    ("teams", AppCategory.CHAT),
    ("discord", AppCategory.CHAT),
    ("telegram", AppCategory.CHAT),
    ("whatsapp", AppCategory.CHAT),
    ("signal", AppCategory.CHAT),
    ("visual studio code", AppCategory.CODE),
    ("code", AppCategory.CODE),
    ("pycharm", AppCategory.CODE),
    ("intellij", AppCategory.CODE),
    ("xcode", AppCategory.CODE),
    ("word", AppCategory.DOCS),
    ("pages", AppCategory.DOCS),
    ("google docs", AppCategory.DOCS),
    ("libreoffice", AppCategory.DOCS),
    ("notion", AppCategory.NOTES),
    ("obsidian", AppCategory.NOTES),
    ("notes", AppCategory.NOTES),
    ("terminal", AppCategory.TERMINAL),
    ("iterm", AppCategory.TERMINAL),
    ("konsole", AppCategory.TERMINAL),
    ("alacritty", AppCategory.TERMINAL),
    ("twitter", AppCategory.SOCIAL),
    ("linkedin", AppCategory.SOCIAL),
    ("facebook", AppCategory.SOCIAL),
    ("chrome", AppCategory.BROWSER),
    ("firefox", AppCategory.BROWSER),
    ("safari", AppCategory.BROWSER),
    ("edge", AppCategory.BROWSER),
]


def categorize(app_name: str, window_title: str = "") -> AppCategory:
    # window titles win: "Gmail - Firefox" is an email context
    for haystack in (window_title.lower(), app_name.lower()):
        if not haystack:
            continue
        for pattern, category in CATEGORY_PATTERNS:
            if pattern in haystack:
                return category
    return AppCategory.OTHER


class ForegroundAppDetector:
    def __init__(self, timeout_s: float = 0.5) -> None:
        self._timeout_s = timeout_s

    def detect(self) -> AppContext:
        app_name, title = self._query()
        if not app_name and not title:
            return AppContext()
        return AppContext(
            app_name=app_name or "Desktop",
            window_title=title,
            category=categorize(app_name, title),
        )

    def _query(self) -> tuple[str, str]:
        if sys.platform == "darwin":
            name = self._run(
                [
                    "osascript",
                    "-e",
                    'tell application "System Events" to get name of first '
                    "application process whose frontmost is true",
                ]
            )
            return name or "", ""
        if sys.platform.startswith("linux") and shutil.which("xdotool"):
            title = self._run(["xdotool", "getactivewindow", "getwindowname"]) or ""
            name = self._run(["xdotool", "getactivewindow", "getwindowclassname"]) or ""
            return name, title
        return "", ""

    def _run(self, command: list[str]) -> Optional[str]:
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=self._timeout_s
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("context query %s failed: %s", command[0], exc)
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()
