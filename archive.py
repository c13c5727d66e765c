"""Markdown archive of finished transcriptions.

Each transcription becomes one ``.md`` file with YAML frontmatter, so the
folder can be opened directly as a notes vault. Files are created with
exclusive mode and owner-only permissions; an existing name gets a numeric
suffix instead of being overwritten.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from models import ArchiveEntry

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 100
SNIPPET_CHARS = 30

_YAML_SPECIAL = set(":#\n\r\"'`|>&*!%@")


def slugify(value: str, limit: int = SNIPPET_CHARS) -> str:
    """Lowercase ``a-z0-9`` words joined by single dashes."""
    return "-".join(re.findall(r"[a-z0-9]+", value.lower()))[:limit].strip("-")


def yaml_scalar(value: str) -> str:
    if (
        any(ch in _YAML_SPECIAL for ch in value)
        or value[:1] in ("-", "[", "{", " ")
        or value.endswith(" ")
    ):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
        )
        return f'"{escaped}"'
    return value


def render_markdown(entry: ArchiveEntry, include_original: bool = True) -> str:
    created = entry.created_at
    lines = [
        "---",
        f"date: {yaml_scalar(created.isoformat(timespec='seconds'))}",
        f"app: {yaml_scalar(entry.app_name)}",
        f"category: {yaml_scalar(entry.category.value)}",
        f"duration: {entry.duration_s}",
        f"words: {entry.word_count}",
        f"language: {yaml_scalar(entry.language or 'unknown')}",
        f"edited: {'true' if entry.was_edited else 'false'}",
        "tags:",
        "  - transcription",
        "  - voice",
        "---",
        "",
        f"# Transcription of {created:%d %B %Y}",
        "",
        f"**App:** {entry.app_name}",
        f"**Time:** {created:%H:%M}",
        f"**Duration:** {entry.duration_s} seconds",
        "",
    ]
    if entry.was_edited:
        lines += ["## Edited text", "", entry.text, ""]
        if include_original:
            lines += [
                "## Original text",
                "",
                "<details>",
                "<summary>Show original</summary>",
                "",
                entry.original_text,
                "",
                "</details>",
            ]
    else:
        lines += ["## Text", "", entry.text]
    return "\n".join(lines).replace("\r\n", "\n") + "\n"


class MarkdownArchive:
    def __init__(
        self,
        root: Path | None = None,
        include_original: bool = True,
        nested: bool = False,
    ) -> None:
        self._root = root or Path.home() / "voxdesk" / "transcriptions"
        self._include_original = include_original
        self._nested = nested

    @property
    def root(self) -> Path:
        return self._root

    def directory_for(self, entry: ArchiveEntry) -> Path:
        if self._nested:
            created = entry.created_at
            return self._root / f"{created:%Y}" / f"{created:%m}"
        return self._root

    def file_stem(self, entry: ArchiveEntry) -> str:
        parts = [
            f"{entry.created_at:%Y-%m-%d_%H-%M}",
            slugify(entry.app_name) or "desktop",
            slugify(entry.text),
        ]
        return "_".join(part for part in parts if part)

    def archive(self, entry: ArchiveEntry) -> Path:
        """Write ``entry`` and return the created file; raises ``OSError``."""
        directory = self.directory_for(entry)
        directory.mkdir(parents=True, exist_ok=True)
        content = render_markdown(entry, self._include_original)
        stem = self.file_stem(entry)

        for attempt in range(MAX_NAME_ATTEMPTS):
            name = f"{stem}.md" if attempt == 0 else f"{stem}_{attempt}.md"
            path = directory / name
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                continue
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
                    fh.write(content)
            except OSError:
                path.unlink(missing_ok=True)
                raise
            logger.info("transcription archived to %s", path)
            return path
        raise FileExistsError(f"no free file name for {stem} after {MAX_NAME_ATTEMPTS} attempts")
