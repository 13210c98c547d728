"""Last-update sidecar and documentation metadata line.

Two small files mirror the ledger's latest release:

* ``last_update.txt`` holds the raw patch on line one and the ISO date on line
  two.  It is always rewritten atomically as a whole.
* ``README.md`` carries exactly one line of the form
  ``**Last update**: <date> • Patch <patch> — see [grids.md](./grids.md)``,
  located by pattern and replaced in place or inserted once.

Missing or malformed files read as absent; nothing here raises for bad data.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .io_safe import read_text_or_none, write_text_if_changed

__all__ = [
    "DOC_LINE_PATTERN",
    "DEFAULT_DOC_TITLE",
    "LastUpdateMarker",
    "MetadataStore",
    "render_doc_line",
]

LOGGER = logging.getLogger("GridUpdater.metadata")

DOC_LINE_PATTERN = re.compile(r"^\*{0,2}Last update\*{0,2}\s*:", re.IGNORECASE | re.MULTILINE)
DEFAULT_DOC_TITLE = "# d2pt-grid-updater"
_HEADING_PATTERN = re.compile(r"^#\s+")


@dataclass(frozen=True)
class LastUpdateMarker:
    """Snapshot of the last release recorded in the sidecar."""

    patch_raw: str
    date: str

    def render(self) -> str:
        return f"{self.patch_raw}\n{self.date}\n"

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["LastUpdateMarker"]:
        """Parse the two-line sidecar format; anything incomplete yields ``None``."""

        if not text:
            return None
        lines = text.splitlines()
        patch = lines[0].strip() if lines else ""
        date = lines[1].strip() if len(lines) > 1 else ""
        if not patch or not date:
            return None
        return cls(patch_raw=patch, date=date)


def render_doc_line(patch_raw: str, date: str, ledger_name: str = "grids.md") -> str:
    """Render the documentation metadata line pointing at ``ledger_name``."""

    return f"**Last update**: {date} • Patch {patch_raw} — see [{ledger_name}](./{ledger_name})"


def _insert_line(document: str, line: str) -> str:
    """Insert a blank line and ``line`` after the title, or at the end.

    New lines use the document's own line ending so CRLF files stay uniform.
    """

    lines = document.splitlines(keepends=True)
    eol = "\r\n" if any(text.endswith("\r\n") for text in lines) else "\n"
    title_index = next((i for i, text in enumerate(lines) if _HEADING_PATTERN.match(text)), None)
    position = len(lines) if title_index is None else title_index + 1
    tail = eol
    if position and not lines[position - 1].endswith(("\n", "\r")):
        lines[position - 1] += eol
        tail = ""
    lines[position:position] = [eol, line + tail]
    return "".join(lines)


class MetadataStore:
    """Reads and writes the last-update sidecar and the documentation line."""

    def __init__(self, last_update_path: Path, doc_path: Path, *, ledger_name: str = "grids.md"):
        self.last_update_path = last_update_path
        self.doc_path = doc_path
        self.ledger_name = ledger_name

    # Last-update sidecar ------------------------------------------------------

    def read_last_update(self) -> Optional[LastUpdateMarker]:
        return LastUpdateMarker.parse(read_text_or_none(self.last_update_path))

    def write_last_update(self, marker: LastUpdateMarker) -> bool:
        changed = write_text_if_changed(self.last_update_path, marker.render())
        if changed:
            LOGGER.info(
                "wrote last-update sidecar",
                extra={
                    "stage": "metadata",
                    "extra_fields": {
                        "path": str(self.last_update_path),
                        "patch": marker.patch_raw,
                        "date": marker.date,
                    },
                },
            )
        return changed

    # Documentation line -------------------------------------------------------

    def doc_line(self, patch_raw: str, date: str) -> str:
        return render_doc_line(patch_raw, date, self.ledger_name)

    def _skeleton(self, line: str) -> str:
        return f"{DEFAULT_DOC_TITLE}\n\n{line}\n"

    def replace_or_insert_doc_line(self, patch_raw: str, date: str) -> bool:
        """Replace the existing metadata line in place, or insert it once.

        Returns:
            ``True`` when the document changed on disk.
        """

        line = self.doc_line(patch_raw, date)
        document = read_text_or_none(self.doc_path)
        if document is None:
            return self._write_doc(self._skeleton(line))
        lines = document.split("\n")
        for index, text in enumerate(lines):
            if DOC_LINE_PATTERN.match(text.rstrip("\r")):
                eol = "\r" if text.endswith("\r") else ""
                lines[index] = line + eol
                return self._write_doc("\n".join(lines))
        return self._write_doc(_insert_line(document, line))

    def ensure_doc_line(self, patch_raw: str, date: str) -> bool:
        """Insert the metadata line unless one already exists, whatever its value."""

        line = self.doc_line(patch_raw, date)
        document = read_text_or_none(self.doc_path)
        if document is None:
            return self._write_doc(self._skeleton(line))
        if DOC_LINE_PATTERN.search(document):
            return False
        return self._write_doc(_insert_line(document, line))

    def _write_doc(self, content: str) -> bool:
        changed = write_text_if_changed(self.doc_path, content)
        if changed:
            LOGGER.info(
                "updated documentation metadata line",
                extra={"stage": "metadata", "extra_fields": {"path": str(self.doc_path)}},
            )
        return changed
