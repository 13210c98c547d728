# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.io_safe",
#   "purpose": "Filesystem helpers for the grid bookkeeping files",
#   "sections": [
#     {
#       "id": "read-text-or-none",
#       "name": "read_text_or_none",
#       "anchor": "function-read-text-or-none",
#       "kind": "function"
#     },
#     {
#       "id": "atomic-write-text",
#       "name": "atomic_write_text",
#       "anchor": "function-atomic-write-text",
#       "kind": "function"
#     },
#     {
#       "id": "write-text-if-changed",
#       "name": "write_text_if_changed",
#       "anchor": "function-write-text-if-changed",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Filesystem helpers for the grid bookkeeping files."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

__all__ = ["read_text_or_none", "atomic_write_text", "write_text_if_changed"]

LOGGER = logging.getLogger("GridUpdater.io_safe")


def read_text_or_none(path: Path) -> Optional[str]:
    """Return the UTF-8 contents of ``path`` or ``None`` when it cannot be read.

    Line endings are returned untranslated so rewrites keep them.
    """

    try:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning(
            "unreadable bookkeeping file treated as absent",
            extra={"stage": "read", "extra_fields": {"path": str(path), "error": str(exc)}},
        )
        return None


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically replace ``path`` with ``content`` to avoid partial writes."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        handle.write(content)
        handle.flush()
        try:
            os.fsync(handle.fileno())
        except OSError:
            # Some filesystems do not support fsync on regular handles.
            pass
        temp_name = handle.name
    try:
        Path(temp_name).replace(path)
    except OSError:
        Path(temp_name).unlink(missing_ok=True)
        raise


def write_text_if_changed(path: Path, content: str) -> bool:
    """Persist ``content`` atomically unless ``path`` already holds it.

    Returns:
        ``True`` when the file was written, ``False`` when it was left untouched.
    """

    if read_text_or_none(path) == content:
        return False
    atomic_write_text(path, content)
    return True
