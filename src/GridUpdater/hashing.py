# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.hashing",
#   "purpose": "Content digests and the filename-to-digest hash dictionary",
#   "sections": [
#     {"id": "digest", "name": "digest_file", "anchor": "function-digest-file", "kind": "function"},
#     {"id": "codec", "name": "Dictionary codec", "anchor": "COD", "kind": "api"},
#     {"id": "maintenance", "name": "Dictionary maintenance", "anchor": "MNT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Content digests and the filename-to-digest hash dictionary.

Desktop clients hash the installed ``hero_grid_config.json`` with MD5 and look
the digest up in ``grid_hashes.txt`` (``filename,hexdigest`` per line) to tell
which published grid is active.  Entries are added or overwritten as files are
downloaded and are never pruned automatically.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Dict, Iterable, Mapping

from .io_safe import read_text_or_none, write_text_if_changed

__all__ = [
    "digest_file",
    "parse_hash_dictionary",
    "render_hash_dictionary",
    "load_hash_dictionary",
    "update_hash_dictionary",
    "build_hash_dictionary",
]

LOGGER = logging.getLogger("GridUpdater.hashing")

_CHUNK_SIZE = 1 << 20

# --- digest_file ----------------------------------------------------------------


def digest_file(path: Path) -> str:
    """Compute the MD5 hex digest of ``path``, streaming its contents."""

    hasher = hashlib.md5()
    with path.open("rb") as stream:
        for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


# --- Dictionary codec -----------------------------------------------------------


def parse_hash_dictionary(text: str) -> Dict[str, str]:
    """Parse ``filename,hexdigest`` lines; blank and comma-less lines are skipped."""

    hashes: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or "," not in line:
            continue
        filename, digest = line.split(",", 1)
        filename, digest = filename.strip(), digest.strip().lower()
        if filename and digest:
            hashes[filename] = digest
    return hashes


def render_hash_dictionary(hashes: Mapping[str, str]) -> str:
    if not hashes:
        return ""
    return "".join(f"{filename},{digest}\n" for filename, digest in hashes.items())


def load_hash_dictionary(path: Path) -> Dict[str, str]:
    """Read the dictionary at ``path``; a missing file is an empty dictionary."""

    text = read_text_or_none(path)
    return parse_hash_dictionary(text) if text else {}


# --- Dictionary maintenance -----------------------------------------------------


def update_hash_dictionary(path: Path, files: Iterable[Path]) -> Dict[str, str]:
    """Add or overwrite the digests of ``files`` in the dictionary at ``path``.

    Existing entries for other files are kept in their original order; new
    filenames are appended.  The file is only rewritten when its content changes.

    Returns:
        The updated mapping.
    """

    hashes = load_hash_dictionary(path)
    for file_path in files:
        digest = digest_file(file_path)
        previous = hashes.get(file_path.name)
        hashes[file_path.name] = digest
        LOGGER.debug(
            "hashed grid file",
            extra={
                "stage": "hash",
                "extra_fields": {
                    "filename": file_path.name,
                    "digest": digest,
                    "replaced": previous is not None and previous != digest,
                },
            },
        )
    if write_text_if_changed(path, render_hash_dictionary(hashes)):
        LOGGER.info(
            "updated hash dictionary",
            extra={"stage": "hash", "extra_fields": {"path": str(path), "entries": len(hashes)}},
        )
    return hashes


def build_hash_dictionary(grids_dir: Path, path: Path) -> Dict[str, str]:
    """Hash every ``*.json`` file in ``grids_dir`` into the dictionary at ``path``."""

    if not grids_dir.is_dir():
        LOGGER.warning(
            "grids folder missing; nothing to hash",
            extra={"stage": "hash", "extra_fields": {"grids_dir": str(grids_dir)}},
        )
        return load_hash_dictionary(path)
    files = sorted(file for file in grids_dir.glob("*.json") if file.is_file())
    if not files:
        LOGGER.info("no .json files found in grids folder", extra={"stage": "hash"})
    return update_hash_dictionary(path, files)
