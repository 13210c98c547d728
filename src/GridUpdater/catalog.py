# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.catalog",
#   "purpose": "Catalog queries served to desktop clients: releases, digests, hash lookups",
#   "sections": [
#     {"id": "models", "name": "CatalogRelease, DetectedGrid, RemoteGrid", "anchor": "MOD", "kind": "api"},
#     {"id": "local", "name": "Local queries", "anchor": "LOC", "kind": "api"},
#     {"id": "remote", "name": "RemoteCatalog", "anchor": "class-remotecatalog", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Catalog queries served to desktop clients.

The desktop shell never runs a synchronisation; it only asks three questions:
which releases are published, what is the digest of a local grid file, and
does that digest match a known artifact.  Releases are grouped from artifact
filenames alone (``<source-name>_<date>_<slug>.json``), so the same helpers
work on the local ``grids/`` folder and on the published GitHub listing.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

from .errors import RemoteCatalogError
from .hashing import digest_file, parse_hash_dictionary
from .release import UNKNOWN_DATE, GridKind, parse_artifact_filename
from .settings import RemoteCatalogConfiguration

__all__ = [
    "CatalogRelease",
    "DetectedGrid",
    "RemoteGrid",
    "list_releases",
    "list_local_releases",
    "match_digest",
    "detect_installed_grid",
    "RemoteCatalog",
]

LOGGER = logging.getLogger("GridUpdater.catalog")

# --- CatalogRelease, DetectedGrid, RemoteGrid -----------------------------------


@dataclass
class CatalogRelease:
    """Artifacts published for one ``(date, patch)`` pair."""

    date: str
    patch: str
    files: Dict[GridKind, str] = field(default_factory=dict)
    other_files: List[str] = field(default_factory=list)

    def filename_for(self, kind: GridKind) -> Optional[str]:
        return self.files.get(kind)


@dataclass(frozen=True)
class DetectedGrid:
    """Identification of a locally-installed grid file."""

    grid_type: str
    name: str
    date: str
    hash: str
    is_known: bool


@dataclass(frozen=True)
class RemoteGrid:
    """A grid file listed in the published repository."""

    name: str
    date: str
    download_url: str


# --- Local queries --------------------------------------------------------------


def list_releases(filenames: Iterable[str]) -> List[CatalogRelease]:
    """Group artifact filenames by release, newest date first.

    Filenames that do not follow the artifact naming scheme are skipped.
    """

    grouped: "OrderedDict[Tuple[str, str], CatalogRelease]" = OrderedDict()
    for filename in filenames:
        parsed = parse_artifact_filename(filename)
        if parsed is None:
            LOGGER.debug(
                "skipping file outside artifact naming scheme",
                extra={"stage": "catalog", "extra_fields": {"filename": filename}},
            )
            continue
        key = (parsed.date, parsed.display_patch)
        release = grouped.setdefault(key, CatalogRelease(date=key[0], patch=key[1]))
        if parsed.kind is None or parsed.kind in release.files:
            release.other_files.append(filename)
        else:
            release.files[parsed.kind] = filename

    def _sort_key(release: CatalogRelease) -> Tuple[bool, str, str]:
        return (release.date != UNKNOWN_DATE, release.date, release.patch)

    return sorted(grouped.values(), key=_sort_key, reverse=True)


def list_local_releases(grids_dir: Path) -> List[CatalogRelease]:
    if not grids_dir.is_dir():
        return []
    return list_releases(sorted(path.name for path in grids_dir.glob("*.json") if path.is_file()))


def match_digest(digest: str, hashes: Mapping[str, str]) -> Optional[DetectedGrid]:
    """Look ``digest`` up in a filename-to-digest mapping."""

    needle = digest.strip().lower()
    for filename, known in hashes.items():
        if known.lower() != needle:
            continue
        parsed = parse_artifact_filename(filename)
        kind = GridKind.from_filename(filename)
        return DetectedGrid(
            grid_type=kind.short_label if kind else "unknown",
            name=filename,
            date=parsed.date if parsed else "Unknown",
            hash=known,
            is_known=True,
        )
    return None


def detect_installed_grid(path: Path, hashes: Mapping[str, str]) -> Optional[DetectedGrid]:
    """Identify the grid file at ``path``; ``None`` when the file does not exist."""

    if not path.is_file():
        return None
    digest = digest_file(path)
    detected = match_digest(digest, hashes)
    if detected is not None:
        return detected
    return DetectedGrid(
        grid_type="custom",
        name=path.name,
        date="Unknown",
        hash=digest,
        is_known=False,
    )


# --- RemoteCatalog --------------------------------------------------------------


class RemoteCatalog:
    """Read-only client for the published grid repository.

    Args:
        config: Endpoint and user-agent settings.
        client: Optional pre-configured ``httpx.Client`` (tests pass one backed
            by ``httpx.MockTransport``).
    """

    def __init__(
        self, config: RemoteCatalogConfiguration, *, client: Optional[httpx.Client] = None
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=config.timeout_sec,
            headers={"User-Agent": config.user_agent},
            follow_redirects=True,
        )

    def __enter__(self) -> "RemoteCatalog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _get(self, url: str, what: str) -> httpx.Response:
        try:
            response = self._client.get(url, headers={"User-Agent": self.config.user_agent})
        except httpx.HTTPError as exc:
            raise RemoteCatalogError(f"Failed to fetch {what}: {exc}") from exc
        if not response.is_success:
            raise RemoteCatalogError(
                f"Failed to fetch {what}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def list_remote_grids(self) -> List[RemoteGrid]:
        """List published ``*.json`` grids with their date and download URL."""

        response = self._get(self.config.contents_url, "grid listing")
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteCatalogError(f"Grid listing is not valid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise RemoteCatalogError("Grid listing must be a JSON array")
        grids: List[RemoteGrid] = []
        for item in payload:
            if not isinstance(item, Mapping):
                continue
            name = item.get("name")
            download_url = item.get("download_url")
            if not isinstance(name, str) or not name.endswith(".json") or not download_url:
                continue
            date = next((part for part in name.split("_") if part.startswith("20")), "Unknown")
            grids.append(RemoteGrid(name=name, date=date, download_url=str(download_url)))
        LOGGER.info(
            "listed %d remote grids",
            len(grids),
            extra={"stage": "catalog", "extra_fields": {"url": self.config.contents_url}},
        )
        return grids

    def download_grid_hashes(self) -> Dict[str, str]:
        """Download and parse the published hash dictionary."""

        response = self._get(self.config.hashes_url, "grid hashes")
        return parse_hash_dictionary(response.text)
