# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.release",
#   "purpose": "Release and artifact models plus the scraped-text and filename codecs",
#   "sections": [
#     {"id": "constants", "name": "Sentinels & patterns", "anchor": "CONST", "kind": "constants"},
#     {"id": "kinds", "name": "GridKind", "anchor": "class-gridkind", "kind": "class"},
#     {"id": "release", "name": "ReleaseMetadata", "anchor": "class-releasemetadata", "kind": "class"},
#     {"id": "artifact", "name": "GridArtifact", "anchor": "class-gridartifact", "kind": "class"},
#     {"id": "filenames", "name": "Artifact filename codec", "anchor": "FILE", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Release and artifact models plus the scraped-text and filename codecs.

A release is identified by its ``(date, patch_raw)`` pair, e.g.
``("2025-10-12", "7.39d")``.  The slug ``p7_39d`` is derived from the raw patch
and only ever used to build filenames; the artifact filename encoding
``<source-name>_<date>_<slug>.json`` is what the catalog listing and hash
lookups parse to recover the date and display patch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

__all__ = [
    "UNKNOWN_DATE",
    "UNKNOWN_PATCH_RAW",
    "UNKNOWN_PATCH_SLUG",
    "GridKind",
    "ReleaseMetadata",
    "GridArtifact",
    "ArtifactName",
    "slugify_patch",
    "patch_from_slug",
    "parse_site_date",
    "parse_update_text",
    "artifact_filename",
    "parse_artifact_filename",
]

# --- Sentinels & patterns -----------------------------------------------------

UNKNOWN_DATE = "unknown_date"
UNKNOWN_PATCH_RAW = "unknown_patch_raw"
UNKNOWN_PATCH_SLUG = "unknown_patch"

_UPDATE_TEXT_PATTERN = re.compile(r"Last update:\s*([^•]+?)\s*•\s*Patch\s+(\S+)")
_SITE_DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y-%m-%d",
    "%m/%d/%Y",
)
_ARTIFACT_NAME_PATTERN = re.compile(
    r"^(?P<stem>.+?)_(?P<date>\d{4}-\d{2}-\d{2}|unknown_date)"
    r"_(?P<slug>p[0-9A-Za-z]+(?:_[0-9A-Za-z]+)*|unknown_patch)\.json$"
)
_JSON_SUFFIX = re.compile(r"\.json$", re.IGNORECASE)


class GridKind(str, Enum):
    """The three grid variants, in the order the source page lists them."""

    RATING = "d2pt_rating"
    HIGH_WINRATE = "high_winrate"
    MOST_PLAYED = "most_played"

    @property
    def column_title(self) -> str:
        return _COLUMN_TITLES[self]

    @property
    def short_label(self) -> str:
        """Label used by desktop clients (``d2pt``, ``high_winrate``, ``most_played``)."""

        return "d2pt" if self is GridKind.RATING else self.value

    @classmethod
    def ordered(cls) -> Tuple["GridKind", ...]:
        return (cls.RATING, cls.HIGH_WINRATE, cls.MOST_PLAYED)

    @classmethod
    def from_filename(cls, filename: str) -> Optional["GridKind"]:
        for kind in cls.ordered():
            if kind.value in filename:
                return kind
        return None


_COLUMN_TITLES = {
    GridKind.RATING: "D2PT Rating",
    GridKind.HIGH_WINRATE: "High Winrate",
    GridKind.MOST_PLAYED: "Most Played",
}


def slugify_patch(patch_raw: str) -> str:
    """Return the filename-safe form of ``patch_raw`` (``7.39d`` -> ``p7_39d``)."""

    return "p" + patch_raw.replace(".", "_")


def patch_from_slug(slug: str) -> str:
    """Invert :func:`slugify_patch` for display (``p7_39d`` -> ``7.39d``)."""

    if slug.startswith("p"):
        slug = slug[1:]
    return slug.replace("_", ".")


def parse_site_date(text: str) -> str:
    """Convert the page's human date (``Oct 12, 2025``) into ``YYYY-MM-DD``.

    Unparseable input yields :data:`UNKNOWN_DATE` instead of raising so a
    cosmetic change on the page does not abort the run.
    """

    candidate = " ".join(text.split())
    for fmt in _SITE_DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return UNKNOWN_DATE


# --- ReleaseMetadata ------------------------------------------------------------


@dataclass(frozen=True)
class ReleaseMetadata:
    """Release metadata scraped from the source page for one run."""

    date: str
    patch_raw: str
    patch_slug: str

    @classmethod
    def unknown(cls) -> "ReleaseMetadata":
        return cls(UNKNOWN_DATE, UNKNOWN_PATCH_RAW, UNKNOWN_PATCH_SLUG)

    @classmethod
    def from_values(cls, date: str, patch_raw: str) -> "ReleaseMetadata":
        return cls(date, patch_raw, slugify_patch(patch_raw))

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.date, self.patch_raw)

    @property
    def has_date(self) -> bool:
        return bool(self.date) and self.date != UNKNOWN_DATE

    @property
    def has_patch(self) -> bool:
        return bool(self.patch_raw) and self.patch_raw != UNKNOWN_PATCH_RAW

    @property
    def is_usable(self) -> bool:
        return self.has_date and self.has_patch

    def matches(self, date: Optional[str], patch: Optional[str]) -> bool:
        """Return ``True`` when ``(date, patch)`` names this release.

        ``patch`` may be either the raw patch or its slug; older sidecars were
        written with either form.
        """

        return date == self.date and patch in (self.patch_raw, self.patch_slug)

    def __str__(self) -> str:
        return f"{self.date} • Patch {self.patch_raw}"


def parse_update_text(text: Optional[str]) -> ReleaseMetadata:
    """Parse ``Last update: <date> • Patch <token>`` into :class:`ReleaseMetadata`."""

    if not text:
        return ReleaseMetadata.unknown()
    match = _UPDATE_TEXT_PATTERN.search(text)
    if not match:
        return ReleaseMetadata.unknown()
    patch_raw = match.group(2).strip()
    return ReleaseMetadata(
        date=parse_site_date(match.group(1).strip()),
        patch_raw=patch_raw,
        patch_slug=slugify_patch(patch_raw),
    )


# --- GridArtifact ---------------------------------------------------------------


@dataclass(frozen=True)
class GridArtifact:
    """One downloaded grid file belonging to a release."""

    kind: GridKind
    filename: str
    date: str
    patch_slug: str
    path: Path

    def link_target(self, link_prefix: str) -> str:
        prefix = link_prefix.rstrip("/")
        return f"{prefix}/{self.filename}" if prefix else self.filename


# --- Artifact filename codec ----------------------------------------------------


@dataclass(frozen=True)
class ArtifactName:
    """Components recovered from an artifact filename."""

    filename: str
    stem: str
    date: str
    patch_slug: str
    kind: Optional[GridKind]

    @property
    def display_patch(self) -> str:
        if self.patch_slug == UNKNOWN_PATCH_SLUG:
            return self.patch_slug
        return patch_from_slug(self.patch_slug)


def artifact_filename(suggested: str, date: str, patch_slug: str) -> str:
    """Build ``<suggested>_<date>_<patch_slug>.json`` from a download's suggested name."""

    stem = _JSON_SUFFIX.sub("", suggested)
    return f"{stem}_{date}_{patch_slug}.json"


def parse_artifact_filename(filename: str) -> Optional[ArtifactName]:
    """Recover stem, date, slug, and kind from an artifact filename, if it fits."""

    match = _ARTIFACT_NAME_PATTERN.match(filename)
    if not match:
        return None
    return ArtifactName(
        filename=filename,
        stem=match.group("stem"),
        date=match.group("date"),
        patch_slug=match.group("slug"),
        kind=GridKind.from_filename(filename),
    )
