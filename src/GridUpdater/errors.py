"""Exception hierarchy shared across grid scraping, reconciliation, and lookups.

A synchronisation run touches the source page, the local bookkeeping files,
and optionally the published catalog.  Only structural problems with the
source page are fatal; missing or malformed bookkeeping files are treated as
absent data by the callers and never surface as exceptions.  This module
groups the failure modes so the engine and CLI can react to categories while
still reporting the specific selector or count that went wrong.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GridUpdaterError",
    "ConfigError",
    "SourceLayoutError",
    "MetadataPanelNotFound",
    "DownloadContainerNotFound",
    "InsufficientDownloadTargets",
    "RepairUnresolvable",
    "RemoteCatalogError",
]


class GridUpdaterError(RuntimeError):
    """Base exception for grid synchronisation failures."""


class ConfigError(GridUpdaterError):
    """Raised when configuration files or environment overrides are invalid."""


class SourceLayoutError(GridUpdaterError):
    """Raised when the source page no longer matches the expected layout."""

    def __init__(self, message: str, *, selector: Optional[str] = None) -> None:
        super().__init__(message)
        self.selector = selector


class MetadataPanelNotFound(SourceLayoutError):
    """Raised when the panel carrying the release metadata is missing."""


class DownloadContainerNotFound(SourceLayoutError):
    """Raised when the container holding the download triggers is missing."""


class InsufficientDownloadTargets(SourceLayoutError):
    """Raised when fewer download triggers than grid kinds are present."""

    def __init__(self, found: int, *, expected: int = 3, selector: Optional[str] = None) -> None:
        super().__init__(
            f"Expected {expected} download buttons, found {found}",
            selector=selector,
        )
        self.found = found
        self.expected = expected


class RepairUnresolvable(GridUpdaterError):
    """Raised when neither the ledger nor the scrape yields a usable release."""


class RemoteCatalogError(GridUpdaterError):
    """Raised when the published catalog cannot be listed or downloaded."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
