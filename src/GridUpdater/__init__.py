# === NAVMAP v1 ===
# {
#   "module": "GridUpdater",
#   "purpose": "Package initialization for GridUpdater",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     },
#     {
#       "id": "dir",
#       "name": "__dir__",
#       "anchor": "function-dir",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for the Dota 2 Pro Tracker hero grid updater.

The facade exposes the reconciliation engine used by the scheduled job and
the catalog queries used by desktop clients.  Attributes are imported lazily
so that catalog lookups do not pull in the browser automation stack.
"""

from __future__ import annotations

from importlib import import_module
from importlib import metadata as importlib_metadata
from typing import TYPE_CHECKING, Any, Dict, List

try:  # pragma: no cover - metadata may be unavailable during development
    __version__ = importlib_metadata.version("d2pt-grid-updater")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - local source tree
    __version__ = "0.0.0"

_EXPORTS: Dict[str, str] = {
    "ReconciliationEngine": "GridUpdater.engine",
    "RunMode": "GridUpdater.engine",
    "RunOutcome": "GridUpdater.engine",
    "RunStatus": "GridUpdater.engine",
    "select_mode": "GridUpdater.engine",
    "ReleaseMetadata": "GridUpdater.release",
    "GridKind": "GridUpdater.release",
    "SourceFetcher": "GridUpdater.fetcher",
    "GridUpdaterSettings": "GridUpdater.settings",
    "load_settings": "GridUpdater.settings",
    "list_releases": "GridUpdater.catalog",
    "list_local_releases": "GridUpdater.catalog",
    "match_digest": "GridUpdater.catalog",
    "detect_installed_grid": "GridUpdater.catalog",
    "RemoteCatalog": "GridUpdater.catalog",
    "digest_file": "GridUpdater.hashing",
    "GridUpdaterError": "GridUpdater.errors",
}

__all__ = [*_EXPORTS, "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .catalog import (
        RemoteCatalog,
        detect_installed_grid,
        list_local_releases,
        list_releases,
        match_digest,
    )
    from .engine import ReconciliationEngine, RunMode, RunOutcome, RunStatus, select_mode
    from .errors import GridUpdaterError
    from .fetcher import SourceFetcher
    from .hashing import digest_file
    from .release import GridKind, ReleaseMetadata
    from .settings import GridUpdaterSettings, load_settings


def __getattr__(name: str) -> Any:
    """Lazily import public attributes on first access."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name), name)
    globals()[name] = value
    return value


def __dir__() -> List[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
