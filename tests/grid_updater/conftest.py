# === NAVMAP v1 ===
# {
#   "module": "tests.grid_updater.conftest",
#   "purpose": "Shared fixtures: fake Playwright page, fake release source, settings",
#   "sections": [
#     {"id": "page", "name": "FakePage", "anchor": "class-fakepage", "kind": "class"},
#     {"id": "source", "name": "FakeSource", "anchor": "class-fakesource", "kind": "class"},
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for the grid updater suite.

``FakePage`` implements the slice of the Playwright sync API the fetcher
touches (``goto``, ``wait_for_selector``, ``locator``/``first``/``count``/
``nth``/``click``/``text_content`` and ``expect_download``).  ``FakeSource``
stands in for a whole fetcher session when exercising the engine.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from GridUpdater.errors import SourceLayoutError
from GridUpdater.logging_utils import LOGGER_NAME
from GridUpdater.release import GridArtifact, GridKind, ReleaseMetadata, artifact_filename
from GridUpdater.settings import (
    GridUpdaterSettings,
    LoggingConfiguration,
    PathsConfiguration,
    SourceConfiguration,
    invalidate_default_settings_cache,
)

SUGGESTED_NAMES = {
    GridKind.RATING: "hero_grid_d2pt_rating.json",
    GridKind.HIGH_WINRATE: "hero_grid_high_winrate.json",
    GridKind.MOST_PLAYED: "hero_grid_most_played.json",
}

# --- FakePage -------------------------------------------------------------------


class FakeDownload:
    def __init__(self, suggested_filename: str, content: bytes) -> None:
        self.suggested_filename = suggested_filename
        self._content = content

    def save_as(self, path) -> None:
        Path(path).write_bytes(self._content)


class _DownloadInfo:
    value: Optional[FakeDownload] = None


class FakeElement:
    def __init__(self) -> None:
        self.clicked = False

    def click(self) -> None:
        self.clicked = True


class FakeLocator:
    def __init__(self, page: "FakePage", role: str, index: Optional[int] = None) -> None:
        self.page = page
        self.role = role
        self.index = index

    @property
    def first(self) -> "FakeLocator":
        return self

    def count(self) -> int:
        if self.role == "panel":
            return 1 if self.page.has_metadata_panel else 0
        if self.role == "update":
            return 0 if self.page.update_text is None else 1
        if self.role == "container":
            return 1 if self.page.has_download_container else 0
        if self.role == "buttons":
            return self.page.button_count
        return 0

    def locator(self, selector: str) -> "FakeLocator":
        self.page.selectors.append(selector)
        if "Last update" in selector:
            return FakeLocator(self.page, "update")
        if selector.startswith("button"):
            return FakeLocator(self.page, "buttons")
        return FakeLocator(self.page, "missing")

    def text_content(self) -> Optional[str]:
        return self.page.update_text

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, "button", index)

    def click(self) -> None:
        kind = GridKind.ordered()[self.index]
        self.page.clicks.append(self.index)
        self.page.pending = FakeDownload(
            SUGGESTED_NAMES[kind], f"{kind.value}:{self.page.content_tag}".encode()
        )


class FakePage:
    """Scriptable stand-in for ``playwright.sync_api.Page``."""

    def __init__(
        self,
        *,
        update_text: Optional[str] = "Last update: Oct 12, 2025 • Patch 7.39d",
        has_metadata_panel: bool = True,
        has_download_container: bool = True,
        button_count: int = 3,
        overlay: bool = False,
        content_tag: str = "v1",
    ) -> None:
        self.update_text = update_text
        self.has_metadata_panel = has_metadata_panel
        self.has_download_container = has_download_container
        self.button_count = button_count
        self.overlay = overlay
        self.overlay_button = FakeElement()
        self.content_tag = content_tag
        self.visited: List[str] = []
        self.selectors: List[str] = []
        self.clicks: List[int] = []
        self.pending: Optional[FakeDownload] = None
        self.wait_timeouts: List[float] = []

    def goto(self, url: str) -> None:
        self.visited.append(url)

    def wait_for_selector(self, selector: str, timeout: float = 30000) -> FakeElement:
        self.wait_timeouts.append(timeout)
        if not self.overlay:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return self.overlay_button

    def locator(self, selector: str) -> FakeLocator:
        self.selectors.append(selector)
        if "Meta Hero Grids" in selector:
            return FakeLocator(self, "panel")
        if "Download Hero Grid Configuration" in selector:
            return FakeLocator(self, "container")
        return FakeLocator(self, "missing")

    @contextmanager
    def expect_download(self, timeout: float = 30000) -> Iterator[_DownloadInfo]:
        info = _DownloadInfo()
        self.pending = None
        yield info
        info.value = self.pending


# --- FakeSource -----------------------------------------------------------------


class FakeSource:
    """Engine-level stand-in for a fetcher session."""

    def __init__(
        self,
        release: ReleaseMetadata,
        *,
        fetch_error: Optional[SourceLayoutError] = None,
        release_error: Optional[SourceLayoutError] = None,
        container_error: Optional[SourceLayoutError] = None,
        content_tag: str = "v1",
    ) -> None:
        self.release = release
        self.fetch_error = fetch_error
        self.release_error = release_error
        self.container_error = container_error
        self.container_checks = 0
        self.content_tag = content_tag
        self.fetch_calls = 0
        self.entered = 0
        self.closed = 0

    def __enter__(self) -> "FakeSource":
        self.entered += 1
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed += 1

    def fetch_current_release(self) -> ReleaseMetadata:
        if self.release_error is not None:
            raise self.release_error
        return self.release

    def check_download_container(self) -> None:
        self.container_checks += 1
        if self.container_error is not None:
            raise self.container_error

    def fetch_artifacts(self, target_dir: Path, date: str, patch_slug: str) -> List[GridArtifact]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        target_dir.mkdir(parents=True, exist_ok=True)
        artifacts = []
        for kind in GridKind.ordered():
            filename = artifact_filename(SUGGESTED_NAMES[kind], date, patch_slug)
            path = target_dir / filename
            path.write_text(f"{kind.value}:{self.content_tag}", encoding="utf-8")
            artifacts.append(GridArtifact(kind, filename, date, patch_slug, path))
        return artifacts


# --- Fixtures -------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep host ``D2PT_GRIDS_*`` variables, cached settings and CLI log handlers per test."""

    for key in list(os.environ):
        if key.upper().startswith("D2PT_GRIDS_"):
            monkeypatch.delenv(key, raising=False)
    invalidate_default_settings_cache()
    yield
    invalidate_default_settings_cache()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_grid_updater_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def settings(repo_root: Path, tmp_path: Path) -> GridUpdaterSettings:
    return GridUpdaterSettings(
        paths=PathsConfiguration(root=repo_root),
        source=SourceConfiguration(interstitial_timeout_sec=0.5),
        logging=LoggingConfiguration(log_dir=tmp_path / "logs"),
    )


@pytest.fixture
def release() -> ReleaseMetadata:
    return ReleaseMetadata.from_values("2025-10-12", "7.39d")


@pytest.fixture
def snapshot(repo_root: Path):
    """Return a callable capturing every file under the repo root as bytes."""

    def _snapshot() -> Dict[str, bytes]:
        return {
            str(path.relative_to(repo_root)): path.read_bytes()
            for path in sorted(repo_root.rglob("*"))
            if path.is_file()
        }

    return _snapshot


@pytest.fixture
def make_page():
    """Factory fixture building :class:`FakePage` instances."""

    return FakePage


@pytest.fixture
def make_source():
    """Factory fixture building :class:`FakeSource` sessions."""

    return FakeSource
