# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.fetcher",
#   "purpose": "Headless browser session that scrapes release metadata and downloads grids",
#   "sections": [
#     {"id": "protocol", "name": "ReleaseSource", "anchor": "class-releasesource", "kind": "class"},
#     {"id": "fetcher", "name": "SourceFetcher", "anchor": "class-sourcefetcher", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Headless browser session that scrapes release metadata and downloads grids.

The source page renders client-side, so the fetcher drives Chromium through
Playwright.  A :class:`SourceFetcher` is a context manager: entering it opens
the page and dismisses the announcement overlay when one shows up within the
configured window, and leaving it always tears the browser down, whether the
run succeeded, hit a layout error, or raised.

Downloads are performed one trigger at a time so the three saved files keep
the page order rating, high winrate, most played.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import List, Optional, Protocol, Type

from playwright.sync_api import Browser, Page, Playwright, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .errors import DownloadContainerNotFound, InsufficientDownloadTargets, MetadataPanelNotFound
from .release import (
    GridArtifact,
    GridKind,
    ReleaseMetadata,
    artifact_filename,
    parse_update_text,
)
from .settings import SourceConfiguration

__all__ = ["ReleaseSource", "SourceFetcher"]

LOGGER = logging.getLogger("GridUpdater.fetcher")

_UPDATE_TEXT_SELECTOR = ":scope >> text=/Last update:/"


class ReleaseSource(Protocol):
    """Interface the reconciliation engine needs from a source session."""

    def fetch_current_release(self) -> ReleaseMetadata: ...

    def check_download_container(self) -> None: ...

    def fetch_artifacts(
        self, target_dir: Path, date: str, patch_slug: str
    ) -> List[GridArtifact]: ...


class SourceFetcher:
    """Playwright-backed :class:`ReleaseSource` for the Meta Hero Grids page.

    Args:
        config: Source page settings (URL, selectors, overlay timeout).
        page: Optional pre-built page; when supplied the fetcher neither
            launches nor closes a browser.
    """

    def __init__(self, config: SourceConfiguration, *, page: Optional[Page] = None) -> None:
        self.config = config
        self._page: Optional[Page] = page
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    # Session lifecycle ----------------------------------------------------------

    def __enter__(self) -> "SourceFetcher":
        try:
            if self._page is None:
                self._playwright = sync_playwright().start()
                self._browser = self._playwright.chromium.launch(headless=self.config.headless)
                self._page = self._browser.new_page()
            self._page.goto(self.config.url)
            self._dismiss_interstitial()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release the browser and Playwright driver if this fetcher started them."""

        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        try:
            if browser is not None:
                browser.close()
        finally:
            if playwright is not None:
                playwright.stop()
                LOGGER.debug("browser session closed", extra={"stage": "fetch"})

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("SourceFetcher must be entered before use")
        return self._page

    def _dismiss_interstitial(self) -> None:
        selector = self.config.interstitial_selector
        timeout_ms = self.config.interstitial_timeout_sec * 1000
        try:
            button = self.page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            LOGGER.info(
                "announcement overlay did not appear within %.0f seconds",
                self.config.interstitial_timeout_sec,
                extra={"stage": "fetch"},
            )
            return
        if button is not None:
            button.click()
            LOGGER.info("announcement overlay closed", extra={"stage": "fetch"})

    # Scraping -------------------------------------------------------------------

    def _panel_selector(self, text: str) -> str:
        return f'div:has-text("{text}")'

    def fetch_current_release(self) -> ReleaseMetadata:
        """Scrape ``Last update: <date> • Patch <token>`` from the metadata panel.

        Raises:
            MetadataPanelNotFound: If no element carries the panel title.
        """

        selector = self._panel_selector(self.config.metadata_panel_text)
        panel = self.page.locator(selector).first
        if panel.count() == 0:
            raise MetadataPanelNotFound(
                f"Metadata panel containing '{self.config.metadata_panel_text}' not found",
                selector=selector,
            )
        update_info = panel.locator(_UPDATE_TEXT_SELECTOR).first
        if update_info.count() == 0:
            LOGGER.warning(
                "metadata panel has no 'Last update' text; using sentinels",
                extra={"stage": "fetch", "extra_fields": {"selector": selector}},
            )
            return ReleaseMetadata.unknown()
        text = update_info.text_content()
        release = parse_update_text(text)
        if not release.is_usable:
            LOGGER.warning(
                "could not fully parse release metadata",
                extra={"stage": "fetch", "extra_fields": {"text": text, "release": str(release)}},
            )
        else:
            LOGGER.info("scraped release %s", release, extra={"stage": "fetch"})
        return release

    def _download_container(self):
        selector = self._panel_selector(self.config.download_panel_text)
        container = self.page.locator(selector).first
        if container.count() == 0:
            raise DownloadContainerNotFound(
                f"Download container containing '{self.config.download_panel_text}' not found",
                selector=selector,
            )
        return container

    def check_download_container(self) -> None:
        """Verify the download panel is on the page, whether or not this run downloads.

        Raises:
            DownloadContainerNotFound: If the download panel is missing.
        """

        self._download_container()
        LOGGER.debug("download container present", extra={"stage": "fetch"})

    def fetch_artifacts(self, target_dir: Path, date: str, patch_slug: str) -> List[GridArtifact]:
        """Trigger the three downloads and save them under ``target_dir``.

        Raises:
            DownloadContainerNotFound: If the download panel is missing.
            InsufficientDownloadTargets: If fewer than three triggers are present.
        """

        container = self._download_container()
        button_selector = f'button:has-text("{self.config.download_button_text}")'
        buttons = container.locator(button_selector)
        kinds = GridKind.ordered()
        found = buttons.count()
        if found < len(kinds):
            raise InsufficientDownloadTargets(found, expected=len(kinds), selector=button_selector)

        target_dir.mkdir(parents=True, exist_ok=True)
        artifacts: List[GridArtifact] = []
        for index, kind in enumerate(kinds):
            with self.page.expect_download(timeout=0) as download_info:
                buttons.nth(index).click()
            download = download_info.value
            filename = artifact_filename(download.suggested_filename, date, patch_slug)
            path = target_dir / filename
            download.save_as(path)
            LOGGER.info(
                "downloaded %s",
                filename,
                extra={
                    "stage": "download",
                    "extra_fields": {"kind": kind.value, "path": str(path)},
                },
            )
            artifacts.append(
                GridArtifact(
                    kind=kind, filename=filename, date=date, patch_slug=patch_slug, path=path
                )
            )
        return artifacts
