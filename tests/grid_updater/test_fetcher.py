# === NAVMAP v1 ===
# {
#   "module": "tests.grid_updater.test_fetcher",
#   "purpose": "Pytest coverage for the Playwright-backed source fetcher",
#   "sections": [
#     {"id": "session", "name": "Session lifecycle", "anchor": "SES", "kind": "tests"},
#     {"id": "scrape", "name": "Release scraping", "anchor": "SCR", "kind": "tests"},
#     {"id": "download", "name": "Downloads", "anchor": "DWN", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Source fetcher regression coverage using a scripted fake page.

No browser is launched: every test injects a ``FakePage`` so the fetcher
skips Playwright start-up and teardown.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from GridUpdater.errors import (
    DownloadContainerNotFound,
    InsufficientDownloadTargets,
    MetadataPanelNotFound,
)
from GridUpdater.fetcher import SourceFetcher
from GridUpdater.release import UNKNOWN_DATE, GridKind, ReleaseMetadata
from GridUpdater.settings import SourceConfiguration


@pytest.fixture
def config() -> SourceConfiguration:
    return SourceConfiguration(interstitial_timeout_sec=2.0)


# --- Session lifecycle ----------------------------------------------------------


def test_enter_visits_page_and_tolerates_missing_overlay(config, make_page):
    page = make_page(overlay=False)
    with SourceFetcher(config, page=page) as fetcher:
        assert fetcher.page is page
    assert page.visited == [config.url]
    assert page.wait_timeouts == [2000.0]


def test_overlay_is_dismissed_when_present(config, make_page):
    page = make_page(overlay=True)
    with SourceFetcher(config, page=page):
        pass
    assert page.overlay_button.clicked


def test_page_access_before_enter_raises(config):
    with pytest.raises(RuntimeError):
        SourceFetcher(config).page


# --- Release scraping -----------------------------------------------------------


def test_fetch_current_release_parses_panel_text(config, make_page):
    page = make_page(update_text="Last update: Oct 12, 2025 • Patch 7.39d")
    with SourceFetcher(config, page=page) as fetcher:
        release = fetcher.fetch_current_release()
    assert release == ReleaseMetadata.from_values("2025-10-12", "7.39d")
    assert 'div:has-text("Dota2ProTracker Meta Hero Grids")' in page.selectors


def test_missing_metadata_panel_is_fatal(config, make_page):
    page = make_page(has_metadata_panel=False)
    with SourceFetcher(config, page=page) as fetcher:
        with pytest.raises(MetadataPanelNotFound) as excinfo:
            fetcher.fetch_current_release()
    assert "Meta Hero Grids" in excinfo.value.selector


def test_missing_update_text_falls_back_to_sentinels(config, make_page):
    page = make_page(update_text=None)
    with SourceFetcher(config, page=page) as fetcher:
        release = fetcher.fetch_current_release()
    assert release == ReleaseMetadata.unknown()


def test_unparseable_date_is_not_fatal(config, make_page):
    page = make_page(update_text="Last update: whenever • Patch 7.39d")
    with SourceFetcher(config, page=page) as fetcher:
        release = fetcher.fetch_current_release()
    assert release.date == UNKNOWN_DATE
    assert release.patch_slug == "p7_39d"


# --- Downloads ------------------------------------------------------------------


def test_fetch_artifacts_saves_three_files_in_page_order(config, make_page, tmp_path: Path):
    page = make_page()
    target = tmp_path / "grids"
    with SourceFetcher(config, page=page) as fetcher:
        artifacts = fetcher.fetch_artifacts(target, "2025-10-12", "p7_39d")
    assert page.clicks == [0, 1, 2]
    assert [artifact.kind for artifact in artifacts] == list(GridKind.ordered())
    assert [artifact.filename for artifact in artifacts] == [
        "hero_grid_d2pt_rating_2025-10-12_p7_39d.json",
        "hero_grid_high_winrate_2025-10-12_p7_39d.json",
        "hero_grid_most_played_2025-10-12_p7_39d.json",
    ]
    for artifact in artifacts:
        assert artifact.path == target / artifact.filename
        assert artifact.path.read_bytes() == f"{artifact.kind.value}:v1".encode()


def test_missing_download_container_is_fatal(config, make_page, tmp_path: Path):
    page = make_page(has_download_container=False)
    with SourceFetcher(config, page=page) as fetcher:
        with pytest.raises(DownloadContainerNotFound):
            fetcher.fetch_artifacts(tmp_path / "grids", "2025-10-12", "p7_39d")
    assert not (tmp_path / "grids").exists()


def test_too_few_buttons_is_fatal_before_any_download(config, make_page, tmp_path: Path):
    page = make_page(button_count=2)
    with SourceFetcher(config, page=page) as fetcher:
        with pytest.raises(InsufficientDownloadTargets) as excinfo:
            fetcher.fetch_artifacts(tmp_path / "grids", "2025-10-12", "p7_39d")
    assert (excinfo.value.found, excinfo.value.expected) == (2, 3)
    assert str(excinfo.value) == "Expected 3 download buttons, found 2"
    assert page.clicks == []
    assert not (tmp_path / "grids").exists()


def test_container_check_passes_without_downloading(config, make_page):
    page = make_page()
    with SourceFetcher(config, page=page) as fetcher:
        fetcher.check_download_container()
    assert page.clicks == []


def test_container_check_raises_when_panel_is_gone(config, make_page):
    page = make_page(has_download_container=False)
    with SourceFetcher(config, page=page) as fetcher:
        with pytest.raises(DownloadContainerNotFound) as excinfo:
            fetcher.check_download_container()
    assert "Download Hero Grid Configuration" in excinfo.value.selector
