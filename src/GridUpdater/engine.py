# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.engine",
#   "purpose": "Reconciliation engine deciding downloads and bookkeeping for each run",
#   "sections": [
#     {"id": "modes", "name": "Run modes, actions & statuses", "anchor": "MOD", "kind": "api"},
#     {"id": "transitions", "name": "Transition table", "anchor": "TRN", "kind": "constants"},
#     {"id": "outcome", "name": "RunState & RunOutcome", "anchor": "OUT", "kind": "api"},
#     {"id": "engine", "name": "ReconciliationEngine", "anchor": "class-reconciliationengine", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Reconciliation engine deciding downloads and bookkeeping for each run.

Every run scrapes the current release, then derives two facts from the local
files:

``entry_exists``
    the ledger already has a row for ``(date, patch)``.
``is_same``
    the last-update sidecar already names that release.

Together with the run mode these select exactly one :class:`Action` from
:data:`TRANSITIONS`.  Each action is a separate method so every branch can be
exercised on its own.  Structural page failures abort the run before any
bookkeeping file is written: the metadata panel and the download container
are checked before an action is chosen, so even runs that download nothing
fail on a broken page.  Missing or malformed bookkeeping files are treated as
absent.
"""

from __future__ import annotations

import logging
import os
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from . import ledger
from .errors import InsufficientDownloadTargets, RepairUnresolvable, SourceLayoutError
from .fetcher import ReleaseSource, SourceFetcher
from .hashing import update_hash_dictionary
from .io_safe import read_text_or_none, write_text_if_changed
from .logging_utils import RunLogAdapter, generate_correlation_id
from .metadata import LastUpdateMarker, MetadataStore
from .release import GridArtifact, ReleaseMetadata
from .settings import GridUpdaterSettings

__all__ = [
    "RunMode",
    "Action",
    "RunStatus",
    "TRANSITIONS",
    "select_mode",
    "decide",
    "RunState",
    "RunOutcome",
    "ReconciliationEngine",
]

LOGGER = logging.getLogger("GridUpdater.engine")

# --- Run modes, actions & statuses ----------------------------------------------


class RunMode(str, Enum):
    NORMAL = "normal"
    FORCE = "force"
    REPAIR = "repair"


class Action(str, Enum):
    ENSURE_DOC_LINE = "ensure_doc_line"
    SYNC_METADATA = "sync_metadata"
    FETCH_AND_RECORD = "fetch_and_record"
    REFETCH_AND_SYNC_DOC = "refetch_and_sync_doc"
    REPAIR = "repair"


class RunStatus(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    UNRESOLVED = "unresolved"


def select_mode(force: bool = False, repair: bool = False) -> RunMode:
    """Map CLI flags to a mode; repair takes precedence over force."""

    if repair:
        return RunMode.REPAIR
    if force:
        return RunMode.FORCE
    return RunMode.NORMAL


# --- Transition table -----------------------------------------------------------

TRANSITIONS: Dict[Tuple[RunMode, bool, bool], Action] = {
    (RunMode.NORMAL, True, True): Action.ENSURE_DOC_LINE,
    (RunMode.NORMAL, True, False): Action.SYNC_METADATA,
    (RunMode.NORMAL, False, True): Action.FETCH_AND_RECORD,
    (RunMode.NORMAL, False, False): Action.FETCH_AND_RECORD,
    (RunMode.FORCE, True, True): Action.REFETCH_AND_SYNC_DOC,
    (RunMode.FORCE, True, False): Action.REFETCH_AND_SYNC_DOC,
    (RunMode.FORCE, False, True): Action.FETCH_AND_RECORD,
    (RunMode.FORCE, False, False): Action.FETCH_AND_RECORD,
    (RunMode.REPAIR, True, True): Action.REPAIR,
    (RunMode.REPAIR, True, False): Action.REPAIR,
    (RunMode.REPAIR, False, True): Action.REPAIR,
    (RunMode.REPAIR, False, False): Action.REPAIR,
}


def decide(mode: RunMode, entry_exists: bool, is_same: bool) -> Action:
    return TRANSITIONS[(mode, entry_exists, is_same)]


# --- RunState & RunOutcome ------------------------------------------------------


@dataclass(frozen=True)
class RunState:
    """Facts observed at the start of a run."""

    mode: RunMode
    release: ReleaseMetadata
    ledger_text: str
    marker: Optional[LastUpdateMarker]
    entry_exists: bool
    is_same: bool


@dataclass
class RunOutcome:
    """Result of one engine run, returned to the CLI or an embedding shell."""

    mode: RunMode
    status: RunStatus
    action: Optional[Action] = None
    release: Optional[ReleaseMetadata] = None
    artifacts: List[GridArtifact] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    message: str = ""

    @property
    def exit_code(self) -> int:
        return 1 if self.status is RunStatus.FAILED else 0


FetcherFactory = Callable[[], AbstractContextManager]
ActionHandler = Callable[[ReleaseSource, RunState, RunLogAdapter], RunOutcome]


def _relative_posix(target: Path, start: Path) -> str:
    return Path(os.path.relpath(target, start)).as_posix()


# --- ReconciliationEngine -------------------------------------------------------


class ReconciliationEngine:
    """Run the grid synchronisation state machine against the configured files.

    Args:
        settings: Resolved settings (paths and source page configuration).
        fetcher_factory: Zero-argument callable returning a context manager that
            yields a :class:`~GridUpdater.fetcher.ReleaseSource`.  Defaults to a
            Playwright :class:`~GridUpdater.fetcher.SourceFetcher`.
        logger: Optional logger; defaults to ``GridUpdater.engine``.
    """

    def __init__(
        self,
        settings: GridUpdaterSettings,
        *,
        fetcher_factory: Optional[FetcherFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.paths = settings.paths
        self._fetcher_factory = fetcher_factory or (lambda: SourceFetcher(settings.source))
        self._logger = logger or LOGGER
        self.metadata = MetadataStore(
            self.paths.last_update_path,
            self.paths.readme_path,
            ledger_name=_relative_posix(self.paths.ledger_path, self.paths.readme_path.parent),
        )
        self.link_prefix = _relative_posix(self.paths.grids_path, self.paths.ledger_path.parent)
        self._handlers: Dict[Action, ActionHandler] = {
            Action.ENSURE_DOC_LINE: self._ensure_doc_line,
            Action.SYNC_METADATA: self._sync_metadata,
            Action.FETCH_AND_RECORD: self._fetch_and_record,
            Action.REFETCH_AND_SYNC_DOC: self._refetch_and_sync_doc,
            Action.REPAIR: self._repair,
        }

    # Observation ----------------------------------------------------------------

    def observe(self, release: ReleaseMetadata, mode: RunMode = RunMode.NORMAL) -> RunState:
        """Read the ledger and sidecar and compute ``entry_exists``/``is_same``."""

        ledger_text = read_text_or_none(self.paths.ledger_path) or ""
        marker = self.metadata.read_last_update()
        return RunState(
            mode=mode,
            release=release,
            ledger_text=ledger_text,
            marker=marker,
            entry_exists=ledger.has_entry(
                ledger_text, release.date, release.patch_raw, release.patch_slug
            ),
            is_same=marker is not None and release.matches(marker.date, marker.patch_raw),
        )

    def _report_malformed_rows(self, ledger_text: str, log: RunLogAdapter) -> None:
        for row in ledger.malformed_rows(ledger_text):
            log.warning(
                "ignoring malformed ledger row at line %d",
                row.index + 1,
                extra={"stage": "ledger", "extra_fields": {"line": row.text}},
            )

    # Entry point ----------------------------------------------------------------

    def run(self, mode: RunMode = RunMode.NORMAL) -> RunOutcome:
        """Execute one synchronisation run in ``mode``.

        Fatal layout problems are logged and reported as ``RunStatus.FAILED``;
        they never propagate past this method.
        """

        log = RunLogAdapter(
            self._logger, {"correlation_id": generate_correlation_id(), "mode": mode.value}
        )
        if mode is RunMode.FORCE:
            log.info("force update enabled", extra={"stage": "plan"})
        elif mode is RunMode.REPAIR:
            log.info("repair metadata mode enabled", extra={"stage": "plan"})
        release: Optional[ReleaseMetadata] = None
        action: Optional[Action] = None
        try:
            with self._fetcher_factory() as source:
                release = source.fetch_current_release()
                source.check_download_container()
                state = self.observe(release, mode)
                self._report_malformed_rows(state.ledger_text, log)
                action = decide(mode, state.entry_exists, state.is_same)
                log.info(
                    "selected action %s",
                    action.value,
                    extra={
                        "stage": "plan",
                        "extra_fields": {
                            "release": str(release),
                            "entry_exists": state.entry_exists,
                            "is_same": state.is_same,
                        },
                    },
                )
                return self._handlers[action](source, state, log)
        except SourceLayoutError as exc:
            fields: Dict[str, object] = {
                "selector": exc.selector,
                "error_type": type(exc).__name__,
            }
            if isinstance(exc, InsufficientDownloadTargets):
                fields.update({"found": exc.found, "expected": exc.expected})
            log.error(
                "source page layout check failed: %s",
                exc,
                extra={"stage": "fetch", "extra_fields": fields},
            )
            return RunOutcome(
                mode=mode, status=RunStatus.FAILED, action=action, release=release, message=str(exc)
            )
        except RepairUnresolvable as exc:
            log.error("%s", exc, extra={"stage": "repair"})
            return RunOutcome(
                mode=mode,
                status=RunStatus.UNRESOLVED,
                action=action,
                release=release,
                message=str(exc),
            )

    # Actions --------------------------------------------------------------------

    def _outcome(
        self,
        state: RunState,
        action: Action,
        written: List[Path],
        message: str,
        artifacts: Optional[List[GridArtifact]] = None,
    ) -> RunOutcome:
        return RunOutcome(
            mode=state.mode,
            status=RunStatus.UPDATED if written or artifacts else RunStatus.UNCHANGED,
            action=action,
            release=state.release,
            artifacts=list(artifacts or []),
            written=written,
            message=message,
        )

    def _write_metadata(self, release: ReleaseMetadata) -> List[Path]:
        written: List[Path] = []
        if self.metadata.write_last_update(LastUpdateMarker(release.patch_raw, release.date)):
            written.append(self.metadata.last_update_path)
        if self.metadata.replace_or_insert_doc_line(release.patch_raw, release.date):
            written.append(self.metadata.doc_path)
        return written

    def _entry_for(
        self, release: ReleaseMetadata, artifacts: List[GridArtifact]
    ) -> ledger.LedgerEntry:
        targets = [artifact.link_target(self.link_prefix) for artifact in artifacts[:3]]
        targets += [None] * (3 - len(targets))
        return ledger.LedgerEntry(
            date=release.date,
            patch_raw=release.patch_raw,
            links=(targets[0], targets[1], targets[2]),
        )

    def _record_hashes(self, artifacts: List[GridArtifact]) -> List[Path]:
        hashes_path = self.paths.hashes_path
        before = read_text_or_none(hashes_path)
        update_hash_dictionary(hashes_path, [artifact.path for artifact in artifacts])
        return [hashes_path] if read_text_or_none(hashes_path) != before else []

    def _ensure_doc_line(
        self, source: ReleaseSource, state: RunState, log: RunLogAdapter
    ) -> RunOutcome:
        marker = state.marker or LastUpdateMarker(state.release.patch_raw, state.release.date)
        log.info(
            "no update and entry already present: %s; skipping downloads and updates",
            state.release,
            extra={"stage": "plan"},
        )
        written: List[Path] = []
        if self.metadata.ensure_doc_line(marker.patch_raw, marker.date):
            written.append(self.metadata.doc_path)
        return self._outcome(state, Action.ENSURE_DOC_LINE, written, "already up to date")

    def _sync_metadata(
        self, source: ReleaseSource, state: RunState, log: RunLogAdapter
    ) -> RunOutcome:
        log.info(
            "entry present in ledger but sidecars outdated or missing; updating metadata only",
            extra={"stage": "metadata"},
        )
        written = self._write_metadata(state.release)
        return self._outcome(state, Action.SYNC_METADATA, written, "metadata synchronised")

    def _fetch_and_record(
        self, source: ReleaseSource, state: RunState, log: RunLogAdapter
    ) -> RunOutcome:
        release = state.release
        if not release.is_usable:
            log.warning(
                "recording release with incomplete metadata: %s",
                release,
                extra={"stage": "plan"},
            )
        artifacts = source.fetch_artifacts(self.paths.grids_path, release.date, release.patch_slug)
        written: List[Path] = []
        updated_ledger = ledger.insert_entry(state.ledger_text, self._entry_for(release, artifacts))
        if write_text_if_changed(self.paths.ledger_path, updated_ledger):
            written.append(self.paths.ledger_path)
            log.info("added ledger entry for %s", release, extra={"stage": "ledger"})
        written += self._record_hashes(artifacts)
        written += self._write_metadata(release)
        return self._outcome(
            state, Action.FETCH_AND_RECORD, written, f"recorded {release}", artifacts
        )

    def _refetch_and_sync_doc(
        self, source: ReleaseSource, state: RunState, log: RunLogAdapter
    ) -> RunOutcome:
        release = state.release
        artifacts = source.fetch_artifacts(self.paths.grids_path, release.date, release.patch_slug)
        written = self._record_hashes(artifacts)
        row = ledger.first_entry(state.ledger_text)
        if row is not None:
            resolved: Optional[ReleaseMetadata] = ReleaseMetadata.from_values(
                row.date, row.patch_raw
            )
            origin = "ledger"
        elif release.is_usable:
            resolved, origin = release, "site scrape"
        else:
            resolved, origin = None, ""
        if resolved is None:
            log.warning(
                "forced re-download completed; could not determine date/patch for documentation",
                extra={"stage": "metadata"},
            )
            message = "re-downloaded; documentation not synced"
        else:
            if self.metadata.replace_or_insert_doc_line(resolved.patch_raw, resolved.date):
                written.append(self.metadata.doc_path)
            log.info(
                "forced re-download completed; synced documentation with %s: %s",
                origin,
                resolved,
                extra={"stage": "metadata"},
            )
            message = f"re-downloaded; documentation synced from {origin}"
        return self._outcome(state, Action.REFETCH_AND_SYNC_DOC, written, message, artifacts)

    def _repair(self, source: ReleaseSource, state: RunState, log: RunLogAdapter) -> RunOutcome:
        row = ledger.first_entry(state.ledger_text)
        if row is not None:
            resolved = ReleaseMetadata.from_values(row.date, row.patch_raw)
            origin = "ledger"
        elif state.release.is_usable:
            resolved, origin = state.release, "site scrape"
        else:
            raise RepairUnresolvable(
                "Unable to repair metadata: no valid date/patch found in ledger or site"
            )

        written: List[Path] = []
        artifacts: List[GridArtifact] = []
        if row is None:
            log.info(
                "ledger has no valid rows; attempting reconstruction via fresh downloads",
                extra={"stage": "repair"},
            )
            if state.ledger_text.strip():
                log.warning(
                    "discarding %d unusable ledger lines during reconstruction",
                    len(state.ledger_text.splitlines()),
                    extra={"stage": "repair"},
                )
            artifacts = source.fetch_artifacts(
                self.paths.grids_path, resolved.date, resolved.patch_slug
            )
            table = ledger.render_table([self._entry_for(resolved, artifacts)])
            if write_text_if_changed(self.paths.ledger_path, table):
                written.append(self.paths.ledger_path)
            written += self._record_hashes(artifacts)
            log.info("rebuilt ledger with a new table and first row", extra={"stage": "repair"})

        written += self._write_metadata(resolved)
        log.info(
            "repaired %susing %s: %s",
            "and rebuilt ledger " if row is None else "metadata ",
            origin,
            resolved,
            extra={"stage": "repair"},
        )
        outcome = self._outcome(state, Action.REPAIR, written, f"repaired from {origin}", artifacts)
        outcome.release = resolved
        return outcome
