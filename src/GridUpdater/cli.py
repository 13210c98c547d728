# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.cli",
#   "purpose": "Typer CLI for grid synchronisation runs and catalog queries",
#   "sections": [
#     {
#       "id": "normalize-args",
#       "name": "_normalize_args",
#       "anchor": "function-normalize-args",
#       "kind": "function"
#     },
#     {
#       "id": "clicontext",
#       "name": "CliContext",
#       "anchor": "class-clicontext",
#       "kind": "class"
#     },
#     {
#       "id": "main",
#       "name": "main",
#       "anchor": "function-main",
#       "kind": "function"
#     },
#     {
#       "id": "sync",
#       "name": "sync",
#       "anchor": "function-sync",
#       "kind": "function"
#     },
#     {
#       "id": "queries",
#       "name": "hashes, releases, digest, detect",
#       "anchor": "QRY",
#       "kind": "api"
#     },
#     {
#       "id": "cli-main",
#       "name": "cli_main",
#       "anchor": "function-cli-main",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for grid synchronisation runs and catalog queries.

Provides:
- Global options (--config, -v/-vv, --version)
- ``sync`` (the default command) with ``--force`` and ``--repair``
- Catalog queries used by desktop clients (``releases``, ``digest``, ``detect``)
- ``hashes`` to rebuild the hash dictionary from the grids folder

Exit codes: ``0`` for a completed run (including no-op and unresolved repair),
``1`` when the source page layout check fails or a remote query fails, and
``2`` for configuration errors.

Example:
    $ grid-updater                # normal run
    $ grid-updater --force        # re-download even when up to date
    $ grid-updater -c grids.yaml sync --repair
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .catalog import (
    RemoteCatalog,
    detect_installed_grid,
    list_local_releases,
    list_releases,
)
from .engine import ReconciliationEngine, RunStatus, select_mode
from .errors import ConfigError, RemoteCatalogError
from .fetcher import SourceFetcher
from .hashing import build_hash_dictionary, digest_file, load_hash_dictionary
from .logging_utils import setup_logging
from .release import GridKind
from .settings import GridUpdaterSettings, load_settings

_DEFAULT_SUBCOMMAND = "sync"
_KNOWN_SUBCOMMANDS = {"sync", "hashes", "releases", "digest", "detect", "version"}
_GLOBAL_OPTIONS_WITH_VALUES = {"--config", "-c"}
_EXIT_FLAGS = {"--help", "--version", "-V"}

_LEVEL_BY_VERBOSITY = {0: None, 1: "INFO", 2: "DEBUG"}


def _normalize_args(args: Sequence[str]) -> List[str]:
    """Inject ``sync`` when callers omit the subcommand.

    ``grid-updater --force`` and a bare ``grid-updater`` both run a
    synchronisation, matching how the scheduled job invokes the tool.
    """

    normalized: List[str] = list(args)
    index = 0
    while index < len(normalized):
        token = normalized[index]
        if token in _EXIT_FLAGS:
            return normalized
        if token == "--":
            index += 1
            break
        if token.startswith("-"):
            option_name = token.split("=", 1)[0]
            if option_name in _GLOBAL_OPTIONS_WITH_VALUES:
                index += 1 if "=" in token else 2
                continue
            if option_name == "--verbose" or set(option_name[1:]) == {"v"}:
                index += 1
                continue
        break

    if index >= len(normalized) or normalized[index] not in _KNOWN_SUBCOMMANDS:
        normalized.insert(min(index, len(normalized)), _DEFAULT_SUBCOMMAND)
    return normalized


_console = Console()


class CliContext:
    """Shared state for one CLI invocation.

    Settings are loaded lazily so ``--version`` and ``--help`` work even with
    a broken configuration file.
    """

    def __init__(self, config: Optional[Path] = None, verbosity: int = 0):
        self.config = config
        self.verbosity = verbosity
        self.console = _console
        self._settings: Optional[GridUpdaterSettings] = None

    @property
    def settings(self) -> GridUpdaterSettings:
        if self._settings is None:
            try:
                self._settings = load_settings(self.config)
            except ConfigError as exc:
                self.console.print(f"[red]Configuration error: {exc}[/red]")
                raise typer.Exit(2)
        return self._settings

    def log_level(self) -> str:
        return _LEVEL_BY_VERBOSITY.get(min(self.verbosity, 2)) or self.settings.logging.level

    def log_debug(self, message: str) -> None:
        if self.verbosity >= 2:
            self.console.print(f"[dim]DEBUG: {message}[/dim]")


app = typer.Typer(
    name="grid-updater",
    help="Dota 2 Pro Tracker hero grid updater - sync published grids and query the catalog",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the context created by :func:`main`.

    Raises:
        RuntimeError: If no command has been dispatched yet.
    """

    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"grid-updater {__version__}")
        raise typer.Exit(0)


@app.callback(invoke_without_command=False)
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="D2PT_GRIDS_CONFIG",
        help="Path to a YAML config file",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Grid updater CLI.

    Global options go before the subcommand:

        grid-updater -c grids.yaml sync --force
        grid-updater -vv releases --remote
    """

    global _context

    _context = CliContext(config=config, verbosity=verbosity)
    _context.log_debug(f"Config file: {config}")


@app.command()
def sync(
    force: bool = typer.Option(
        False, "--force", "-f", help="Re-download grids even when the release is unchanged"
    ),
    repair: bool = typer.Option(
        False, "--repair", "-r", help="Rebuild last_update.txt and README line from the ledger"
    ),
) -> None:
    """Synchronise local grids and bookkeeping with the source page."""

    ctx = get_context()
    settings = ctx.settings
    setup_logging(
        level=ctx.log_level(),
        retention_days=settings.logging.retention_days,
        max_log_size_mb=settings.logging.max_log_size_mb,
        log_dir=settings.logging.resolved_log_dir(),
    )
    engine = ReconciliationEngine(
        settings, fetcher_factory=lambda: SourceFetcher(settings.source)
    )
    outcome = engine.run(select_mode(force=force, repair=repair))

    style = {
        RunStatus.UPDATED: "green",
        RunStatus.UNCHANGED: "cyan",
        RunStatus.FAILED: "red",
        RunStatus.UNRESOLVED: "yellow",
    }[outcome.status]
    summary = f"[{style}]{outcome.status.value}[/{style}]"
    if outcome.action is not None:
        summary += f" ({outcome.action.value})"
    if outcome.message:
        summary += f": {outcome.message}"
    ctx.console.print(summary)
    for path in outcome.written:
        ctx.console.print(f"  wrote {path}")
    raise typer.Exit(outcome.exit_code)


# --- hashes, releases, digest, detect -------------------------------------------


@app.command()
def hashes() -> None:
    """Rebuild the hash dictionary from every grid file in the grids folder."""

    ctx = get_context()
    paths = ctx.settings.paths
    mapping = build_hash_dictionary(paths.grids_path, paths.hashes_path)
    ctx.console.print(f"[green]{len(mapping)} entries[/green] in {paths.hashes_path}")


def _remote_hashes(settings: GridUpdaterSettings, console: Console) -> Dict[str, str]:
    try:
        with RemoteCatalog(settings.remote) as catalog:
            return catalog.download_grid_hashes()
    except RemoteCatalogError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)


@app.command()
def releases(
    remote: bool = typer.Option(
        False, "--remote", help="List the published repository instead of the local folder"
    ),
) -> None:
    """List available releases, newest first."""

    ctx = get_context()
    settings = ctx.settings
    if remote:
        try:
            with RemoteCatalog(settings.remote) as catalog:
                found = list_releases(grid.name for grid in catalog.list_remote_grids())
        except RemoteCatalogError as exc:
            ctx.console.print(f"[red]{exc}[/red]")
            raise typer.Exit(1)
    else:
        found = list_local_releases(settings.paths.grids_path)

    if not found:
        ctx.console.print("[yellow]No releases found[/yellow]")
        return
    table = Table(title="Releases")
    table.add_column("Date")
    table.add_column("Patch")
    for kind in GridKind.ordered():
        table.add_column(kind.column_title)
    for release in found:
        table.add_row(
            release.date,
            release.patch,
            *["✓" if release.filename_for(kind) else "-" for kind in GridKind.ordered()],
        )
    ctx.console.print(table)


@app.command()
def digest(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to hash"),
) -> None:
    """Print the MD5 digest of FILE."""

    typer.echo(digest_file(file))


@app.command()
def detect(
    file: Path = typer.Argument(..., help="Installed hero_grid_config.json"),
    remote: bool = typer.Option(
        False, "--remote", help="Match against the published hash dictionary"
    ),
) -> None:
    """Identify which published grid FILE corresponds to."""

    ctx = get_context()
    settings = ctx.settings
    known = (
        _remote_hashes(settings, ctx.console)
        if remote
        else load_hash_dictionary(settings.paths.hashes_path)
    )
    detected = detect_installed_grid(file, known)
    if detected is None:
        ctx.console.print(f"[red]No grid file at {file}[/red]")
        raise typer.Exit(1)
    if detected.is_known:
        ctx.console.print(
            f"[green]{detected.grid_type}[/green] {detected.name} ({detected.date})"
        )
    else:
        ctx.console.print(f"[yellow]custom[/yellow] grid, digest {detected.hash}")


@app.command("version")
def version_cmd() -> None:
    """Show version information."""

    get_context().console.print(f"[bold]grid-updater[/bold] version {__version__}")


def cli_main(argv: Optional[Sequence[str]] = None) -> None:
    """Console-script entry point; defaults to the ``sync`` command."""

    args = list(sys.argv[1:] if argv is None else argv)
    app(args=_normalize_args(args), prog_name="grid-updater")


__all__ = [
    "app",
    "CliContext",
    "get_context",
    "main",
    "sync",
    "cli_main",
    "_normalize_args",
]
