# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.settings",
#   "purpose": "Typed configuration for grid synchronisation runs",
#   "sections": [
#     {"id": "models", "name": "Configuration models", "anchor": "MOD", "kind": "api"},
#     {"id": "settings", "name": "GridUpdaterSettings", "anchor": "SET", "kind": "api"},
#     {"id": "loading", "name": "Loading helpers", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Typed configuration for grid synchronisation runs.

Settings come from three layers.  Defaults describe the layout of the
published grid repository (``grids/``, ``grids.md``, ``last_update.txt``,
``README.md``, ``grid_hashes.txt``) and the current source page.  An optional
YAML file supplied with ``--config`` overrides the defaults, and environment
variables prefixed with ``D2PT_GRIDS_`` (nested keys separated by ``__``)
override both, e.g. ``D2PT_GRIDS_PATHS__ROOT=/srv/grids``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import platformdirs
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .errors import ConfigError

__all__ = [
    "PathsConfiguration",
    "SourceConfiguration",
    "RemoteCatalogConfiguration",
    "LoggingConfiguration",
    "GridUpdaterSettings",
    "LOG_DIR",
    "load_settings",
    "get_default_settings",
    "invalidate_default_settings_cache",
]

LOG_DIR = Path(platformdirs.user_log_dir("d2pt-grid-updater"))

# --- Configuration models -----------------------------------------------------


class PathsConfiguration(BaseModel):
    """Locations of the grid folder and bookkeeping files."""

    root: Path = Field(default=Path("."), description="Repository root for relative paths")
    grids_dir: Path = Field(default=Path("grids"), description="Folder holding artifact files")
    ledger: Path = Field(default=Path("grids.md"), description="Markdown release ledger")
    last_update: Path = Field(default=Path("last_update.txt"), description="Last-update sidecar")
    readme: Path = Field(default=Path("README.md"), description="Document with the metadata line")
    hashes: Path = Field(default=Path("grid_hashes.txt"), description="Hash dictionary file")

    def resolve(self, name: str) -> Path:
        """Return the configured path ``name`` anchored at :attr:`root`."""

        value: Path = getattr(self, name)
        if value.is_absolute():
            return value
        return self.root / value

    @property
    def grids_path(self) -> Path:
        return self.resolve("grids_dir")

    @property
    def ledger_path(self) -> Path:
        return self.resolve("ledger")

    @property
    def last_update_path(self) -> Path:
        return self.resolve("last_update")

    @property
    def readme_path(self) -> Path:
        return self.resolve("readme")

    @property
    def hashes_path(self) -> Path:
        return self.resolve("hashes")


class SourceConfiguration(BaseModel):
    """Where and how the source page is scraped."""

    url: str = Field(default="https://dota2protracker.com/meta-hero-grids")
    interstitial_selector: str = Field(default='button[aria-label="Close announcement"]')
    interstitial_timeout_sec: float = Field(default=10.0, gt=0.0, le=120.0)
    metadata_panel_text: str = Field(default="Dota2ProTracker Meta Hero Grids")
    download_panel_text: str = Field(default="Download Hero Grid Configuration")
    download_button_text: str = Field(default="Download")
    headless: bool = Field(default=True)


class RemoteCatalogConfiguration(BaseModel):
    """Endpoints of the published grid catalog used by desktop clients."""

    contents_url: str = Field(
        default="https://api.github.com/repos/abnersajr/d2pt-grid-updater/contents/grids"
    )
    hashes_url: str = Field(
        default="https://raw.githubusercontent.com/abnersajr/d2pt-grid-updater/main/grid_hashes.txt"
    )
    user_agent: str = Field(default="d2pt-grid-updater-app")
    timeout_sec: float = Field(default=30.0, gt=0.0, le=300.0)


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for synchronisation runs."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=10, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(default=None, description="Override for the log directory")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}")
        return upper

    def resolved_log_dir(self) -> Path:
        return self.log_dir or LOG_DIR


# --- GridUpdaterSettings ------------------------------------------------------


class GridUpdaterSettings(BaseSettings):
    """Top-level settings model; environment values win over file values."""

    paths: PathsConfiguration = Field(default_factory=PathsConfiguration)
    source: SourceConfiguration = Field(default_factory=SourceConfiguration)
    remote: RemoteCatalogConfiguration = Field(default_factory=RemoteCatalogConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = SettingsConfigDict(
        env_prefix="D2PT_GRIDS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


# --- Loading helpers ----------------------------------------------------------


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {config_path}: {exc}") from exc
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")
    return dict(payload)


def load_settings(config_path: Optional[Path] = None) -> GridUpdaterSettings:
    """Build settings from defaults, an optional YAML file, and the environment.

    Args:
        config_path: Optional YAML file with ``paths``/``source``/``remote``/``logging``
            sections.

    Returns:
        Validated :class:`GridUpdaterSettings` instance.

    Raises:
        ConfigError: If the file cannot be parsed or values fail validation.
    """

    overrides = _read_config_file(config_path) if config_path is not None else {}
    try:
        settings = GridUpdaterSettings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    logging.getLogger("GridUpdater.settings").debug(
        "settings loaded",
        extra={"stage": "config", "extra_fields": {"config_path": str(config_path or "")}},
    )
    return settings


@lru_cache(maxsize=1)
def _cached_default_settings() -> GridUpdaterSettings:
    return load_settings()


def get_default_settings(*, copy: bool = False) -> GridUpdaterSettings:
    """Return process-wide default settings, optionally as a deep copy."""

    settings = _cached_default_settings()
    return settings.model_copy(deep=True) if copy else settings


def invalidate_default_settings_cache() -> None:
    """Forget cached default settings so environment changes are picked up."""

    _cached_default_settings.cache_clear()
