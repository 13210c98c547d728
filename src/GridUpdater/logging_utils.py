"""Structured logging helpers shared across grid updater components."""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, MutableMapping, Optional, Tuple

from .settings import LOG_DIR

__all__ = [
    "JSONFormatter",
    "RetentionAction",
    "RunLogAdapter",
    "generate_correlation_id",
    "setup_logging",
    "sweep_log_dir",
]

LOGGER_NAME = "GridUpdater"
LOG_FILE_PREFIX = "grid-updater-"
_MANAGED_ATTR = "_grid_updater_managed"


def generate_correlation_id() -> str:
    """Return a short-lived identifier that links the log entries of one run."""

    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with run-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "mode": getattr(record, "mode", None),
            "stage": getattr(record, "stage", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


class RunLogAdapter(logging.LoggerAdapter):
    """Logger adapter that merges run context into per-call ``extra`` values."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


@dataclass(frozen=True)
class RetentionAction:
    """One change made to the log directory by :func:`sweep_log_dir`."""

    verb: str
    path: Path

    def __str__(self) -> str:
        return f"{self.verb} {self.path.name}"


def _gzip_in_place(path: Path) -> Path:
    archive = path.with_name(path.name + ".gz")
    with path.open("rb") as source, gzip.open(archive, "wb") as target:
        shutil.copyfileobj(source, target)
    path.unlink()
    return archive


def sweep_log_dir(
    log_dir: Path, retention_days: int, *, now: Optional[float] = None
) -> List[RetentionAction]:
    """Archive run logs older than ``retention_days`` and drop expired archives.

    Plain ``grid-updater-*.jsonl`` files (and their rotated ``.jsonl.N``
    siblings) are gzipped on their first stale sweep; archives that are
    themselves stale are deleted.  Files written by other tools are left alone.
    """

    cutoff = (time.time() if now is None else now) - retention_days * 86400
    actions: List[RetentionAction] = []
    for path in sorted(log_dir.glob(f"{LOG_FILE_PREFIX}*.jsonl*")):
        if path.stat().st_mtime >= cutoff:
            continue
        if path.suffix == ".gz":
            path.unlink(missing_ok=True)
            actions.append(RetentionAction("deleted", path))
        else:
            actions.append(RetentionAction("archived", _gzip_in_place(path)))
    return actions


def _detach_managed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if not getattr(handler, _MANAGED_ATTR, False):
            continue
        logger.removeHandler(handler)
        # never close the process's own stdout/stderr
        if getattr(handler, "stream", None) not in (sys.stdout, sys.stderr):
            handler.close()


def _managed(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _MANAGED_ATTR, True)
    return handler


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 10,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Attach console output and a rotating JSON-lines file to the package logger.

    Calling it again swaps out the handlers installed by the previous call, so
    long-lived hosts can reconfigure between runs.  Retention housekeeping runs
    first and each archived or deleted file is logged at DEBUG.
    """

    resolved_dir = log_dir or LOG_DIR
    resolved_dir.mkdir(parents=True, exist_ok=True)
    swept = sweep_log_dir(resolved_dir, retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _detach_managed_handlers(logger)

    logger.addHandler(
        _managed(logging.StreamHandler(sys.stdout), logging.Formatter("%(levelname)s: %(message)s"))
    )
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    logger.addHandler(
        _managed(
            RotatingFileHandler(
                resolved_dir / f"{LOG_FILE_PREFIX}{today}.jsonl",
                maxBytes=int(max_log_size_mb * 1024 * 1024),
                backupCount=5,
                encoding="utf-8",
            ),
            JSONFormatter(),
        )
    )
    logger.propagate = propagate

    for action in swept:
        logger.debug(
            "log retention: %s",
            action,
            extra={"stage": "logging", "extra_fields": {"path": str(action.path)}},
        )
    return logger
