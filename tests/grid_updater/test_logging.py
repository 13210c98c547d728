# === NAVMAP v1 ===
# {
#   "module": "tests.grid_updater.test_logging",
#   "purpose": "Pytest coverage for structured run logging",
#   "sections": [
#     {
#       "id": "test-setup-logging-emits-structured-json",
#       "name": "test_setup_logging_emits_structured_json",
#       "anchor": "function-test-setup-logging-emits-structured-json",
#       "kind": "function"
#     },
#     {
#       "id": "test-sweep-archives-and-deletes-stale-logs",
#       "name": "test_sweep_archives_and_deletes_stale_logs",
#       "anchor": "function-test-sweep-archives-and-deletes-stale-logs",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Logging helper regression coverage.

Validates the JSON-lines file format, run context propagation through the
adapter, handler replacement on repeated setup, and retention handling.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import time
from pathlib import Path

from GridUpdater.logging_utils import (
    RunLogAdapter,
    generate_correlation_id,
    setup_logging,
    sweep_log_dir,
)


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def _read_records(log_dir: Path):
    files = list(log_dir.glob("grid-updater-*.jsonl"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]


def test_setup_logging_emits_structured_json(tmp_path: Path):
    logger = setup_logging(level="INFO", retention_days=1, max_log_size_mb=1, log_dir=tmp_path)
    adapter = RunLogAdapter(
        logging.getLogger("GridUpdater.engine"), {"correlation_id": "abc123", "mode": "force"}
    )
    adapter.info(
        "downloaded %s",
        "grid.json",
        extra={"stage": "download", "extra_fields": {"kind": "most_played"}},
    )
    _flush(logger)

    records = _read_records(tmp_path)
    assert records[-1]["message"] == "downloaded grid.json"
    assert records[-1]["logger"] == "GridUpdater.engine"
    assert records[-1]["correlation_id"] == "abc123"
    assert records[-1]["mode"] == "force"
    assert records[-1]["stage"] == "download"
    assert records[-1]["kind"] == "most_played"
    assert records[-1]["timestamp"].endswith("Z")


def test_debug_records_respect_level(tmp_path: Path):
    logger = setup_logging(level="WARNING", log_dir=tmp_path)
    logging.getLogger("GridUpdater.fetcher").info("quiet", extra={"stage": "fetch"})
    logging.getLogger("GridUpdater.fetcher").warning("loud", extra={"stage": "fetch"})
    _flush(logger)
    assert [record["message"] for record in _read_records(tmp_path)] == ["loud"]


def test_repeated_setup_replaces_managed_handlers(tmp_path: Path):
    setup_logging(log_dir=tmp_path)
    logger = setup_logging(log_dir=tmp_path)
    managed = [h for h in logger.handlers if getattr(h, "_grid_updater_managed", False)]
    assert len(managed) == 2
    assert logger.propagate is False


def test_correlation_ids_are_short_and_unique():
    ids = {generate_correlation_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(value) == 12 for value in ids)


def _age(path: Path, days: int) -> None:
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


def test_sweep_archives_and_deletes_stale_logs(tmp_path: Path):
    stale = tmp_path / "grid-updater-20200101.jsonl"
    stale.write_text('{"message": "old"}\n', encoding="utf-8")
    expired = tmp_path / "grid-updater-20190101.jsonl.gz"
    expired.write_bytes(b"")
    fresh = tmp_path / "grid-updater-20990101.jsonl"
    fresh.write_text("{}\n", encoding="utf-8")
    foreign = tmp_path / "other-tool.jsonl"
    foreign.write_text("{}\n", encoding="utf-8")
    for path in (stale, expired, foreign):
        _age(path, 10)

    actions = sweep_log_dir(tmp_path, retention_days=3)

    archive = tmp_path / "grid-updater-20200101.jsonl.gz"
    assert sorted((action.verb, action.path.name) for action in actions) == [
        ("archived", archive.name),
        ("deleted", expired.name),
    ]
    assert gzip.decompress(archive.read_bytes()) == b'{"message": "old"}\n'
    assert not stale.exists()
    assert not expired.exists()
    assert fresh.exists()
    assert foreign.exists()


def test_setup_logging_reports_retention_actions(tmp_path: Path):
    stale = tmp_path / "grid-updater-20200101.jsonl"
    stale.write_text("{}\n", encoding="utf-8")
    _age(stale, 40)

    logger = setup_logging(level="DEBUG", retention_days=30, log_dir=tmp_path)
    _flush(logger)

    messages = [record["message"] for record in _read_records(tmp_path)]
    assert "log retention: archived grid-updater-20200101.jsonl.gz" in messages
