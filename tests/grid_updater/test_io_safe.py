"""Atomic write and tolerant read helpers."""

from __future__ import annotations

from pathlib import Path

from GridUpdater.io_safe import atomic_write_text, read_text_or_none, write_text_if_changed


def test_missing_file_reads_as_none(tmp_path: Path):
    assert read_text_or_none(tmp_path / "absent.txt") is None


def test_undecodable_file_reads_as_none(tmp_path: Path):
    path = tmp_path / "binary.md"
    path.write_bytes(b"\xff\xfe\x00broken")
    assert read_text_or_none(path) is None


def test_line_endings_survive_round_trip(tmp_path: Path):
    path = tmp_path / "grids.md"
    atomic_write_text(path, "a\r\nb\n")
    assert path.read_bytes() == b"a\r\nb\n"
    assert read_text_or_none(path) == "a\r\nb\n"


def test_atomic_write_creates_parents_and_leaves_no_temp_files(tmp_path: Path):
    path = tmp_path / "nested" / "last_update.txt"
    atomic_write_text(path, "7.39d\n2025-10-12\n")
    assert path.read_text(encoding="utf-8") == "7.39d\n2025-10-12\n"
    assert [p.name for p in path.parent.iterdir()] == ["last_update.txt"]


def test_write_text_if_changed_reports_changes(tmp_path: Path):
    path = tmp_path / "README.md"
    assert write_text_if_changed(path, "x") is True
    assert write_text_if_changed(path, "x") is False
    assert write_text_if_changed(path, "y") is True
