# === NAVMAP v1 ===
# {
#   "module": "GridUpdater.ledger",
#   "purpose": "Tagged-row codec for the append-only Markdown release ledger",
#   "sections": [
#     {"id": "constants", "name": "Table layout", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "LedgerEntry & LedgerRow", "anchor": "MOD", "kind": "api"},
#     {"id": "tokenize", "name": "tokenize", "anchor": "function-tokenize", "kind": "function"},
#     {"id": "queries", "name": "parse / first_entry / has_entry", "anchor": "QRY", "kind": "api"},
#     {"id": "render", "name": "render_row / render_table", "anchor": "RND", "kind": "api"},
#     {"id": "insert", "name": "insert_entry", "anchor": "function-insert-entry", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Tagged-row codec for the append-only Markdown release ledger.

The ledger is a pipe table::

    | Date | Patch | D2PT Rating | High Winrate | Most Played |
    | ---- | ----- | ----------- | ------------ | ----------- |
    | 2025-10-12 | 7.39d | [🔗 Download](grids/a.json) | ... | ... |

Every line of the document is tagged by :func:`tokenize` as one of
``HEADER``, ``SEPARATOR``, ``DATA``, ``MALFORMED``, ``TEXT`` or ``BLANK``:

* ``SEPARATOR`` is the first line made only of dash rules and pipes (at least
  one pipe, so a Markdown ``---`` rule in surrounding prose never qualifies).
* ``HEADER`` is the pipe row directly above that separator.
* After the separator, a pipe row with a non-empty date and patch cell is
  ``DATA``; any other non-blank line is ``MALFORMED`` and reported through
  :func:`malformed_rows` rather than silently dropped.
* Lines before the separator that are not the header are ``TEXT``.

New rows are spliced directly below the separator, so the table reads newest
insertion first.  Existing lines are never rewritten or reordered.  All
functions are pure text transforms.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

__all__ = [
    "HEADER_LINE",
    "SEPARATOR_LINE",
    "LINK_LABEL",
    "RowKind",
    "LedgerEntry",
    "LedgerRow",
    "tokenize",
    "parse",
    "malformed_rows",
    "first_entry",
    "has_entry",
    "render_row",
    "render_table",
    "insert_entry",
]

# --- Table layout ---------------------------------------------------------------

HEADER_LINE = "| Date | Patch | D2PT Rating | High Winrate | Most Played |"
SEPARATOR_LINE = "| ---- | ----- | ----------- | ------------ | ----------- |"
LINK_LABEL = "🔗 Download"

_SEPARATOR_PATTERN = re.compile(r"^\s*\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")
_LINK_PATTERN = re.compile(r"^\[(?P<label>[^\]]*)\]\((?P<target>[^)\s]*)\)$")

Links = Tuple[Optional[str], Optional[str], Optional[str]]


class RowKind(str, Enum):
    HEADER = "header"
    SEPARATOR = "separator"
    DATA = "data"
    MALFORMED = "malformed"
    TEXT = "text"
    BLANK = "blank"


# --- LedgerEntry & LedgerRow ----------------------------------------------------


@dataclass(frozen=True)
class LedgerEntry:
    """One release row: date, raw patch, and up to three artifact link targets."""

    date: str
    patch_raw: str
    links: Links = (None, None, None)

    @property
    def is_usable(self) -> bool:
        return bool(self.date) and bool(self.patch_raw)


@dataclass(frozen=True)
class LedgerRow:
    """A single tagged line of the ledger document."""

    index: int
    kind: RowKind
    text: str
    entry: Optional[LedgerEntry] = None


def _is_separator(line: str) -> bool:
    return "|" in line and bool(_SEPARATOR_PATTERN.match(line))


def _split_cells(line: str) -> List[str]:
    body = line.strip()
    if body.startswith("|"):
        body = body[1:]
    if body.endswith("|"):
        body = body[:-1]
    return [cell.strip() for cell in body.split("|")]


def _parse_link(cell: str) -> Optional[str]:
    match = _LINK_PATTERN.match(cell)
    if not match or not match.group("target"):
        return None
    return match.group("target")


def _parse_data_row(line: str) -> Optional[LedgerEntry]:
    if not line.strip().startswith("|") or _is_separator(line):
        return None
    cells = _split_cells(line)
    if len(cells) < 2 or not cells[0] or not cells[1]:
        return None
    link_cells = (cells[2:5] + ["", "", ""])[:3]
    links: Links = (
        _parse_link(link_cells[0]),
        _parse_link(link_cells[1]),
        _parse_link(link_cells[2]),
    )
    return LedgerEntry(date=cells[0], patch_raw=cells[1], links=links)


def _lines(text: str) -> List[str]:
    return text.splitlines(keepends=True)


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def tokenize(text: str) -> List[LedgerRow]:
    """Tag every line of ``text`` with its :class:`RowKind`."""

    lines = [_strip_eol(line) for line in _lines(text)]
    separator_index = next((i for i, line in enumerate(lines) if _is_separator(line)), None)
    rows: List[LedgerRow] = []
    for index, line in enumerate(lines):
        if not line.strip():
            rows.append(LedgerRow(index, RowKind.BLANK, line))
        elif separator_index is None or index < separator_index:
            is_header = (
                separator_index is not None
                and index == separator_index - 1
                and line.strip().startswith("|")
            )
            rows.append(LedgerRow(index, RowKind.HEADER if is_header else RowKind.TEXT, line))
        elif index == separator_index:
            rows.append(LedgerRow(index, RowKind.SEPARATOR, line))
        else:
            entry = _parse_data_row(line)
            kind = RowKind.DATA if entry is not None else RowKind.MALFORMED
            rows.append(LedgerRow(index, kind, line, entry))
    return rows


# --- parse / first_entry / has_entry --------------------------------------------


def parse(text: str) -> List[LedgerEntry]:
    """Return every data entry below the separator in document order."""

    return [row.entry for row in tokenize(text) if row.kind is RowKind.DATA and row.entry]


def malformed_rows(text: str) -> List[LedgerRow]:
    """Return rows below the separator that do not fit the data-row grammar."""

    return [row for row in tokenize(text) if row.kind is RowKind.MALFORMED]


def first_entry(text: str) -> Optional[LedgerEntry]:
    """Return the most recently inserted entry, or ``None`` for an empty table."""

    for row in tokenize(text):
        if row.kind is RowKind.DATA and row.entry is not None and row.entry.is_usable:
            return row.entry
    return None


def has_entry(text: str, date: str, patch_a: str, patch_b: Optional[str] = None) -> bool:
    """Return ``True`` if a row matches ``date`` and either patch representation."""

    patches = {patch_a} if patch_b is None else {patch_a, patch_b}
    return any(entry.date == date and entry.patch_raw in patches for entry in parse(text))


# --- render_row / render_table --------------------------------------------------


def _render_link(target: Optional[str]) -> str:
    return f"[{LINK_LABEL}]({target})" if target else ""


def render_row(entry: LedgerEntry) -> str:
    """Render ``entry`` as ``| date | patch | link | link | link |``."""

    cells = [entry.date, entry.patch_raw, *(_render_link(target) for target in entry.links)]
    return "| " + " | ".join(cells) + " |"


def render_table(entries: Sequence[LedgerEntry]) -> str:
    """Render a complete table (header, separator, rows) ending with a newline."""

    lines = [HEADER_LINE, SEPARATOR_LINE, *(render_row(entry) for entry in entries)]
    return "\n".join(lines) + "\n"


# --- insert_entry ---------------------------------------------------------------


def insert_entry(text: str, entry: LedgerEntry) -> str:
    """Return ``text`` with ``entry`` spliced in directly below the separator.

    An empty document becomes a fresh one-row table.  A non-empty document
    without a separator keeps its content and gains a new table block after a
    blank line.
    """

    if not text.strip():
        return render_table([entry])
    lines = _lines(text)
    separator_index = next(
        (i for i, line in enumerate(lines) if _is_separator(_strip_eol(line))), None
    )
    if separator_index is None:
        base = text if text.endswith(("\n", "\r")) else text + "\n"
        return base + "\n" + render_table([entry])
    separator = lines[separator_index]
    newline = separator[len(_strip_eol(separator)) :] or "\n"
    if not separator.endswith(("\n", "\r")):
        lines[separator_index] = separator + "\n"
        newline = "\n"
    lines.insert(separator_index + 1, render_row(entry) + newline)
    return "".join(lines)
