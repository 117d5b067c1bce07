"""
Unified-diff hunk parsing.

Turns raw diff text (usually produced by a model, so possibly sloppy) into an
ordered list of :class:`Hunk` values. Only hunk bodies are interpreted here;
file headers and policy checks belong to :mod:`arcl.patch.validator`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .errors import ErrorKind, ParseError

HUNK_HEADER_RE = re.compile(r"@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class ChangeKind(Enum):
    CONTEXT = " "
    ADD = "+"
    REMOVE = "-"


@dataclass(frozen=True)
class LineChange:
    kind: ChangeKind
    text: str

    @property
    def in_old(self) -> bool:
        return self.kind is not ChangeKind.ADD

    @property
    def in_new(self) -> bool:
        return self.kind is not ChangeKind.REMOVE

    def render(self) -> str:
        return f"{self.kind.value}{self.text}"


@dataclass(frozen=True)
class Hunk:
    """One ``@@ -a,b +c,d @@`` block.

    ``old_start``/``old_count`` locate the replaced region of the original
    file (1-based). ``new_start``/``new_count`` are informational; the new
    lines are derived from ``changes``.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    changes: Tuple[LineChange, ...] = ()

    @property
    def old_lines(self) -> List[str]:
        return [c.text for c in self.changes if c.in_old]

    @property
    def new_lines(self) -> List[str]:
        return [c.text for c in self.changes if c.in_new]

    @property
    def header(self) -> str:
        return format_hunk_header(self.old_start, self.old_count, self.new_start, self.new_count)

    def describe(self) -> str:
        return f"{self.header} ({len(self.changes)} lines)"


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def format_hunk_header(old_start: int, old_count: int, new_start: int, new_count: int) -> str:
    return f"@@ -{old_start},{old_count} +{new_start},{new_count} @@"


def parse_hunk_header(line: str) -> Optional[Tuple[int, int, int, int]]:
    """Return ``(old_start, old_count, new_start, new_count)`` or None.

    Omitted counts default to 1, as in ``@@ -5 +5 @@``.
    """
    m = HUNK_HEADER_RE.search(line)
    if not m:
        return None
    old_start, old_count, new_start, new_count = m.groups()
    return (
        int(old_start),
        int(old_count) if old_count is not None else 1,
        int(new_start),
        int(new_count) if new_count is not None else 1,
    )


class _HunkBuilder:
    def __init__(self, header: Tuple[int, int, int, int]):
        self.header = header
        self.changes: List[LineChange] = []
        # Parallel to changes: True where the line was completely empty
        # rather than a single-space context line.
        self.bare: List[bool] = []

    def add(self, kind: ChangeKind, text: str, *, bare: bool = False) -> None:
        self.changes.append(LineChange(kind, text))
        self.bare.append(bare)

    def build(self) -> Hunk:
        old_start, old_count, new_start, new_count = self.header
        # Blank separator lines (or the diff's final newline) must not be
        # counted as context once the old side is already complete.
        old_seen = sum(1 for c in self.changes if c.in_old)
        while self.changes and self.bare[-1] and old_seen > old_count:
            self.changes.pop()
            self.bare.pop()
            old_seen -= 1
        return Hunk(old_start, old_count, new_start, new_count, tuple(self.changes))


def parse_hunks(diff_text: str) -> List[Hunk]:
    """Parse every hunk in ``diff_text``, in the order they appear.

    Raises:
        ParseError: ``INVALID_HUNK_HEADER`` for a malformed ``@@`` line,
            ``NO_HUNKS_FOUND`` when nothing could be extracted.
    """
    hunks: List[Hunk] = []
    current: Optional[_HunkBuilder] = None

    for line in normalize_newlines(diff_text).split("\n"):
        if line.startswith("@@"):
            if current is not None:
                hunks.append(current.build())
            header = parse_hunk_header(line)
            if header is None:
                raise ParseError(ErrorKind.INVALID_HUNK_HEADER, f"invalid hunk header: {line!r}")
            current = _HunkBuilder(header)
            continue
        if current is None:
            continue
        if line.startswith("+") and not line.startswith("+++"):
            current.add(ChangeKind.ADD, line[1:])
        elif line.startswith("-") and not line.startswith("---"):
            current.add(ChangeKind.REMOVE, line[1:])
        elif line.startswith(" "):
            current.add(ChangeKind.CONTEXT, line[1:])
        elif line == "":
            current.add(ChangeKind.CONTEXT, "", bare=True)
        # "\ No newline at end of file", stray file headers and prose are ignored

    if current is not None:
        hunks.append(current.build())
    if not hunks:
        raise ParseError(ErrorKind.NO_HUNKS_FOUND, "no hunks found")
    return hunks
