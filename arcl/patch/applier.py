"""
Pure application of parsed hunks to in-memory file content.

No I/O happens here. Context lines that do not match the original are
reported as warnings and application carries on: model-written diffs
routinely drift by whitespace or a line number, and rejecting them outright
makes the assistant unusable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .errors import DiffError, ErrorKind, PatchError
from .hunks import ChangeKind, Hunk, format_hunk_header, normalize_newlines, parse_hunks

logger = logging.getLogger(__name__)

WarningCallback = Callable[[str], None]


@dataclass
class PatchResult:
    succeeded: bool
    patched_content: Optional[str] = None
    failed_hunks: List[str] = field(default_factory=list)
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    warnings: List[str] = field(default_factory=list)

    def __bool__(self):
        return self.succeeded


class _Diagnostics:
    def __init__(self, on_warning: Optional[WarningCallback]):
        self.messages: List[str] = []
        self._on_warning = on_warning

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.messages.append(message)
        if self._on_warning is not None:
            self._on_warning(message)


def apply_hunks(
    original_content: str,
    hunks: Sequence[Hunk],
    *,
    on_warning: Optional[WarningCallback] = None,
    warnings: Optional[List[str]] = None,
) -> str:
    """Apply ``hunks`` to ``original_content`` and return the new content.

    Hunks are applied bottom-up (descending ``old_start``) so earlier splices
    never shift the indices later hunks rely on. The original's trailing
    newline and CRLF convention are restored on the way out.

    Raises:
        PatchError: ``NO_VALID_HUNKS`` if ``hunks`` is empty.
    """
    if not hunks:
        raise PatchError(ErrorKind.NO_VALID_HUNKS, "No valid hunks found in diff")

    diag = _Diagnostics(on_warning)
    uses_crlf = "\r\n" in original_content
    normalized = normalize_newlines(original_content)
    had_trailing_newline = normalized.endswith("\n")

    lines = normalized.split("\n")
    if had_trailing_newline:
        lines.pop()

    for hunk in sorted(hunks, key=lambda h: h.old_start, reverse=True):
        _splice_hunk(lines, hunk, diag)

    result = "\n".join(lines)
    if lines and had_trailing_newline:
        result += "\n"
    if uses_crlf:
        result = result.replace("\n", "\r\n")

    if warnings is not None:
        warnings.extend(diag.messages)
    return result


def _splice_hunk(lines: List[str], hunk: Hunk, diag: _Diagnostics) -> None:
    start = max(hunk.old_start - 1, 0)
    if start > len(lines):
        diag.warn(
            f"Hunk {hunk.header} starts past end of file ({len(lines)} lines); appending"
        )
        start = len(lines)

    replacement: List[str] = []
    cursor = start
    for change in hunk.changes:
        if change.kind is ChangeKind.CONTEXT:
            if cursor < len(lines):
                expected = lines[cursor].strip()
                actual = change.text.strip()
                if expected != actual:
                    diag.warn(
                        f'Context mismatch at line {cursor + 1}: expected "{expected}", got "{actual}"'
                    )
                cursor += 1
            replacement.append(change.text)
        elif change.kind is ChangeKind.ADD:
            replacement.append(change.text)
        else:
            cursor += 1

    lines[start : start + hunk.old_count] = replacement


def apply_patch(
    original_content: str,
    diff_text: str,
    *,
    on_warning: Optional[WarningCallback] = None,
) -> PatchResult:
    """Parse ``diff_text`` and apply it to ``original_content``.

    Never raises; every failure is reported through the returned
    :class:`PatchResult`.
    """
    try:
        hunks = parse_hunks(diff_text)
    except DiffError as err:
        if err.kind is ErrorKind.INVALID_HUNK_HEADER:
            return PatchResult(
                succeeded=False,
                failed_hunks=["Invalid hunk header"],
                error="Invalid hunk header format",
                kind=err.kind,
            )
        return PatchResult(
            succeeded=False,
            error="No valid hunks found in diff",
            kind=ErrorKind.NO_VALID_HUNKS,
        )

    warnings: List[str] = []
    try:
        patched = apply_hunks(original_content, hunks, on_warning=on_warning, warnings=warnings)
    except DiffError as err:
        return PatchResult(
            succeeded=False,
            failed_hunks=[h.describe() for h in hunks],
            error=err.message,
            kind=err.kind,
            warnings=warnings,
        )
    return PatchResult(succeeded=True, patched_content=patched, warnings=warnings)


def reverse_diff(diff_text: str) -> str:
    """Build the inverse of a single-file diff.

    Added and removed lines swap, as do the old and new header ranges, so
    applying the result to patched content restores the original.
    """
    lines = normalize_newlines(diff_text).split("\n")
    minus = next((ln for ln in lines if ln.startswith("--- ")), None)
    plus = next((ln for ln in lines if ln.startswith("+++ ")), None)

    out: List[str] = []
    if minus is not None and plus is not None:
        out.append("--- " + plus[4:])
        out.append("+++ " + minus[4:])

    # New positions shift as earlier hunks change length, so recompute them
    # from the old positions walking top-down.
    offset = 0
    for hunk in sorted(parse_hunks(diff_text), key=lambda h: h.old_start):
        new_start = hunk.old_start + offset
        out.append(format_hunk_header(new_start, len(hunk.new_lines), hunk.old_start, len(hunk.old_lines)))
        for change in hunk.changes:
            if change.kind is ChangeKind.ADD:
                out.append("-" + change.text)
            elif change.kind is ChangeKind.REMOVE:
                out.append("+" + change.text)
            else:
                out.append(change.render())
        offset += len(hunk.new_lines) - len(hunk.old_lines)
    return "\n".join(out) + "\n"
