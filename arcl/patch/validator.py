"""
Diff format validation.

A cheap gate run before any parsing or file access. It recognises the two
sentinel replies a model may give instead of a diff, enforces the
one-file-per-diff rule and refuses sweeping rewrites unless the caller
explicitly opts in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import List, Optional, Tuple

from .errors import DiffError, ErrorKind
from .hunks import HUNK_HEADER_RE, normalize_newlines, parse_hunk_header

logger = logging.getLogger(__name__)

SENTINEL_NO_CHANGES = "NO_CHANGES"
SENTINEL_REFUSE = "REFUSE"
PROVIDER_ERROR_PREFIX = "ERROR:"


class DiffOutcome(Enum):
    """What a raw model response turned out to be."""

    DIFF = "diff"
    NO_CHANGES = "no_changes"
    REFUSE = "refuse"
    ERROR = "error"


@dataclass(frozen=True)
class RewriteThresholds:
    """Tunable limits for the full-rewrite heuristic.

    A diff is a suspected rewrite when deletions and additions both exceed
    ``min_changed_lines`` and at least one hunk spans more than
    ``min_hunk_lines`` lines on both its old and new side.
    """

    min_changed_lines: int = 20
    min_hunk_lines: int = 10


@dataclass(frozen=True)
class ValidationOptions:
    allow_full_rewrite: bool = False
    thresholds: RewriteThresholds = field(default_factory=RewriteThresholds)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def from_error(cls, err: DiffError) -> "ValidationResult":
        return cls(valid=False, error=err.message, kind=err.kind)

    @property
    def outcome(self) -> DiffOutcome:
        if self.kind is ErrorKind.NO_CHANGES_REQUESTED:
            return DiffOutcome.NO_CHANGES
        if self.kind is ErrorKind.MODEL_REFUSED:
            return DiffOutcome.REFUSE
        if self.kind is ErrorKind.PROVIDER_ERROR:
            return DiffOutcome.ERROR
        return DiffOutcome.DIFF

    @property
    def no_changes(self) -> bool:
        return self.kind is ErrorKind.NO_CHANGES_REQUESTED

    @property
    def refused(self) -> bool:
        return self.kind is ErrorKind.MODEL_REFUSED


def classify_response(text: Optional[str]) -> DiffOutcome:
    """Map a raw provider reply onto the closed set of outcomes.

    Sentinels match after surrounding whitespace is stripped, so a reply of
    ``"NO_CHANGES\n"`` counts as ``NO_CHANGES``. Any other text around the
    sentinel makes it an ordinary diff candidate.
    """
    stripped = (text or "").strip()
    if stripped == SENTINEL_NO_CHANGES:
        return DiffOutcome.NO_CHANGES
    if stripped == SENTINEL_REFUSE:
        return DiffOutcome.REFUSE
    if not stripped or stripped.startswith(PROVIDER_ERROR_PREFIX):
        return DiffOutcome.ERROR
    return DiffOutcome.DIFF


def validate_diff_format(
    diff_text: Optional[str],
    target_file_name: Optional[str] = None,
    options: Optional[ValidationOptions] = None,
) -> ValidationResult:
    """Check ``diff_text`` against the format and single-file contracts.

    Checks run in a fixed order and the first failure wins: sentinels,
    header presence, hunk header presence, single-file count, header
    filename agreement, target match, then the rewrite heuristics.
    """
    opts = options or ValidationOptions()
    try:
        _check(diff_text, target_file_name, opts)
    except DiffError as err:
        if not err.kind.is_sentinel:
            logger.info("Diff rejected (%s): %s", err.kind.value, err.message)
        return ValidationResult.from_error(err)
    return ValidationResult(valid=True)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def _check(diff_text: Optional[str], target: Optional[str], opts: ValidationOptions) -> None:
    if not diff_text or not isinstance(diff_text, str) or not diff_text.strip():
        raise DiffError(ErrorKind.EMPTY_DIFF, "Diff is empty or not a string")

    outcome = classify_response(diff_text)
    if outcome is DiffOutcome.NO_CHANGES:
        raise DiffError(ErrorKind.NO_CHANGES_REQUESTED, SENTINEL_NO_CHANGES)
    if outcome is DiffOutcome.REFUSE:
        raise DiffError(ErrorKind.MODEL_REFUSED, "REFUSE: model refused to make changes")
    if outcome is DiffOutcome.ERROR:
        raise DiffError(ErrorKind.PROVIDER_ERROR, diff_text.strip())

    if "---" not in diff_text or "+++" not in diff_text:
        raise DiffError(ErrorKind.MISSING_HEADERS, "Missing unified diff headers (--- and +++)")

    if not HUNK_HEADER_RE.search(diff_text):
        raise DiffError(
            ErrorKind.MISSING_HUNK_HEADER,
            "Invalid or missing hunk header (expected @@ -N,N +N,N @@)",
        )

    lines = normalize_newlines(diff_text).split("\n")
    minus_headers = [ln for ln in lines if ln.startswith("--- ")]
    plus_headers = [ln for ln in lines if ln.startswith("+++ ")]
    if len(minus_headers) != 1 or len(plus_headers) != 1:
        raise DiffError(
            ErrorKind.MULTI_FILE_DIFF_REJECTED,
            f"Invalid diff: expected exactly 1 file, found {len(minus_headers)} --- headers "
            f"and {len(plus_headers)} +++ headers",
        )

    minus_file = _header_filename(minus_headers[0])
    plus_file = _header_filename(plus_headers[0])
    if not minus_file or not plus_file:
        raise DiffError(ErrorKind.MISSING_HEADERS, "Could not parse filenames from diff headers")
    if minus_file != plus_file:
        raise DiffError(
            ErrorKind.RENAME_REJECTED,
            f"Diff headers mismatch: --- {minus_file} vs +++ {plus_file}",
        )

    if target:
        expected = _basename(target)
        if _basename(minus_file) != expected:
            raise DiffError(
                ErrorKind.TARGET_MISMATCH,
                f"Diff target mismatch: expected {expected}, got {minus_file}",
            )

    if not opts.allow_full_rewrite:
        _check_rewrite(lines, opts.thresholds)


def _header_filename(header: str) -> Optional[str]:
    parts = header.split()
    if len(parts) < 2:
        return None
    name = parts[1]
    if name.startswith(("a/", "b/")):
        name = name[2:]
    return name or None


def _basename(name: str) -> str:
    return PurePath(name.replace("\\", "/")).name


def _hunk_counts(lines: List[str]) -> List[Tuple[int, int]]:
    counts = []
    for ln in lines:
        if not ln.startswith("@@"):
            continue
        header = parse_hunk_header(ln)
        if header is not None:
            counts.append((header[1], header[3]))
    return counts


def _check_rewrite(lines: List[str], thresholds: RewriteThresholds) -> None:
    counts = _hunk_counts(lines)
    for old_count, new_count in counts:
        if old_count > 0 and new_count == 0:
            raise DiffError(
                ErrorKind.FULL_DELETION_REJECTED,
                "Full-file deletion detected. Use --allow-rewrite to permit.",
            )

    deletions, additions = _count_changes(lines)
    floor = thresholds.min_changed_lines
    if deletions <= floor or additions <= floor:
        return
    large_hunk = any(
        old > thresholds.min_hunk_lines and new > thresholds.min_hunk_lines for old, new in counts
    )
    if large_hunk and min(deletions, additions) > floor:
        raise DiffError(
            ErrorKind.SUSPECTED_FULL_REWRITE,
            f"Suspicious full rewrite: {deletions} deletions, {additions} additions. "
            "Use --allow-rewrite to permit.",
        )


def count_changed_lines(diff_text: str) -> Tuple[int, int]:
    """Return ``(deletions, additions)`` ignoring file header lines."""
    return _count_changes(normalize_newlines(diff_text).split("\n"))


def _count_changes(lines: List[str]) -> Tuple[int, int]:
    deletions = sum(1 for ln in lines if ln.startswith("-") and not ln.startswith("---"))
    additions = sum(1 for ln in lines if ln.startswith("+") and not ln.startswith("+++"))
    return deletions, additions

