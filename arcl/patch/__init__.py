"""Diff parsing, validation and transactional application."""

from .applier import PatchResult, apply_hunks, apply_patch, reverse_diff
from .errors import DiffError, ErrorKind, ParseError, PatchError
from .hunks import ChangeKind, Hunk, LineChange, parse_hunk_header, parse_hunks
from .mutator import (
    ApplyResult,
    MutationState,
    apply_diff_to_file,
    create_backup,
    find_backups,
    restore_from_backup,
)
from .validator import (
    DiffOutcome,
    RewriteThresholds,
    ValidationOptions,
    ValidationResult,
    classify_response,
    validate_diff_format,
)

__all__ = [
    "ApplyResult",
    "ChangeKind",
    "DiffError",
    "DiffOutcome",
    "ErrorKind",
    "Hunk",
    "LineChange",
    "MutationState",
    "ParseError",
    "PatchError",
    "PatchResult",
    "RewriteThresholds",
    "ValidationOptions",
    "ValidationResult",
    "apply_diff_to_file",
    "apply_hunks",
    "apply_patch",
    "classify_response",
    "create_backup",
    "find_backups",
    "parse_hunk_header",
    "parse_hunks",
    "restore_from_backup",
    "reverse_diff",
    "validate_diff_format",
]
