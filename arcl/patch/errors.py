from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Every way a diff can be rejected or an application can fail."""

    # Validator
    EMPTY_DIFF = "empty_diff"
    PROVIDER_ERROR = "provider_error"
    MISSING_HEADERS = "missing_headers"
    MISSING_HUNK_HEADER = "missing_hunk_header"
    MULTI_FILE_DIFF_REJECTED = "multi_file_diff_rejected"
    RENAME_REJECTED = "rename_rejected"
    TARGET_MISMATCH = "target_mismatch"
    FULL_DELETION_REJECTED = "full_deletion_rejected"
    SUSPECTED_FULL_REWRITE = "suspected_full_rewrite"
    POLICY_VIOLATION = "policy_violation"
    CONFIG_ERROR = "config_error"
    # Sentinel outcomes, not errors
    NO_CHANGES_REQUESTED = "no_changes_requested"
    MODEL_REFUSED = "model_refused"
    # Parser
    INVALID_HUNK_HEADER = "invalid_hunk_header"
    NO_HUNKS_FOUND = "no_hunks_found"
    # Applier
    NO_VALID_HUNKS = "no_valid_hunks"
    # Mutator
    FILE_NOT_FOUND = "file_not_found"
    READ_FAILED = "read_failed"
    BACKUP_FAILED = "backup_failed"
    PATCH_FAILED = "patch_failed"
    WRITE_FAILED = "write_failed"
    ROLLBACK_FAILED = "rollback_failed"

    @property
    def is_sentinel(self) -> bool:
        return self in (ErrorKind.NO_CHANGES_REQUESTED, ErrorKind.MODEL_REFUSED)

    @property
    def is_critical(self) -> bool:
        return self is ErrorKind.ROLLBACK_FAILED


class DiffError(Exception):
    """Base exception for the patch core. Never escapes a public entry point."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(self.message)

    def __str__(self):
        return self.message


class ParseError(DiffError):
    """Raised by the hunk parser."""


class PatchError(DiffError):
    """Raised while applying hunks to in-memory content."""
