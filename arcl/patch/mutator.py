"""
Transactional application of a diff to a file on disk.

Sequence per call: check file, read, back up, patch in memory, write, and
roll back from the backup if the write fails. A backup always exists before
the original bytes are touched, and the patch is computed entirely off the
live file, so the write itself is the only window of risk.

Backups are siblings named ``<file>.bak``, or ``<file>.<epochMillis>.bak``
when ``<file>.bak`` already exists. Two calls inside the same millisecond
can still pick the same name. They are left on disk after success.

There is no locking across processes: concurrent calls on the same file
race on both backup naming and content.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from ..utils import file_io
from .applier import WarningCallback, apply_patch
from .errors import DiffError, ErrorKind

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

BACKUP_SUFFIX = ".bak"


class MutationState(Enum):
    """Where a call to :func:`apply_diff_to_file` stopped."""

    IDLE = "idle"
    DONE = "done"
    ABORTED_NO_BACKUP = "aborted_no_backup"
    ABORTED_PATCH_FAILED = "aborted_patch_failed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


@dataclass
class ApplyResult:
    succeeded: bool
    backup_path: Optional[Path] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    state: MutationState = MutationState.IDLE
    warnings: List[str] = field(default_factory=list)

    @property
    def critical(self) -> bool:
        return self.kind is ErrorKind.ROLLBACK_FAILED

    def __bool__(self):
        return self.succeeded


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


def backup_path_for(file_path: PathLike) -> Path:
    """Pick the backup location for ``file_path`` without creating it."""
    path = Path(file_path)
    plain = path.with_name(path.name + BACKUP_SUFFIX)
    if not plain.exists():
        return plain
    millis = int(time.time() * 1000)
    return path.with_name(f"{path.name}.{millis}{BACKUP_SUFFIX}")


def create_backup(file_path: PathLike) -> Path:
    """Copy ``file_path`` byte-for-byte to its backup location.

    Raises:
        DiffError: ``BACKUP_FAILED`` if the copy cannot be made.
    """
    target = backup_path_for(file_path)
    if target.name != Path(file_path).name + BACKUP_SUFFIX:
        logger.warning("Backup exists, using timestamped backup: %s", target)
    try:
        file_io.copy_file(file_path, target)
    except OSError as exc:
        logger.error("Failed to create backup of %s: %s", file_path, exc)
        raise DiffError(ErrorKind.BACKUP_FAILED, f"Failed to create backup - aborting for safety: {exc}") from exc
    logger.info("Created backup: %s", target)
    return target


def find_backups(file_path: PathLike) -> List[Path]:
    """List existing backups of ``file_path``, newest first."""
    path = Path(file_path).resolve()
    pattern = re.compile(rf"^{re.escape(path.name)}(?:\.(\d+))?{re.escape(BACKUP_SUFFIX)}$")
    found = []
    if not path.parent.is_dir():
        return found
    for candidate in path.parent.iterdir():
        m = pattern.match(candidate.name)
        if m and candidate.is_file():
            found.append((candidate.stat().st_mtime, int(m.group(1) or 0), candidate))
    found.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [c for _, _, c in found]


def restore_from_backup(file_path: PathLike, backup_path: PathLike) -> bool:
    """Copy ``backup_path`` back over ``file_path``. Returns success."""
    try:
        file_io.copy_file(backup_path, file_path)
    except OSError as exc:
        logger.error("Failed to restore %s from backup %s: %s", file_path, backup_path, exc)
        return False
    logger.info("Restored file from backup: %s", file_path)
    return True


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


def apply_diff_to_file(
    file_path: PathLike,
    diff_text: str,
    *,
    on_warning: Optional[WarningCallback] = None,
) -> ApplyResult:
    """Apply ``diff_text`` to ``file_path`` with backup and rollback.

    The diff is expected to have passed
    :func:`arcl.patch.validator.validate_diff_format` already. Every outcome
    is returned as an :class:`ApplyResult`; nothing is raised.
    """
    path = Path(file_path).expanduser().resolve()

    if not path.is_file():
        return ApplyResult(
            succeeded=False,
            error=f"File not found: {path}",
            kind=ErrorKind.FILE_NOT_FOUND,
        )

    try:
        original = file_io.read_text_utf8(path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to read %s: %s", path, exc)
        return ApplyResult(
            succeeded=False,
            error=f"Failed to read file: {exc}",
            kind=ErrorKind.READ_FAILED,
        )

    try:
        backup = create_backup(path)
    except DiffError as err:
        return ApplyResult(
            succeeded=False,
            error=err.message,
            kind=err.kind,
            state=MutationState.ABORTED_NO_BACKUP,
        )

    patch = apply_patch(original, diff_text, on_warning=on_warning)
    if not patch.succeeded:
        logger.warning("Patch failed for %s: %s", path, patch.error)
        return ApplyResult(
            succeeded=False,
            backup_path=backup,
            error=f"Patch failed: {patch.error}",
            kind=ErrorKind.PATCH_FAILED,
            state=MutationState.ABORTED_PATCH_FAILED,
            warnings=patch.warnings,
        )
    logger.debug("Patched %s in memory", path)

    try:
        file_io.write_text_utf8(path, patch.patched_content or "")
    except OSError as exc:
        return _rollback(path, backup, exc, patch.warnings)

    logger.info("Applied diff to: %s (backup at %s)", path, backup)
    return ApplyResult(
        succeeded=True,
        backup_path=backup,
        state=MutationState.DONE,
        warnings=patch.warnings,
    )


def _rollback(path: Path, backup: Path, exc: OSError, warnings: List[str]) -> ApplyResult:
    logger.error("Write failed for %s: %s. Rolling back...", path, exc)
    if restore_from_backup(path, backup):
        logger.info("Rollback successful for %s", path)
        return ApplyResult(
            succeeded=False,
            backup_path=backup,
            error=f"Write failed: {exc}. Rolled back from {backup}.",
            kind=ErrorKind.WRITE_FAILED,
            state=MutationState.ROLLED_BACK,
            warnings=warnings,
        )
    logger.critical("CRITICAL: rollback failed for %s. Manual recovery needed from: %s", path, backup)
    return ApplyResult(
        succeeded=False,
        backup_path=backup,
        error=f"CRITICAL: rollback failed after write error ({exc}). Manual recovery needed from: {backup}",
        kind=ErrorKind.ROLLBACK_FAILED,
        state=MutationState.ROLLBACK_FAILED,
        warnings=warnings,
    )
