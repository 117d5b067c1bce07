"""
apply_diff.py
=============
Agent-facing tool that applies a model-written unified diff to one file.

Commands
--------
validate • preview • apply • undo

* ``validate`` runs the format checks and the user's policy, nothing else.
* ``preview`` additionally patches the file content in memory and returns it.
* ``apply`` goes through the transactional mutator: backup, patch, write,
  rollback on write failure.
* ``undo`` restores the file from a backup: an explicit one, the one recorded
  by the last successful apply, or the newest sibling ``.bak`` file.

Every command is journaled to the history file.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import PatchPolicy, load_policy, validate_against_policy
from ..patch import (
    ErrorKind,
    ValidationResult,
    apply_diff_to_file,
    apply_patch,
    find_backups,
    restore_from_backup,
    validate_diff_format,
)
from ..utils import file_io, history
from .base import BaseTool, ToolError, ToolResult

# ---------------------------------------------------------------------------
# Configuration & constants
# ---------------------------------------------------------------------------

_LOG = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Command enumeration
# ---------------------------------------------------------------------------


class Command(Enum):
    VALIDATE = "validate"
    PREVIEW = "preview"
    APPLY = "apply"
    UNDO = "undo"

    @classmethod
    def list(cls) -> List[str]:
        return [c.value for c in cls]


def check_diff(
    diff_text: Optional[str],
    target: Optional[str],
    policy: PatchPolicy,
    allow_rewrite: Optional[bool] = None,
) -> ValidationResult:
    """Format validation followed by the policy checks. First failure wins."""
    options = policy.validation_options(allow_full_rewrite=True if allow_rewrite else None)
    result = validate_diff_format(diff_text, target, options)
    if not result.valid:
        return result
    return validate_against_policy(diff_text or "", policy)


def resolve_backup(
    path: Path,
    explicit: Optional[str] = None,
    history_path: Optional[Path] = None,
) -> Optional[Path]:
    """Pick the backup to restore ``path`` from, or None if there is none."""
    if explicit:
        return Path(explicit).expanduser().resolve()
    recorded = history.last_backup_for(path, history_path=history_path)
    if recorded is not None:
        return recorded
    backups = find_backups(path)
    return backups[0] if backups else None


# ---------------------------------------------------------------------------
# Tool implementation
# ---------------------------------------------------------------------------


class ApplyDiffTool(BaseTool):
    """Applies single-file unified diffs with backup and rollback."""

    @property
    def name(self) -> str:
        return "apply_diff"

    @property
    def description(self) -> str:
        return (
            "Apply a unified diff to exactly one existing file. The diff must have "
            "one ---/+++ header pair naming the target file and at least one @@ hunk. "
            "Reply NO_CHANGES or REFUSE instead of a diff when appropriate. A backup "
            "is written before the file is changed and can be restored with undo."
        )

    def __init__(self, policy: Optional[PatchPolicy] = None, history_path: Optional[Path] = None):
        super().__init__(input_schema=None)
        self._policy = policy
        self._history_path = history_path

    @property
    def policy(self) -> PatchPolicy:
        if self._policy is None:
            self._policy = load_policy()
        return self._policy

    def to_params(self) -> Dict[str, Any]:
        """Expose the OpenAI function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "command": {"type": "string", "enum": Command.list()},
                        "path": {"type": "string"},
                        "diff": {
                            "type": "string",
                            "description": "Unified diff for the file at `path` (validate, preview, apply).",
                        },
                        "allow_rewrite": {
                            "type": "boolean",
                            "description": "Permit full-file deletions and sweeping rewrites.",
                        },
                        "backup": {
                            "type": "string",
                            "description": "Backup file to restore from (undo only).",
                        },
                    },
                    "required": ["command", "path"],
                },
            },
        }

    # ------------------------------------------------------------------
    # Public entrypoint
    # ------------------------------------------------------------------

    async def __call__(
        self,
        *,
        command: str,
        path: str,
        diff: Optional[str] = None,
        allow_rewrite: bool = False,
        backup: Optional[str] = None,
        **kwargs,
    ) -> ToolResult:
        _path = Path(path).expanduser().resolve()
        try:
            cmd_enum = self._validate_command(command)
            if cmd_enum is Command.VALIDATE:
                return self._cmd_validate(_path, diff, allow_rewrite)
            if cmd_enum is Command.PREVIEW:
                return self._cmd_preview(_path, diff, allow_rewrite)
            if cmd_enum is Command.APPLY:
                return self._cmd_apply(_path, diff, allow_rewrite)
            if cmd_enum is Command.UNDO:
                return self._cmd_undo(_path, backup)
            raise ToolError(f"Unhandled command {cmd_enum}")
        except Exception as exc:
            _LOG.error("ApplyDiffTool failure", exc_info=True)
            return ToolResult(
                output=f"ApplyDiffTool error running {command} on {_path}: {exc}",
                error=str(exc),
                tool_name=self.name,
                command=command,
            )

    # ------------------------------------------------------------------
    # Command validation
    # ------------------------------------------------------------------

    def _validate_command(self, cmd: str) -> Command:
        try:
            return Command(cmd)
        except ValueError:
            raise ToolError(
                f"Invalid command '{cmd}'. Valid commands: {', '.join(Command.list())}"
            )

    def _check(self, path: Path, diff: Optional[str], allow_rewrite: bool) -> ValidationResult:
        return check_diff(diff, path.name, self.policy, allow_rewrite)

    def _result(self, command: Command, **kwargs) -> ToolResult:
        return ToolResult(tool_name=self.name, command=command.value, **kwargs)

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    def _cmd_validate(self, path: Path, diff: Optional[str], allow_rewrite: bool) -> ToolResult:
        verdict = self._check(path, diff, allow_rewrite)
        if verdict.no_changes:
            return self._result(Command.VALIDATE, output="No changes requested")
        if not verdict.valid:
            return self._result(Command.VALIDATE, error=verdict.error)
        return self._result(Command.VALIDATE, output=f"Diff is valid for {path.name}")

    def _cmd_preview(self, path: Path, diff: Optional[str], allow_rewrite: bool) -> ToolResult:
        verdict = self._check(path, diff, allow_rewrite)
        if verdict.no_changes:
            return self._result(Command.PREVIEW, output="No changes requested")
        if not verdict.valid:
            return self._result(Command.PREVIEW, error=verdict.error)
        if not path.is_file():
            raise ToolError(f"File not found: {path}")

        patch = apply_patch(file_io.read_text_utf8(path), diff or "")
        history.record_operation(
            "preview",
            path,
            history.RESULT_DRY_RUN if patch.succeeded else history.RESULT_FAILED,
            error=patch.error,
            history_path=self._history_path,
        )
        if not patch.succeeded:
            return self._result(Command.PREVIEW, error=f"Patch failed: {patch.error}")
        return self._result(
            Command.PREVIEW,
            output=patch.patched_content,
            warnings=tuple(patch.warnings),
        )

    def _cmd_apply(self, path: Path, diff: Optional[str], allow_rewrite: bool) -> ToolResult:
        verdict = self._check(path, diff, allow_rewrite)
        if verdict.no_changes:
            history.record_operation(
                "apply", path, history.RESULT_NO_CHANGES, history_path=self._history_path
            )
            return self._result(Command.APPLY, output="No changes requested")
        if not verdict.valid:
            history.record_operation(
                "apply",
                path,
                history.RESULT_REJECTED,
                error=verdict.error,
                history_path=self._history_path,
            )
            return self._result(Command.APPLY, error=verdict.error)

        outcome = apply_diff_to_file(path, diff or "")
        history.record_operation(
            "apply",
            path,
            history.RESULT_SUCCESS if outcome.succeeded else history.RESULT_FAILED,
            error=outcome.error,
            backup_path=outcome.backup_path,
            history_path=self._history_path,
        )
        backup = str(outcome.backup_path) if outcome.backup_path else None
        if not outcome.succeeded:
            if outcome.kind is ErrorKind.ROLLBACK_FAILED:
                _LOG.critical("Manual recovery needed for %s from %s", path, backup)
            return self._result(
                Command.APPLY,
                error=outcome.error,
                backup_path=backup,
                warnings=tuple(outcome.warnings),
            )
        return self._result(
            Command.APPLY,
            output=f"Applied diff to {path} (backup: {backup})",
            backup_path=backup,
            warnings=tuple(outcome.warnings),
        )

    def _cmd_undo(self, path: Path, explicit: Optional[str]) -> ToolResult:
        source = resolve_backup(path, explicit, history_path=self._history_path)
        if source is None or not source.is_file():
            raise ToolError(f"No backup found for {path}")
        if not restore_from_backup(path, source):
            history.record_operation(
                "undo",
                path,
                history.RESULT_FAILED,
                error=f"Failed to restore from {source}",
                backup_path=source,
                history_path=self._history_path,
            )
            return self._result(Command.UNDO, error=f"Failed to restore {path} from {source}")
        history.record_operation(
            "undo", path, history.RESULT_SUCCESS, backup_path=source, history_path=self._history_path
        )
        return self._result(
            Command.UNDO, output=f"Restored {path} from {source}", backup_path=str(source)
        )
