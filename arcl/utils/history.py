"""
Append-only journal of diff operations, stored as a JSON list in
``<state dir>/history.json``.

Journaling is best effort: failures are logged and never propagate into the
operation being recorded.
"""

import json
import datetime
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from arcl.config import get_history_path
from arcl.utils import file_io

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "success"
RESULT_REJECTED = "rejected"
RESULT_FAILED = "failed"
RESULT_DRY_RUN = "dry-run"
RESULT_NO_CHANGES = "no-changes"


def read_history(history_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Return all journal entries, oldest first.

    A missing or unreadable journal yields an empty list.
    """
    path = history_path or get_history_path()
    if not path.exists():
        return []
    try:
        entries = json.loads(file_io.read_text_utf8(path))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Error reading history file {path}: {e}", exc_info=True)
        return []
    if not isinstance(entries, list):
        logger.error(f"History file {path} is not a JSON list; ignoring it")
        return []
    return entries


def record_operation(
    command: str,
    files: Union[str, Path, Sequence[Union[str, Path]]],
    result: str,
    error: Optional[str] = None,
    backup_path: Optional[Union[str, Path]] = None,
    instruction: Optional[str] = None,
    history_path: Optional[Path] = None,
) -> bool:
    """
    Append one entry to the journal.

    Args:
        command: Operation name ('apply', 'validate', 'undo', ...)
        files: File or files the operation touched
        result: One of success, rejected, failed, dry-run, no-changes
        error: Error message when the operation did not succeed
        backup_path: Backup created by the operation, if any
        instruction: Free-text note, typically the user's request

    Returns:
        True if the entry was written.
    """
    path = history_path or get_history_path()
    if isinstance(files, (str, Path)):
        files = [files]

    entry: Dict[str, Any] = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "command": command,
        "files": [str(f) for f in files],
        "result": result,
    }
    if instruction:
        entry["instruction"] = instruction
    if backup_path is not None:
        entry["backup_path"] = str(backup_path)
    if error:
        entry["error"] = error

    entries = read_history(path)
    entries.append(entry)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_io.write_text_utf8(path, json.dumps(entries, indent=2))
    except OSError as write_error:
        logger.error(f"Error writing to history file {path}: {write_error}", exc_info=True)
        return False
    return True


def last_backup_for(
    file_path: Union[str, Path], history_path: Optional[Path] = None
) -> Optional[Path]:
    """Backup recorded by the most recent successful apply to ``file_path``.

    Entries whose backup no longer exists on disk are skipped.
    """
    target = str(Path(file_path).expanduser().resolve())
    for entry in reversed(read_history(history_path)):
        if entry.get("command") != "apply" or entry.get("result") != RESULT_SUCCESS:
            continue
        if target not in entry.get("files", []):
            continue
        backup = entry.get("backup_path")
        if backup and Path(backup).is_file():
            return Path(backup)
    return None
