"""
UTF-8 file primitives shared by everything that touches disk.

Reads always decode as UTF-8, drop a leading BOM and normalise line endings
to LF. Writes encode UTF-8 without BOM, normalise to LF, and go through a
locked sibling temp file that is moved into place.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

import portalocker  # type: ignore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

BOM = "\ufeff"
LOCK_TIMEOUT = 5  # seconds


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def read_text_utf8(path: PathLike) -> str:
    """Read ``path`` as strict UTF-8, stripping a BOM and normalising EOLs.

    Raises:
        OSError: the file cannot be read.
        UnicodeDecodeError: the bytes are not valid UTF-8.
    """
    data = Path(path).read_bytes()
    text = data.decode("utf-8")
    if text.startswith(BOM):
        text = text[1:]
    return normalize_line_endings(text)


def write_text_utf8(path: PathLike, content: str) -> None:
    """Write ``content`` to ``path`` as LF-normalised UTF-8 without BOM.

    Raises:
        OSError: the temp file could not be written or moved into place.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    # Unique hidden sibling, so no existing file is ever reused as the temp file
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    os.close(fd)
    tmp = Path(tmp_name)
    payload = normalize_line_endings(content)
    if payload.startswith(BOM):
        payload = payload[1:]
    try:
        # Write bytes to avoid platform newline translation
        with portalocker.Lock(str(tmp), "wb", timeout=LOCK_TIMEOUT) as fp:
            fp.write(payload.encode("utf-8"))
        if target.exists():
            shutil.copymode(str(target), str(tmp))
        shutil.move(str(tmp), str(target))
    except portalocker.LockException as exc:
        tmp.unlink(missing_ok=True)
        raise OSError(f"Could not lock {tmp}: {exc}") from exc
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %d bytes to %s", len(payload), target)


def copy_file(src: PathLike, dest: PathLike) -> None:
    """Byte-for-byte copy, creating the destination directory if needed."""
    dest_path = Path(dest)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(str(src), str(dest_path))
