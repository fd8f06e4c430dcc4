"""
Crash-safe file writes.

Every write goes to a temp file in the target's directory, is fsynced and
then moved over the target with ``os.replace``. Where replace fails, a
swap is used: the old file is renamed aside, the new one renamed in, and
the aside copy deleted. Readers restore from the aside copy when a crash
left the main file missing.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ASIDE_SUFFIX = ".old"


def aside_path(path: Path) -> Path:
    return path.with_name(path.name + ASIDE_SUFFIX)


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write ``content`` to ``path`` so readers see the old or the new text, never a mix.

    Raises:
        OSError: If neither replace nor the swap fallback succeeds
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        try:
            os.replace(tmp, path)
        except OSError as e:
            logger.warning("os.replace failed for %s (%s); using swap fallback", path, e)
            _swap(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _swap(tmp: Path, path: Path) -> None:
    old = aside_path(path)
    if path.exists():
        if old.exists():
            old.unlink()
        path.rename(old)
    tmp.rename(path)
    old.unlink(missing_ok=True)


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, sort_keys=False) + "\n")


def read_text_with_recovery(path: Path) -> str | None:
    """
    Read ``path``, restoring it from the aside copy if a swap was interrupted.

    Returns:
        File content, or None when neither file exists
    """
    old = aside_path(path)
    if not path.exists() and old.exists():
        logger.warning("Restoring %s from %s", path, old)
        old.rename(path)
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


def read_json_with_recovery(path: Path) -> Any | None:
    """
    Raises:
        json.JSONDecodeError: If the file exists but is not valid JSON
    """
    text = read_text_with_recovery(path)
    return None if text is None else json.loads(text)
