"""
Exclusive pipeline lock file.

The lock is a file created with ``O_CREAT | O_EXCL`` holding the owner's
pid, host and timestamp. A lock whose owner process is gone (same host),
or a foreign-host lock not refreshed within ``stale_after_s``, is
reclaimed. The lock is reentrant for the object that holds it.

Reclaiming is serialized through an OS-level lock on a companion
``<lock>.reclaim`` file (``fcntl.flock`` on Unix, ``msvcrt.locking`` on
Windows). The kernel drops that lock when its process dies, so a crashed
reclaimer never leaves it behind. Staleness is re-checked while holding
it, so a lock freshly created by another reclaimer is never deleted.

Example:
    >>> lock = PipelineLock(Path(".journeyforge/pipeline.lock"))
    >>> with lock:
    ...     # mutate pipeline state
    ...     pass
"""

import json
import logging
import os
import platform
import socket
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from journeyforge.domain.exceptions import LockUnavailable

logger = logging.getLogger(__name__)

RECLAIM_SUFFIX = ".reclaim"


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _try_os_lock(fd: int) -> bool:
    """Non-blocking exclusive OS lock on ``fd``; False when another process holds it."""
    if platform.system() == "Windows":
        import msvcrt

        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    import fcntl

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return False
    return True


def _os_unlock(fd: int) -> None:
    if platform.system() == "Windows":
        import msvcrt

        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fd, fcntl.LOCK_UN)


class PipelineLock:
    """
    File-based exclusive lock for state mutations.

    Args:
        path: Lock file path
        timeout_s: How long acquire() waits before raising LockUnavailable
        stale_after_s: Age after which a foreign-host lock is considered abandoned
        poll_interval_s: Sleep between acquisition attempts
    """

    def __init__(
        self,
        path: Path,
        timeout_s: float = 10.0,
        stale_after_s: float = 600.0,
        poll_interval_s: float = 0.05,
    ):
        self.path = path
        self.timeout_s = timeout_s
        self.stale_after_s = stale_after_s
        self.poll_interval_s = poll_interval_s
        self.pid = os.getpid()
        self.host = socket.gethostname()
        self._depth = 0

    @property
    def held(self) -> bool:
        return self._depth > 0

    @property
    def reclaim_path(self) -> Path:
        return self.path.with_name(self.path.name + RECLAIM_SUFFIX)

    def acquire(self) -> None:
        """
        Raises:
            LockUnavailable: If another live owner holds the lock past the timeout
        """
        if self._depth:
            self._depth += 1
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout_s
        while True:
            if self._try_create():
                self._depth = 1
                logger.debug("Acquired %s (pid=%d)", self.path, self.pid)
                return
            if self._reclaim_if_stale():
                continue
            if time.monotonic() >= deadline:
                raise LockUnavailable(str(self.path), self._holder_description())
            time.sleep(self.poll_interval_s)

    def release(self) -> None:
        if not self._depth:
            return
        self._depth -= 1
        if self._depth:
            return
        if self._owned():
            self.path.unlink(missing_ok=True)
            logger.debug("Released %s", self.path)
        else:
            logger.warning("Lock %s no longer owned by this process; leaving it", self.path)

    def refresh(self) -> None:
        """Bump the lock's mtime so long commands are not taken for abandoned."""
        if self._depth and self._owned():
            os.utime(self.path)

    def __enter__(self) -> "PipelineLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def read(self) -> dict[str, Any] | None:
        """Owner info from the lock file, or None when absent or unreadable."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _owned(self) -> bool:
        info = self.read()
        return info is not None and info.get("pid") == self.pid and info.get("host") == self.host

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        info = {
            "pid": self.pid,
            "host": self.host,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(info, f)
            f.flush()
            os.fsync(f.fileno())
        return True

    def is_stale(self) -> bool:
        """
        True when the holder is gone.

        On this host the holder's pid decides, however old the lock is. A
        foreign-host lock, or one still being written, is stale only once
        its mtime is older than ``stale_after_s``.
        """
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return False
        info = self.read()
        if info is not None:
            pid = info.get("pid")
            if info.get("host") == self.host and isinstance(pid, int):
                return not pid_alive(pid)
        return age > self.stale_after_s

    def _reclaim_if_stale(self) -> bool:
        """
        Delete the lock file if its holder is gone.

        Returns:
            True when a stale lock was removed and creation should be retried
        """
        if not self.is_stale():
            return False
        fd = os.open(self.reclaim_path, os.O_CREAT | os.O_WRONLY, 0o644)
        try:
            if not _try_os_lock(fd):
                return False  # Another process is reclaiming
            try:
                if not self.is_stale():
                    return False
                logger.warning(
                    "Reclaiming stale lock %s held by %s", self.path, self._holder_description()
                )
                self.path.unlink(missing_ok=True)
                return True
            finally:
                _os_unlock(fd)
        finally:
            os.close(fd)

    def _holder_description(self) -> str | None:
        info = self.read()
        if info is None:
            return None
        return f"{info.get('pid')}@{info.get('host')} since {info.get('timestamp')}"
