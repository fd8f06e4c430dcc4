"""Tests for PipelineLock."""

import json
import os
import socket
import time
from pathlib import Path

import pytest

from journeyforge.domain.exceptions import ConcurrencyConflict, LockUnavailable
from journeyforge.infrastructure.persistence.lock import PipelineLock, pid_alive

DEAD_PID = 99_999_999


def write_lock(path: Path, pid: int, host: str | None = None) -> None:
    info = {
        "pid": pid,
        "host": host or socket.gethostname(),
        "timestamp": "2026-01-01T00:00:00+00:00",
    }
    path.write_text(json.dumps(info), encoding="utf-8")


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "pipeline.lock"


class TestPipelineLock:
    def test_acquire_writes_owner_info(self, lock_path: Path) -> None:
        lock = PipelineLock(lock_path)
        with lock:
            info = lock.read()
            assert info["pid"] == os.getpid()
            assert info["host"] == socket.gethostname()
            assert lock.held
        assert not lock_path.exists()
        assert not lock.held

    def test_reentrant_for_the_holder(self, lock_path: Path) -> None:
        lock = PipelineLock(lock_path)
        with lock:
            with lock:
                assert lock_path.exists()
            assert lock_path.exists()
        assert not lock_path.exists()

    def test_second_holder_times_out(self, lock_path: Path) -> None:
        first = PipelineLock(lock_path)
        second = PipelineLock(lock_path, timeout_s=0.1, poll_interval_s=0.01)
        with first:
            with pytest.raises(LockUnavailable, match="could not acquire lock") as exc_info:
                second.acquire()
        assert exc_info.value.retryable
        assert isinstance(exc_info.value, ConcurrencyConflict)
        assert f"{os.getpid()}@" in exc_info.value.holder

    def test_reclaims_lock_of_dead_process(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        write_lock(lock_path, DEAD_PID)
        lock = PipelineLock(lock_path, timeout_s=0.1)
        assert lock.is_stale()
        with lock:
            assert lock.read()["pid"] == os.getpid()

    def test_reclaims_lock_past_stale_age(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        write_lock(lock_path, os.getpid(), host="elsewhere")
        old = time.time() - 3600
        os.utime(lock_path, (old, old))
        lock = PipelineLock(lock_path, timeout_s=0.1, stale_after_s=60)
        with lock:
            assert lock.read()["host"] == socket.gethostname()

    def test_live_local_holder_is_not_stale_however_old(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        write_lock(lock_path, os.getpid())
        old = time.time() - 3600
        os.utime(lock_path, (old, old))
        assert not PipelineLock(lock_path, stale_after_s=60).is_stale()

    def test_refresh_bumps_mtime_of_held_lock(self, lock_path: Path) -> None:
        lock = PipelineLock(lock_path)
        with lock:
            old = time.time() - 3600
            os.utime(lock_path, (old, old))
            lock.refresh()
            assert time.time() - lock_path.stat().st_mtime < 60

    def test_foreign_host_lock_is_not_stale_while_fresh(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        write_lock(lock_path, DEAD_PID, host="elsewhere")
        assert not PipelineLock(lock_path).is_stale()

    def test_release_leaves_lock_taken_over_by_another_owner(self, lock_path: Path) -> None:
        lock = PipelineLock(lock_path)
        lock.acquire()
        write_lock(lock_path, os.getpid() + 1, host="elsewhere")
        lock.release()
        assert lock_path.exists()

    def test_release_without_acquire_is_a_no_op(self, lock_path: Path) -> None:
        PipelineLock(lock_path).release()
        assert not lock_path.exists()

    def test_unreadable_lock_reads_none(self, lock_path: Path) -> None:
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text("garbage", encoding="utf-8")
        assert PipelineLock(lock_path).read() is None


class TestPidAlive:
    def test_current_process(self) -> None:
        assert pid_alive(os.getpid())

    def test_invalid_and_missing(self) -> None:
        assert not pid_alive(0)
        assert not pid_alive(DEAD_PID)


class TestStaleReclaim:
    """Reclaiming an abandoned lock leaves exactly one owner."""

    @pytest.fixture
    def dead_lock(self, lock_path: Path) -> Path:
        lock_path.parent.mkdir(parents=True)
        write_lock(lock_path, DEAD_PID)
        return lock_path

    def test_second_reclaimer_does_not_delete_the_new_lock(self, dead_lock: Path) -> None:
        first = PipelineLock(dead_lock)
        second = PipelineLock(dead_lock)
        assert first.is_stale() and second.is_stale()

        assert first._reclaim_if_stale()
        assert first._try_create()

        assert not second._reclaim_if_stale()
        assert not second._try_create()
        assert first.read()["pid"] == os.getpid()

    def test_waits_while_another_process_is_reclaiming(self, dead_lock: Path) -> None:
        fcntl = pytest.importorskip("fcntl")
        lock = PipelineLock(dead_lock)
        fd = os.open(lock.reclaim_path, os.O_CREAT | os.O_WRONLY, 0o644)
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        try:
            assert not lock._reclaim_if_stale()
            assert dead_lock.exists()
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

        assert lock._reclaim_if_stale()
        assert not dead_lock.exists()

    def test_fresh_lock_is_left_alone(self, lock_path: Path) -> None:
        holder = PipelineLock(lock_path)
        with holder:
            assert not PipelineLock(lock_path)._reclaim_if_stale()
            assert holder.read()["pid"] == os.getpid()
