"""
Filesystem store for the pipeline state.

Read-validate-write with optimistic concurrency: ``save`` compares the
caller's expected revision with the one on disk, under the pipeline lock,
and increments it by exactly one on success. ``exclusive`` extends that
check to a whole command: it takes the lock and re-checks the revision
before the command touches any artifact, so a command that lost the race
fails without side effects.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from journeyforge.domain.exceptions import ConcurrencyConflict
from journeyforge.domain.pipeline import PipelineState
from journeyforge.infrastructure.persistence.atomic import (
    atomic_write_json,
    read_json_with_recovery,
)
from journeyforge.infrastructure.persistence.lock import PipelineLock

logger = logging.getLogger(__name__)

STATE_FILE = "pipeline-state.json"
LOCK_FILE = "pipeline.lock"


class FileStateStore:
    """
    Persists PipelineState as ``<state_dir>/pipeline-state.json``.

    Args:
        state_dir: Directory holding state and lock files
        lock: Lock guarding mutations (defaults to ``<state_dir>/pipeline.lock``)
    """

    def __init__(self, state_dir: Path, lock: PipelineLock | None = None):
        self.state_dir = state_dir
        self.path = state_dir / STATE_FILE
        self.lock = lock or PipelineLock(state_dir / LOCK_FILE)

    def load(self) -> PipelineState:
        """
        Load the current state.

        A missing file yields a fresh state. A corrupt file is moved to
        ``pipeline-state.corrupted.<timestamp>.json`` and a fresh state
        is returned.
        """
        try:
            data = read_json_with_recovery(self.path)
            if data is None:
                return PipelineState()
            if not isinstance(data, dict):
                raise ValueError("pipeline state must be a JSON object")
            return PipelineState.from_dict(data)
        except (json.JSONDecodeError, ValueError) as e:
            backup = self._backup_corrupt()
            logger.warning(
                "Corrupt pipeline state %s (%s); backed up to %s and starting fresh",
                self.path,
                e,
                backup,
            )
            return PipelineState()

    @contextmanager
    def exclusive(self, expected_revision: int) -> Iterator[None]:
        """
        Hold the pipeline lock for a command's side effects and its save.

        Raises:
            ConcurrencyConflict: If the state moved past ``expected_revision``
                since it was loaded
            LockUnavailable: If the lock cannot be acquired in time
        """
        with self.lock:
            self.check_revision(expected_revision)
            yield

    def save(self, state: PipelineState, expected_revision: int) -> int:
        """
        Persist ``state`` if the on-disk revision still equals ``expected_revision``.

        Args:
            state: State to write (its revision is updated in place)
            expected_revision: Revision the caller loaded

        Returns:
            The new revision (expected_revision + 1)

        Raises:
            ConcurrencyConflict: If another writer saved in between
            LockUnavailable: If the lock cannot be acquired in time
        """
        with self.lock:
            self.check_revision(expected_revision)
            state.revision = expected_revision + 1
            atomic_write_json(self.path, state.to_dict())
            logger.debug("Saved pipeline state revision %d (%s)", state.revision, state.stage.value)
            return state.revision

    def check_revision(self, expected_revision: int) -> None:
        actual = self.current_revision()
        if actual != expected_revision:
            raise ConcurrencyConflict(expected_revision, actual)

    def current_revision(self) -> int:
        try:
            data = read_json_with_recovery(self.path)
        except json.JSONDecodeError:
            return 0
        if not isinstance(data, dict):
            return 0
        try:
            return int(data.get("revision", 0))
        except (TypeError, ValueError):
            return 0

    def _backup_corrupt(self) -> Path:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.state_dir / f"pipeline-state.corrupted.{stamp}.json"
        self.path.replace(backup)
        return backup
