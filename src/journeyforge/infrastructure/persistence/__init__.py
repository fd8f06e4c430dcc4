"""
Persistence adapters for pipeline state and artifacts.
"""

from journeyforge.infrastructure.persistence.artifacts import ArtifactStore
from journeyforge.infrastructure.persistence.atomic import (
    atomic_write_json,
    atomic_write_text,
    read_json_with_recovery,
    read_text_with_recovery,
)
from journeyforge.infrastructure.persistence.lock import PipelineLock
from journeyforge.infrastructure.persistence.state_store import FileStateStore

__all__ = [
    "ArtifactStore",
    "FileStateStore",
    "PipelineLock",
    "atomic_write_json",
    "atomic_write_text",
    "read_json_with_recovery",
    "read_text_with_recovery",
]
