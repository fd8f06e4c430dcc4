"""
Infrastructure layer.

Contains adapters for external concerns (filesystem persistence, locking,
the knowledge base).
"""

from journeyforge.infrastructure.knowledge import (
    FilesystemKnowledgeBase,
    InMemoryKnowledgeBase,
)
from journeyforge.infrastructure.persistence import (
    ArtifactStore,
    FileStateStore,
    PipelineLock,
)

__all__ = [
    # Persistence
    "ArtifactStore",
    "FileStateStore",
    "PipelineLock",
    # Knowledge base
    "FilesystemKnowledgeBase",
    "InMemoryKnowledgeBase",
]
