"""
Knowledge-base adapters.
"""

from journeyforge.infrastructure.knowledge.filesystem import (
    FilesystemKnowledgeBase,
    KnowledgeBaseExport,
    snapshot_from_export,
)
from journeyforge.infrastructure.knowledge.memory import InMemoryKnowledgeBase

__all__ = [
    "FilesystemKnowledgeBase",
    "InMemoryKnowledgeBase",
    "KnowledgeBaseExport",
    "snapshot_from_export",
]
