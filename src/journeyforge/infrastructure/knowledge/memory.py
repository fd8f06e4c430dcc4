"""
In-memory knowledge base.

Useful for testing and for runs without an external store.
"""

from collections.abc import Sequence

from journeyforge.domain.interfaces import KnowledgeBaseInterface
from journeyforge.domain.knowledge import KnowledgeBaseSnapshot
from journeyforge.domain.models import LearningEvent


class InMemoryKnowledgeBase(KnowledgeBaseInterface):
    """Fixed snapshot; reported events are kept in a list."""

    def __init__(self, snapshot: KnowledgeBaseSnapshot | None = None) -> None:
        self._snapshot = snapshot or KnowledgeBaseSnapshot()
        self.events: list[LearningEvent] = []

    def snapshot(self) -> KnowledgeBaseSnapshot:
        return self._snapshot

    def report(self, events: Sequence[LearningEvent]) -> None:
        self.events.extend(events)
