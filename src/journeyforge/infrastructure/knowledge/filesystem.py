"""
Filesystem adapter for the external knowledge base.

Reads the store's JSON export once per run and appends learning events to
a JSONL file the store ingests on its own schedule.
"""

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from journeyforge.domain.exceptions import ConfigurationError
from journeyforge.domain.interfaces import KnowledgeBaseInterface
from journeyforge.domain.knowledge import (
    GlossaryEntry,
    KnowledgeBaseSnapshot,
    LearnedPattern,
)
from journeyforge.domain.models import LearningEvent
from journeyforge.ir.serialize import primitive_from_dict
from journeyforge.mapping.normalize import normalize_text

logger = logging.getLogger(__name__)


# =============================================================================
# Export schema
# =============================================================================


class PatternExport(BaseModel):
    """One learned pattern as exported by the store."""

    model_config = ConfigDict(populate_by_name=True)

    pattern_id: str = Field(alias="id")
    trigger: str
    primitive: dict[str, Any]
    confidence: float = Field(ge=0.0, le=1.0)
    outcomes: list[bool] = Field(default_factory=list)
    quarantined: bool = False
    provenance: str = ""


class GlossaryExport(BaseModel):
    term: str
    primitive: dict[str, Any]
    provenance: str = ""


class KnowledgeBaseExport(BaseModel):
    version: str = "unversioned"
    patterns: list[PatternExport] = Field(default_factory=list)
    glossary: list[GlossaryExport] = Field(default_factory=list)


def snapshot_from_export(export: KnowledgeBaseExport) -> KnowledgeBaseSnapshot:
    """
    Convert a validated export into the domain snapshot.

    Triggers and glossary terms are normalized the same way step text is.

    Raises:
        ValueError: If a primitive template is invalid
        KeyError: If a primitive template misses required keys
    """
    patterns = tuple(
        LearnedPattern(
            pattern_id=p.pattern_id,
            trigger=normalize_text(p.trigger),
            template=primitive_from_dict(p.primitive),
            confidence=p.confidence,
            outcomes=tuple(p.outcomes),
            quarantined=p.quarantined,
            provenance=p.provenance,
        )
        for p in export.patterns
    )
    glossary = tuple(
        GlossaryEntry(
            term=normalize_text(g.term),
            template=primitive_from_dict(g.primitive),
            provenance=g.provenance,
        )
        for g in export.glossary
    )
    return KnowledgeBaseSnapshot(version=export.version, patterns=patterns, glossary=glossary)


class FilesystemKnowledgeBase(KnowledgeBaseInterface):
    """
    Knowledge base backed by ``kb-export.json`` and ``learning-events.jsonl``.

    Args:
        export_path: Export written by the knowledge-base store
        events_path: Append-only learning event log
    """

    def __init__(self, export_path: Path, events_path: Path):
        self.export_path = export_path
        self.events_path = events_path
        self._snapshot: KnowledgeBaseSnapshot | None = None

    def snapshot(self) -> KnowledgeBaseSnapshot:
        """
        Load the export on first call; later calls return the same snapshot.

        Raises:
            ConfigurationError: If the export exists but is invalid
        """
        if self._snapshot is None:
            self._snapshot = self._load()
        return self._snapshot

    def _load(self) -> KnowledgeBaseSnapshot:
        if not self.export_path.exists():
            logger.info("No knowledge-base export at %s; using an empty snapshot", self.export_path)
            return KnowledgeBaseSnapshot()
        try:
            data = json.loads(self.export_path.read_text(encoding="utf-8"))
            export = KnowledgeBaseExport.model_validate(data)
            snapshot = snapshot_from_export(export)
        except (json.JSONDecodeError, ValidationError, ValueError, KeyError) as e:
            raise ConfigurationError(
                f"Invalid knowledge-base export {self.export_path}: {e}"
            ) from e
        logger.info(
            "Loaded knowledge base %s (%d patterns, %d glossary terms)",
            snapshot.version,
            len(snapshot.patterns),
            len(snapshot.glossary),
        )
        return snapshot

    def report(self, events: Sequence[LearningEvent]) -> None:
        if not events:
            return
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.events_path, "a", encoding="utf-8") as f:
            for event in events:
                f.write(json.dumps(event_to_dict(event)) + "\n")
        logger.debug("Reported %d learning event(s) to %s", len(events), self.events_path)


def event_to_dict(event: LearningEvent) -> dict[str, Any]:
    return {
        "pattern_id": event.pattern_id,
        "outcome": event.outcome.value,
        "journey_id": event.journey_id,
        "detail": event.detail,
        "timestamp": event.timestamp or datetime.now(UTC).isoformat(),
    }
