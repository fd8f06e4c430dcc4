"""Tests for the knowledge-base adapters."""

import json
from pathlib import Path

import pytest

from journeyforge.domain.exceptions import ConfigurationError
from journeyforge.domain.knowledge import KnowledgeBaseSnapshot
from journeyforge.domain.models import (
    LearningEvent,
    LearningOutcome,
    LocatorStrategy,
    PrimitiveKind,
    ValueKind,
)
from journeyforge.infrastructure.knowledge.filesystem import (
    FilesystemKnowledgeBase,
    KnowledgeBaseExport,
    snapshot_from_export,
)
from journeyforge.infrastructure.knowledge.memory import InMemoryKnowledgeBase

EXPORT = {
    "version": "kb-2026.10",
    "patterns": [
        {
            "id": "kb-archive",
            "trigger": "  Archive the REPORT. ",
            "primitive": {
                "kind": "click",
                "locator": {"strategy": "role", "value": "button", "name": "Archive"},
            },
            "confidence": 0.8,
            "outcomes": [True, True, False],
            "provenance": "team-reports",
        }
    ],
    "glossary": [
        {
            "term": "Log in as admin",
            "primitive": {"kind": "invoke-module", "module": "login_as", "args": ["admin"]},
        }
    ],
}


@pytest.fixture
def export_path(tmp_path: Path) -> Path:
    path = tmp_path / "kb" / "kb-export.json"
    path.parent.mkdir()
    path.write_text(json.dumps(EXPORT), encoding="utf-8")
    return path


@pytest.fixture
def kb(export_path: Path, tmp_path: Path) -> FilesystemKnowledgeBase:
    return FilesystemKnowledgeBase(export_path, tmp_path / "kb" / "learning-events.jsonl")


class TestExportSchema:
    def test_snapshot_from_export(self):
        snapshot = snapshot_from_export(KnowledgeBaseExport.model_validate(EXPORT))
        (pattern,) = snapshot.patterns
        assert snapshot.version == "kb-2026.10"
        assert pattern.pattern_id == "kb-archive"
        assert pattern.trigger == "archive the report"
        assert pattern.template.locator.strategy is LocatorStrategy.ROLE
        assert pattern.outcomes == (True, True, False)
        (entry,) = snapshot.glossary
        assert entry.term == "log in as admin"
        assert entry.template.kind is PrimitiveKind.INVOKE_MODULE

    def test_string_values_follow_authoring_rules(self):
        export = KnowledgeBaseExport.model_validate(
            {
                "patterns": [
                    {
                        "id": "kb-1",
                        "trigger": "enter the email",
                        "primitive": {
                            "kind": "fill",
                            "locator": {"strategy": "label", "value": "Email"},
                            "value": "{{email}}",
                        },
                        "confidence": 0.9,
                    }
                ]
            }
        )
        (pattern,) = snapshot_from_export(export).patterns
        assert pattern.template.value.kind is ValueKind.CONTEXTUAL
        assert pattern.template.value.value == "email"


class TestFilesystemKnowledgeBase:
    """Export loading and learning-event reporting."""

    def test_snapshot_loaded_once(self, kb: FilesystemKnowledgeBase, export_path: Path):
        first = kb.snapshot()
        export_path.unlink()
        assert kb.snapshot() is first

    def test_missing_export_is_empty(self, tmp_path: Path):
        kb = FilesystemKnowledgeBase(tmp_path / "none.json", tmp_path / "events.jsonl")
        assert kb.snapshot() == KnowledgeBaseSnapshot()

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            json.dumps({"patterns": [{"id": "x", "trigger": "t", "primitive": {}, "confidence": 2}]}),
            json.dumps(
                {
                    "patterns": [
                        {"id": "x", "trigger": "t", "primitive": {"kind": "teleport"}, "confidence": 0.5}
                    ]
                }
            ),
        ],
        ids=["malformed-json", "confidence-out-of-range", "unknown-primitive-kind"],
    )
    def test_invalid_export_is_a_configuration_error(
        self, kb: FilesystemKnowledgeBase, export_path: Path, content: str
    ):
        export_path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid knowledge-base export"):
            kb.snapshot()

    def test_report_appends_jsonl(self, kb: FilesystemKnowledgeBase):
        kb.report(
            [LearningEvent("kb-archive", LearningOutcome.SUCCESS, "JRN-0004", timestamp="t1")]
        )
        kb.report([LearningEvent("kb-archive", LearningOutcome.FAILURE, "JRN-0005")])

        lines = kb.events_path.read_text(encoding="utf-8").splitlines()
        records = [json.loads(line) for line in lines]
        assert [r["outcome"] for r in records] == ["success", "failure"]
        assert records[0]["timestamp"] == "t1"
        assert records[1]["timestamp"]
        assert records[1]["journey_id"] == "JRN-0005"

    def test_report_nothing_creates_no_file(self, kb: FilesystemKnowledgeBase):
        kb.report([])
        assert not kb.events_path.exists()


class TestInMemoryKnowledgeBase:
    def test_collects_events(self):
        kb = InMemoryKnowledgeBase()
        event = LearningEvent("p", LearningOutcome.SUCCESS, "J")
        kb.report([event])
        assert kb.events == [event]
        assert kb.snapshot().patterns == ()
