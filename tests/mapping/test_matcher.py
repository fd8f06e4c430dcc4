"""Tests for StepMatcher resolution order and knowledge-base thresholds."""

import logging

import pytest

from journeyforge.domain.knowledge import (
    GlossaryEntry,
    KnowledgeBaseSnapshot,
    LearnedPattern,
    StoredConfidencePolicy,
)
from journeyforge.domain.models import (
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
)
from journeyforge.mapping.matcher import StepMatcher

ARCHIVE = Primitive(kind=PrimitiveKind.CLICK, locator=LocatorSpec(LocatorStrategy.TEXT, "Archive"))


def learned(
    pattern_id: str = "kb-1",
    trigger: str = "archive the report",
    confidence: float = 0.9,
    outcomes: tuple[bool, ...] = (),
) -> LearnedPattern:
    return LearnedPattern(
        pattern_id=pattern_id,
        trigger=trigger,
        template=ARCHIVE,
        confidence=confidence,
        outcomes=outcomes,
    )


class TestResolutionOrder:
    """Tests for hint > builtin > knowledge base > blocked."""

    def test_action_hint_bypasses_patterns(self) -> None:
        result = StepMatcher().match('Click "Save" [jf action=click css="#save"]')
        assert result.primitive.origin is PrimitiveOrigin.HINT
        assert result.primitive.locator.value == "#save"

    def test_locator_hint_overrides_builtin_locator(self) -> None:
        result = StepMatcher().match('Click "Save" [jf testid=save-btn]')
        assert result.primitive.pattern_id == "builtin.click-text"
        assert result.primitive.locator == LocatorSpec(LocatorStrategy.TEST_ID, "save-btn")

    def test_builtin_wins_over_knowledge_base(self) -> None:
        snapshot = KnowledgeBaseSnapshot(patterns=(learned(trigger="navigate to /home"),))
        result = StepMatcher(snapshot).match("Navigate to /home")
        assert result.primitive.kind is PrimitiveKind.NAVIGATE

    def test_unmatched_text_blocks_with_reason(self) -> None:
        result = StepMatcher().match("Perform some arcane ritual")
        assert result.primitive.is_blocked
        assert result.primitive.reason == "no pattern matched: 'Perform some arcane ritual'"

    def test_hint_without_action_or_text_blocks(self) -> None:
        result = StepMatcher().match("[jf testid=x]")
        assert result.primitive.is_blocked
        assert "needs step text" in result.primitive.reason

    def test_hint_warnings_are_returned(self) -> None:
        result = StepMatcher().match('Click "Save" [jf colour=red]')
        assert result.warnings == ("unknown hint key 'colour'",)
        assert not result.primitive.is_blocked


class TestKnowledgeBase:
    """Tests for glossary and learned pattern lookups."""

    def test_glossary_entry(self) -> None:
        entry = GlossaryEntry(
            term="open the admin console",
            template=Primitive(kind=PrimitiveKind.NAVIGATE, url="/admin"),
        )
        matcher = StepMatcher(KnowledgeBaseSnapshot(glossary=(entry,)))
        result = matcher.match("Open the admin console.")
        assert result.primitive.origin is PrimitiveOrigin.GLOSSARY
        assert result.primitive.url == "/admin"
        assert result.primitive.pattern_id == "glossary.open the admin console"

    def test_learned_pattern_above_threshold(self) -> None:
        matcher = StepMatcher(KnowledgeBaseSnapshot(patterns=(learned(),)))
        result = matcher.match("Archive the report")
        assert result.primitive.origin is PrimitiveOrigin.KNOWLEDGE_BASE
        assert result.primitive.pattern_id == "kb-1"
        assert result.primitive.source_text == "Archive the report"

    def test_canonical_form_matches(self) -> None:
        pattern = learned(trigger="click the gizmo")
        matcher = StepMatcher(KnowledgeBaseSnapshot(patterns=(pattern,)))
        assert matcher.match("The user clicks the gizmo").primitive.pattern_id == "kb-1"

    def test_below_threshold_is_only_a_suggestion(self) -> None:
        matcher = StepMatcher(KnowledgeBaseSnapshot(patterns=(learned(confidence=0.5),)))
        result = matcher.match("Archive the report")
        assert result.primitive.is_blocked
        assert "below threshold 0.70" in result.primitive.reason
        (suggestion,) = result.suggestions
        assert suggestion.pattern_id == "kb-1"
        assert suggestion.confidence == pytest.approx(0.5)

    def test_consistent_history_keeps_high_confidence_pattern(self) -> None:
        pattern = learned(confidence=0.95, outcomes=(True,) * 5)
        result = StepMatcher(KnowledgeBaseSnapshot(patterns=(pattern,))).match(
            "Archive the report"
        )
        assert not result.primitive.is_blocked
        assert result.primitive.kind is PrimitiveKind.CLICK
        assert result.primitive.pattern_id == "kb-1"

    def test_wilson_policy_discounts_mixed_history(self) -> None:
        pattern = learned(confidence=0.95, outcomes=(True, False, True, False))
        snapshot = KnowledgeBaseSnapshot(patterns=(pattern,))
        assert StepMatcher(snapshot).match("Archive the report").primitive.is_blocked
        stored = StepMatcher(snapshot, policy=StoredConfidencePolicy())
        assert not stored.match("Archive the report").primitive.is_blocked

    def test_quarantined_pattern_is_skipped_and_warned_once(self, caplog) -> None:
        pattern = learned(outcomes=(True, False, False, False))
        matcher = StepMatcher(KnowledgeBaseSnapshot(patterns=(pattern,)))
        with caplog.at_level(logging.WARNING, logger="journeyforge.mapping.matcher"):
            first = matcher.match("Archive the report")
            matcher.match("Archive the report")
        assert first.primitive.is_blocked
        assert first.suggestions == ()
        assert caplog.text.count("quarantined pattern kb-1") == 1

    def test_ties_break_on_pattern_id(self) -> None:
        snapshot = KnowledgeBaseSnapshot(
            patterns=(learned(pattern_id="kb-b"), learned(pattern_id="kb-a"))
        )
        assert StepMatcher(snapshot).match("Archive the report").primitive.pattern_id == "kb-a"

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ValueError, match="confidence_threshold"):
            StepMatcher(confidence_threshold=1.5)
