"""
Step matcher: step text -> IR primitive.

Resolution runs in strict priority order and stops at the first success:

1. inline ``[jf action=...]`` hint (bypasses pattern matching)
2. built-in pattern table
3. knowledge-base glossary, then learned patterns above the threshold
4. a ``blocked`` primitive naming the unmatched text

Knowledge-base matches below the confidence threshold are returned as
suggestions and never applied.
"""

import logging
from dataclasses import dataclass, replace

from journeyforge.domain.knowledge import (
    ConfidencePolicy,
    KnowledgeBaseSnapshot,
    LearnedPattern,
    WilsonConfidencePolicy,
)
from journeyforge.domain.models import Primitive, PrimitiveOrigin, Suggestion
from journeyforge.journey.hints import extract_hints
from journeyforge.logging_setup import WarnOnce
from journeyforge.mapping.normalize import canonical_text, collapse, normalize_text
from journeyforge.mapping.patterns import BUILTIN_PATTERNS, BuiltinPattern, match_builtin

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class LineMatch:
    """Result of mapping one step line."""

    primitive: Primitive
    suggestions: tuple[Suggestion, ...] = ()
    warnings: tuple[str, ...] = ()


class StepMatcher:
    """
    Maps step text to primitives using built-in rules and a KB snapshot.

    The snapshot is injected at construction and never reloaded, so one
    matcher instance gives the same answers for the whole run.
    """

    def __init__(
        self,
        snapshot: KnowledgeBaseSnapshot | None = None,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        policy: ConfidencePolicy | None = None,
        patterns: tuple[BuiltinPattern, ...] = BUILTIN_PATTERNS,
    ):
        """
        Args:
            snapshot: Immutable knowledge-base export for this run
            confidence_threshold: Minimum effective confidence to apply a
                learned pattern
            policy: How effective confidence is computed (default Wilson)
            patterns: Built-in table to match against
        """
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be in [0, 1]")
        self.snapshot = snapshot or KnowledgeBaseSnapshot()
        self.confidence_threshold = confidence_threshold
        self.policy = policy or WilsonConfidencePolicy()
        self.patterns = patterns
        self.warned = WarnOnce(logger)

    def match(self, text: str) -> LineMatch:
        """
        Map one step line.

        Never returns without a primitive: unmapped text yields a blocked
        primitive with a specific reason.
        """
        stripped, hints = extract_hints(text)
        warnings = hints.warnings if hints else ()
        for warning in warnings:
            self.warned.warn(f"hint:{warning}", "Inline hint in '%s': %s", text, warning)

        if hints is not None and hints.get("action") is not None:
            return LineMatch(hints.to_primitive(stripped or collapse(text)), (), warnings)

        stripped = collapse(stripped)
        if not stripped:
            reason = (
                "hint without action needs step text to map"
                if hints is not None
                else "empty step text"
            )
            return LineMatch(Primitive.blocked(reason, text), (), warnings)

        primitive = match_builtin(stripped, self.patterns)
        suggestions: tuple[Suggestion, ...] = ()
        if primitive is None:
            primitive, suggestions = self._match_knowledge_base(stripped)

        if primitive is None:
            reason = f"no pattern matched: '{stripped}'"
            if suggestions:
                best = suggestions[0]
                reason += (
                    f" (knowledge-base suggestion {best.pattern_id} at "
                    f"{best.confidence:.2f} is below threshold {self.confidence_threshold:.2f})"
                )
            return LineMatch(Primitive.blocked(reason, stripped), suggestions, warnings)

        if hints is not None:
            primitive = hints.apply_locator(primitive)
        return LineMatch(primitive, suggestions, warnings)

    def _match_knowledge_base(
        self, text: str
    ) -> tuple[Primitive | None, tuple[Suggestion, ...]]:
        keys = tuple(dict.fromkeys((normalize_text(text), canonical_text(text))))

        for key in keys:
            entry = self.snapshot.glossary_entry(key)
            if entry is not None:
                return (
                    replace(
                        entry.template,
                        source_text=text,
                        origin=PrimitiveOrigin.GLOSSARY,
                        pattern_id=f"glossary.{entry.term}",
                    ),
                    (),
                )

        scored: list[tuple[float, LearnedPattern]] = []
        seen: set[str] = set()
        for key in keys:
            for pattern in self.snapshot.candidates(key):
                if pattern.pattern_id in seen:
                    continue
                seen.add(pattern.pattern_id)
                if pattern.is_quarantined:
                    self.warned.warn(
                        f"quarantined:{pattern.pattern_id}",
                        "Skipping quarantined pattern %s (%d recent failures)",
                        pattern.pattern_id,
                        pattern.recent_failures,
                    )
                    continue
                scored.append((self.policy.effective(pattern), pattern))

        if not scored:
            return None, ()

        scored.sort(key=lambda item: (-item[0], item[1].pattern_id))
        best_confidence, best = scored[0]
        if best_confidence >= self.confidence_threshold:
            logger.debug(
                "Matched '%s' to learned pattern %s (%.2f)", text, best.pattern_id, best_confidence
            )
            return self._from_pattern(best, text), ()

        suggestions = tuple(
            Suggestion(p.pattern_id, confidence, self._from_pattern(p, text))
            for confidence, p in scored
        )
        return None, suggestions

    @staticmethod
    def _from_pattern(pattern: LearnedPattern, text: str) -> Primitive:
        return replace(
            pattern.template,
            source_text=text,
            origin=PrimitiveOrigin.KNOWLEDGE_BASE,
            pattern_id=pattern.pattern_id,
        )
