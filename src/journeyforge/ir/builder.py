"""
IR builder: (JourneyDocument, KB snapshot) -> IRProgram.

Pure function. Each authored line maps to exactly one primitive (possibly
``blocked``), primitives keep their authored order within a step, and the
completion signals become assertions in a final ``completion`` step.
"""

from dataclasses import replace

from journeyforge.domain.knowledge import KnowledgeBaseSnapshot
from journeyforge.domain.models import (
    CompletionKind,
    CompletionSignal,
    IRProgram,
    IRStep,
    JourneyDocument,
    JourneyStep,
    LocatorSpec,
    LocatorStrategy,
    MappingBlocked,
    MappingStats,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
)
from journeyforge.mapping.matcher import StepMatcher
from journeyforge.mapping.patterns import PATTERN_VERSION

COMPLETION_STEP_ID = "completion"


def build_program(
    document: JourneyDocument,
    snapshot: KnowledgeBaseSnapshot | None = None,
    *,
    matcher: StepMatcher | None = None,
) -> IRProgram:
    """
    Build the IR program for one Journey.

    Args:
        document: Parsed Journey (not mutated)
        snapshot: Knowledge-base export for this run
        matcher: Preconfigured matcher; built from ``snapshot`` when omitted

    Returns:
        IRProgram with mapping statistics and blocked records
    """
    if matcher is None:
        matcher = StepMatcher(snapshot)

    blocked: list[MappingBlocked] = []

    def map_step(step: JourneyStep) -> IRStep:
        primitives: list[Primitive] = []
        for line in step.lines:
            result = matcher.match(line)
            primitives.append(result.primitive)
            if result.primitive.is_blocked:
                blocked.append(
                    MappingBlocked(
                        step_id=step.step_id,
                        text=line,
                        reason=result.primitive.reason or "",
                        suggestions=result.suggestions,
                    )
                )
        if not primitives:
            reason = f"step {step.step_id} has no text to map"
            primitives.append(Primitive.blocked(reason, step.description))
            blocked.append(MappingBlocked(step.step_id, step.description, reason))
        return IRStep(
            step_id=step.step_id,
            description=step.description,
            primitives=tuple(primitives),
            section=step.section,
        )

    steps = [map_step(s) for s in document.setup + document.steps]
    completion = tuple(completion_primitive(c) for c in document.completion)
    if completion:
        steps.append(
            IRStep(
                step_id=COMPLETION_STEP_ID,
                description="Completion signals",
                primitives=completion,
                section=COMPLETION_STEP_ID,
            )
        )
    cleanup = tuple(map_step(s) for s in document.cleanup)

    program = IRProgram(
        journey_id=document.journey_id,
        title=document.title,
        tier=document.tier,
        tags=document.tags,
        steps=tuple(steps),
        cleanup=cleanup,
        blocked=tuple(blocked),
        pattern_version=PATTERN_VERSION,
        kb_version=matcher.snapshot.version,
    )
    return replace(program, stats=compute_stats(program))


def completion_primitive(signal: CompletionSignal) -> Primitive:
    """Map a completion signal to its assertion primitive."""
    common = {
        "timeout_ms": signal.timeout_ms,
        "source_text": f"{signal.kind.value}: {signal.value}",
        "origin": PrimitiveOrigin.COMPLETION,
        "pattern_id": f"completion.{signal.kind.value}",
    }
    if signal.kind is CompletionKind.URL_MATCH:
        return Primitive(kind=PrimitiveKind.EXPECT_URL, url=signal.value, **common)
    if signal.kind is CompletionKind.TITLE:
        return Primitive(kind=PrimitiveKind.EXPECT_TITLE, expected=signal.value, **common)
    if signal.kind is CompletionKind.VISIBLE_TEXT:
        locator = LocatorSpec(LocatorStrategy.TEXT, signal.value, exact=signal.exact)
        return Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=locator, **common)
    if signal.kind is CompletionKind.TOAST_KIND:
        locator = LocatorSpec(LocatorStrategy.CSS, f'[data-toast-kind="{signal.value}"]')
        return Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=locator, **common)
    if signal.kind is CompletionKind.ELEMENT:
        locator = LocatorSpec(LocatorStrategy.TEST_ID, signal.value)
        return Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=locator, **common)
    raise ValueError(f"Unsupported completion kind: {signal.kind}")


def compute_stats(program: IRProgram) -> MappingStats:
    """Count mapped/blocked steps and primitive kinds (completion step excluded from step counts)."""
    authored = [s for s in program.all_steps if s.step_id != COMPLETION_STEP_ID]
    primitives = [p for s in program.all_steps for p in s.primitives]
    return MappingStats(
        total_steps=len(authored),
        mapped_steps=sum(1 for s in authored if not s.is_blocked),
        blocked_steps=sum(1 for s in authored if s.is_blocked),
        actions=sum(1 for p in primitives if not p.is_assertion and not p.is_blocked),
        assertions=sum(1 for p in primitives if p.is_assertion),
        blocked_primitives=sum(1 for p in primitives if p.is_blocked),
        selector_debt=sum(1 for p in primitives if p.locator is not None and p.locator.is_debt),
    )
