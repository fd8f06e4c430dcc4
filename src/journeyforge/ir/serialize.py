"""
JSON-compatible (de)serialization of Journeys and IR programs.

Used for the analysis and plan snapshots and for knowledge-base
templates. Keys are stable so snapshots diff cleanly between runs.
"""

from typing import Any

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
    Suggestion,
    Tier,
    ValueKind,
    ValueSpec,
)

# =============================================================================
# PRIMITIVES
# =============================================================================


def locator_to_dict(locator: LocatorSpec) -> dict[str, Any]:
    data: dict[str, Any] = {"strategy": locator.strategy.value, "value": locator.value}
    if locator.name is not None:
        data["name"] = locator.name
    if locator.exact:
        data["exact"] = True
    if locator.nth is not None:
        data["nth"] = locator.nth
    if locator.level is not None:
        data["level"] = locator.level
    return data


def locator_from_dict(data: dict[str, Any]) -> LocatorSpec:
    return LocatorSpec(
        strategy=LocatorStrategy(data["strategy"]),
        value=data["value"],
        name=data.get("name"),
        exact=bool(data.get("exact", False)),
        nth=data.get("nth"),
        level=data.get("level"),
    )


def primitive_to_dict(primitive: Primitive) -> dict[str, Any]:
    """Serialize a primitive, omitting empty fields."""
    data: dict[str, Any] = {"kind": primitive.kind.value}
    if primitive.locator is not None:
        data["locator"] = locator_to_dict(primitive.locator)
    if primitive.value is not None:
        data["value"] = {"kind": primitive.value.kind.value, "value": primitive.value.value}
    for key in ("url", "key", "option", "module", "expected", "timeout_ms", "reason"):
        value = getattr(primitive, key)
        if value is not None:
            data[key] = value
    if primitive.files:
        data["files"] = list(primitive.files)
    if primitive.args:
        data["args"] = list(primitive.args)
    if primitive.wait_for_visible:
        data["wait_for_visible"] = True
    if primitive.source_text:
        data["source_text"] = primitive.source_text
    data["origin"] = primitive.origin.value
    if primitive.pattern_id is not None:
        data["pattern_id"] = primitive.pattern_id
    return data


def primitive_from_dict(data: dict[str, Any]) -> Primitive:
    """
    Deserialize a primitive.

    Raises:
        ValueError: Unknown kind/strategy, or a blocked primitive without reason
        KeyError: Missing required keys
    """
    value = data.get("value")
    if isinstance(value, str):
        value_spec: ValueSpec | None = ValueSpec.from_text(value)
    elif value is not None:
        value_spec = ValueSpec(ValueKind(value["kind"]), value["value"])
    else:
        value_spec = None
    locator = data.get("locator")
    return Primitive(
        kind=PrimitiveKind(data["kind"]),
        locator=locator_from_dict(locator) if locator else None,
        value=value_spec,
        url=data.get("url"),
        key=data.get("key"),
        option=data.get("option"),
        files=tuple(data.get("files", ())),
        module=data.get("module"),
        args=tuple(data.get("args", ())),
        expected=data.get("expected"),
        timeout_ms=data.get("timeout_ms"),
        wait_for_visible=bool(data.get("wait_for_visible", False)),
        reason=data.get("reason"),
        source_text=data.get("source_text", ""),
        origin=PrimitiveOrigin(data.get("origin", PrimitiveOrigin.BUILTIN.value)),
        pattern_id=data.get("pattern_id"),
    )


# =============================================================================
# IR PROGRAM
# =============================================================================


def _step_to_dict(step: IRStep) -> dict[str, Any]:
    return {
        "step_id": step.step_id,
        "description": step.description,
        "section": step.section,
        "primitives": [primitive_to_dict(p) for p in step.primitives],
    }


def _step_from_dict(data: dict[str, Any]) -> IRStep:
    return IRStep(
        step_id=data["step_id"],
        description=data["description"],
        section=data.get("section", "steps"),
        primitives=tuple(primitive_from_dict(p) for p in data["primitives"]),
    )


def program_to_dict(program: IRProgram) -> dict[str, Any]:
    stats = program.stats
    return {
        "journey_id": program.journey_id,
        "title": program.title,
        "tier": program.tier.value,
        "tags": list(program.tags),
        "pattern_version": program.pattern_version,
        "kb_version": program.kb_version,
        "steps": [_step_to_dict(s) for s in program.steps],
        "cleanup": [_step_to_dict(s) for s in program.cleanup],
        "blocked": [
            {
                "step_id": b.step_id,
                "text": b.text,
                "reason": b.reason,
                "suggestions": [
                    {
                        "pattern_id": s.pattern_id,
                        "confidence": s.confidence,
                        "primitive": primitive_to_dict(s.primitive),
                    }
                    for s in b.suggestions
                ],
            }
            for b in program.blocked
        ],
        "stats": None
        if stats is None
        else {
            "total_steps": stats.total_steps,
            "mapped_steps": stats.mapped_steps,
            "blocked_steps": stats.blocked_steps,
            "actions": stats.actions,
            "assertions": stats.assertions,
            "blocked_primitives": stats.blocked_primitives,
            "selector_debt": stats.selector_debt,
        },
    }


def program_from_dict(data: dict[str, Any]) -> IRProgram:
    stats = data.get("stats")
    return IRProgram(
        journey_id=data["journey_id"],
        title=data["title"],
        tier=Tier(data["tier"]),
        tags=tuple(data.get("tags", ())),
        pattern_version=data.get("pattern_version", ""),
        kb_version=data.get("kb_version", ""),
        steps=tuple(_step_from_dict(s) for s in data["steps"]),
        cleanup=tuple(_step_from_dict(s) for s in data.get("cleanup", ())),
        blocked=tuple(
            MappingBlocked(
                step_id=b["step_id"],
                text=b["text"],
                reason=b["reason"],
                suggestions=tuple(
                    Suggestion(
                        s["pattern_id"], s["confidence"], primitive_from_dict(s["primitive"])
                    )
                    for s in b.get("suggestions", ())
                ),
            )
            for b in data.get("blocked", ())
        ),
        stats=MappingStats(**stats) if stats else None,
    )


# =============================================================================
# JOURNEY DOCUMENT
# =============================================================================


def _journey_step_to_dict(step: JourneyStep) -> dict[str, Any]:
    return {
        "step_id": step.step_id,
        "description": step.description,
        "lines": list(step.lines),
        "section": step.section,
    }


def _journey_step_from_dict(data: dict[str, Any]) -> JourneyStep:
    return JourneyStep(
        step_id=data["step_id"],
        description=data["description"],
        lines=tuple(data["lines"]),
        section=data.get("section", "steps"),
    )


def document_to_dict(document: JourneyDocument) -> dict[str, Any]:
    return {
        "journey_id": document.journey_id,
        "title": document.title,
        "actor": document.actor,
        "tier": document.tier.value,
        "scope": document.scope,
        "tags": list(document.tags),
        "modules": list(document.modules),
        "source_path": document.source_path,
        "setup": [_journey_step_to_dict(s) for s in document.setup],
        "steps": [_journey_step_to_dict(s) for s in document.steps],
        "cleanup": [_journey_step_to_dict(s) for s in document.cleanup],
        "completion": [
            {
                "kind": c.kind.value,
                "value": c.value,
                "timeout_ms": c.timeout_ms,
                "exact": c.exact,
            }
            for c in document.completion
        ],
    }


def document_from_dict(data: dict[str, Any]) -> JourneyDocument:
    return JourneyDocument(
        journey_id=data["journey_id"],
        title=data["title"],
        actor=data["actor"],
        tier=Tier(data["tier"]),
        scope=data.get("scope", ""),
        tags=tuple(data.get("tags", ())),
        modules=tuple(data.get("modules", ())),
        source_path=data.get("source_path"),
        setup=tuple(_journey_step_from_dict(s) for s in data.get("setup", ())),
        steps=tuple(_journey_step_from_dict(s) for s in data["steps"]),
        cleanup=tuple(_journey_step_from_dict(s) for s in data.get("cleanup", ())),
        completion=tuple(
            CompletionSignal(
                kind=CompletionKind(c["kind"]),
                value=c["value"],
                timeout_ms=c.get("timeout_ms"),
                exact=bool(c.get("exact", False)),
            )
            for c in data.get("completion", ())
        ),
    )
