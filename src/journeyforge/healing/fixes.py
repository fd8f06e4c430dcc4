"""
Safe fix families for the healing loop.

Fixes are IR-to-IR transformations on a single primitive. Only the allowed
families exist as transformations; forbidden families are named so that
any request for one is rejected with ForbiddenFix.
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum

from journeyforge.codegen.generator import GeneratedModule
from journeyforge.codegen.locators import render_locator
from journeyforge.domain.exceptions import ForbiddenFix
from journeyforge.domain.models import (
    Failure,
    FailureCategory,
    IRProgram,
    IRStep,
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
    PrimitiveRef,
    ValueKind,
    ValueSpec,
)
from journeyforge.ir.builder import COMPLETION_STEP_ID, compute_stats

logger = logging.getLogger(__name__)


class FixType(Enum):
    """Fix families. Only the first five are ever applied."""

    UPGRADE_SELECTOR = "upgrade-selector"
    ADD_EXPLICIT_WAIT = "add-explicit-wait"
    NARROW_SELECTOR = "narrow-selector"
    NAMESPACE_DATA = "namespace-data"
    INCREASE_TIMEOUT = "increase-timeout"
    # Forbidden
    ADD_SLEEP = "add-sleep"
    FORCE_INTERACTION = "force-interaction"
    REMOVE_ASSERTION = "remove-assertion"
    WEAKEN_ASSERTION = "weaken-assertion"
    ALTER_CONTRACT = "alter-contract"
    NETWORK_IDLE = "network-idle"

    @property
    def is_forbidden(self) -> bool:
        return self in FORBIDDEN_FIXES


FORBIDDEN_FIXES = frozenset(
    {
        FixType.ADD_SLEEP,
        FixType.FORCE_INTERACTION,
        FixType.REMOVE_ASSERTION,
        FixType.WEAKEN_ASSERTION,
        FixType.ALTER_CONTRACT,
        FixType.NETWORK_IDLE,
    }
)

# Fix families tried, in order, per failure category
FIX_PLAN: dict[FailureCategory, tuple[FixType, ...]] = {
    FailureCategory.SELECTOR: (
        FixType.NARROW_SELECTOR,
        FixType.UPGRADE_SELECTOR,
        FixType.ADD_EXPLICIT_WAIT,
        FixType.INCREASE_TIMEOUT,
    ),
    FailureCategory.TIMING: (FixType.ADD_EXPLICIT_WAIT, FixType.INCREASE_TIMEOUT),
    FailureCategory.NAVIGATION: (FixType.ADD_EXPLICIT_WAIT, FixType.INCREASE_TIMEOUT),
    FailureCategory.DATA: (FixType.NAMESPACE_DATA,),
}

_STRICT_MODE = re.compile(r"strict\s+mode\s+violation|resolved\s+to\s+\d+\s+elements", re.I)
_CSS_ID = re.compile(r"^#([\w-]+)$")
_CSS_TEST_ID = re.compile(r"""^\[data-(?:testid|test-id|test|qa)=["']?([^"'\]]+)["']?\]$""")


@dataclass(frozen=True)
class ProposedFix:
    """One fix, the primitive it targets and the replacement primitive."""

    fix: FixType
    target: PrimitiveRef
    primitive: Primitive
    description: str


def ensure_allowed(fix: FixType) -> None:
    """
    Raises:
        ForbiddenFix: If ``fix`` belongs to a forbidden family
    """
    if fix.is_forbidden:
        raise ForbiddenFix(fix.value)


def primitive_at(program: IRProgram, ref: PrimitiveRef) -> Primitive:
    return program.find_step(ref.step_id).primitives[ref.index]


# =============================================================================
# Target resolution
# =============================================================================


def resolve_target(
    program: IRProgram,
    failure: Failure,
    module: GeneratedModule | None = None,
    previous: PrimitiveRef | None = None,
) -> PrimitiveRef | None:
    """
    Find the primitive a failure implicates.

    Resolution order: the failing line in the generated module, a
    primitive whose locator appears in the failure, the target of the
    previous attempt, then the first primitive with a locator.
    """
    if module is not None:
        ref = module.ref_at(failure.line)
        if ref is not None and not primitive_at(program, ref).is_blocked:
            return ref

    if failure.locator:
        for step in program.all_steps:
            for index, primitive in enumerate(step.primitives):
                if primitive.locator is not None and _locator_matches(
                    primitive.locator, failure.locator
                ):
                    return PrimitiveRef(step.step_id, index)

    if previous is not None:
        return previous

    for step in program.all_steps:
        if step.step_id == COMPLETION_STEP_ID:
            continue
        for index, primitive in enumerate(step.primitives):
            if primitive.locator is not None:
                return PrimitiveRef(step.step_id, index)
    return None


def _locator_matches(locator: LocatorSpec, implicated: str) -> bool:
    rendered = render_locator(locator)
    return implicated in (locator.value, rendered) or rendered.endswith(implicated)


# =============================================================================
# Transformations
# =============================================================================


def upgrade_locator(primitive: Primitive) -> LocatorSpec | None:
    """A strictly higher-priority locator for the same element, when derivable."""
    locator = primitive.locator
    if locator is None:
        return None
    candidate: LocatorSpec | None = None
    if locator.strategy is LocatorStrategy.CSS:
        match = _CSS_ID.match(locator.value.strip()) or _CSS_TEST_ID.match(locator.value.strip())
        if match:
            candidate = LocatorSpec(LocatorStrategy.TEST_ID, match.group(1))
    elif locator.strategy is LocatorStrategy.TEXT and primitive.kind is PrimitiveKind.CLICK:
        candidate = LocatorSpec(LocatorStrategy.ROLE, "button", name=locator.value, exact=locator.exact)
    elif locator.strategy in (LocatorStrategy.LABEL, LocatorStrategy.PLACEHOLDER) and (
        primitive.kind is PrimitiveKind.FILL
    ):
        candidate = LocatorSpec(LocatorStrategy.ROLE, "textbox", name=locator.value, exact=locator.exact)
    if candidate is None or candidate.rank >= locator.rank:
        return None
    return candidate


def narrow_locator(locator: LocatorSpec | None) -> LocatorSpec | None:
    """Exact matching first, then the first match."""
    if locator is None:
        return None
    has_name = locator.strategy is not LocatorStrategy.CSS and (
        locator.strategy is not LocatorStrategy.ROLE or locator.name is not None
    )
    if has_name and not locator.exact:
        return replace(locator, exact=True)
    if locator.nth is None:
        return replace(locator, nth=0)
    return None


def _build(
    fix: FixType,
    primitive: Primitive,
    failure: Failure,
    default_timeout_ms: int,
    max_timeout_ms: int,
) -> tuple[Primitive, str] | None:
    if fix is FixType.NARROW_SELECTOR:
        if not _STRICT_MODE.search(failure.message):
            return None
        narrowed = narrow_locator(primitive.locator)
        if narrowed is None:
            return None
        return replace(primitive, locator=narrowed), f"narrow {narrowed.describe()}"

    if fix is FixType.UPGRADE_SELECTOR:
        upgraded = upgrade_locator(primitive)
        if upgraded is None:
            return None
        old = primitive.locator.describe() if primitive.locator else ""
        return replace(primitive, locator=upgraded), f"{old} -> {upgraded.describe()}"

    if fix is FixType.ADD_EXPLICIT_WAIT:
        if (
            primitive.locator is None
            or primitive.is_assertion
            or primitive.wait_for_visible
        ):
            return None
        return replace(primitive, wait_for_visible=True), "wait for visible before acting"

    if fix is FixType.INCREASE_TIMEOUT:
        if primitive.kind is PrimitiveKind.INVOKE_MODULE:
            return None
        current = primitive.timeout_ms or default_timeout_ms
        raised = min(current * 2, max_timeout_ms)
        if raised <= current:
            return None
        return replace(primitive, timeout_ms=raised), f"timeout {current}ms -> {raised}ms"

    if fix is FixType.NAMESPACE_DATA:
        value = primitive.value
        if primitive.kind is not PrimitiveKind.FILL or value is None:
            return None
        if value.kind is not ValueKind.LITERAL:
            return None
        return (
            replace(primitive, value=ValueSpec(ValueKind.GENERATED, value.value)),
            f"namespace {value.value!r} with the run id",
        )
    raise ForbiddenFix(fix.value)


def propose_fix(
    program: IRProgram,
    failure: Failure,
    target: PrimitiveRef,
    *,
    default_timeout_ms: int = 10000,
    max_timeout_ms: int = 60000,
) -> ProposedFix | None:
    """
    First applicable allowed fix for a classified failure.

    Args:
        program: Current IR program
        failure: Classified failure
        target: Primitive implicated by the failure
        default_timeout_ms: Timeout assumed when a primitive has none
        max_timeout_ms: Upper bound for increase-timeout

    Returns:
        ProposedFix, or None when no allowed family applies
    """
    primitive = primitive_at(program, target)
    if primitive.is_blocked:
        return None
    for fix in FIX_PLAN.get(failure.category, ()):
        ensure_allowed(fix)
        built = _build(fix, primitive, failure, default_timeout_ms, max_timeout_ms)
        if built is None:
            continue
        healed, description = built
        healed = replace(healed, origin=PrimitiveOrigin.HEAL)
        logger.debug("Proposed %s for %s[%d]: %s", fix.value, target.step_id, target.index, description)
        return ProposedFix(fix, target, healed, description)
    return None


def apply_fix(program: IRProgram, proposed: ProposedFix) -> IRProgram:
    """
    Replace the target primitive and re-check that no assertion was touched.

    Raises:
        ForbiddenFix: If the fix is forbidden or would change an assertion
            or the primitive's meaning
    """
    ensure_allowed(proposed.fix)
    original = primitive_at(program, proposed.target)
    healed = proposed.primitive
    if healed.kind is not original.kind:
        raise ForbiddenFix(FixType.ALTER_CONTRACT.value)
    if original.is_assertion and (
        healed.expected != original.expected or healed.url != original.url
    ):
        raise ForbiddenFix(FixType.WEAKEN_ASSERTION.value)

    def patch(steps: tuple[IRStep, ...]) -> tuple[IRStep, ...]:
        patched = []
        for step in steps:
            if step.step_id == proposed.target.step_id:
                primitives = list(step.primitives)
                primitives[proposed.target.index] = healed
                step = replace(step, primitives=tuple(primitives))
            patched.append(step)
        return tuple(patched)

    updated = replace(program, steps=patch(program.steps), cleanup=patch(program.cleanup))
    stats = compute_stats(updated)
    if program.stats is not None and stats.assertions != program.stats.assertions:
        raise ForbiddenFix(FixType.REMOVE_ASSERTION.value)
    return replace(updated, stats=stats)
