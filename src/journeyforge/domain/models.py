"""
Domain models for the Journey compiler.

Pure data structures for Journeys, the IR, execution results and guard
outcomes. All models are immutable (frozen dataclasses) so that the IR
builder and code generator stay pure functions of their inputs.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

# =============================================================================
# JOURNEY DOCUMENT
# =============================================================================


class Tier(Enum):
    """Execution tier of a Journey."""

    SMOKE = "smoke"
    RELEASE = "release"
    REGRESSION = "regression"


class CompletionKind(Enum):
    """Kind of completion signal that marks a Journey as done."""

    URL_MATCH = "url-match"
    VISIBLE_TEXT = "visible-text"
    TOAST_KIND = "toast-kind"
    TITLE = "title"
    ELEMENT = "element"


@dataclass(frozen=True)
class CompletionSignal:
    """Completion signal (kind + value) declared in the front matter."""

    kind: CompletionKind
    value: str
    timeout_ms: int | None = None
    exact: bool = False


@dataclass(frozen=True)
class JourneyStep:
    """One authored step: identifier, description and raw step lines."""

    step_id: str
    description: str
    lines: tuple[str, ...]
    section: str = "steps"  # setup | steps | cleanup


@dataclass(frozen=True)
class JourneyDocument:
    """
    Parsed Journey document.

    Created by the parser and never mutated; re-parsed on every analyze.
    """

    journey_id: str
    title: str
    actor: str
    tier: Tier = Tier.REGRESSION
    scope: str = ""
    tags: tuple[str, ...] = ()
    steps: tuple[JourneyStep, ...] = ()
    setup: tuple[JourneyStep, ...] = ()
    cleanup: tuple[JourneyStep, ...] = ()
    completion: tuple[CompletionSignal, ...] = ()
    modules: tuple[str, ...] = ()
    source_path: str | None = None

    @property
    def all_steps(self) -> tuple[JourneyStep, ...]:
        """Setup, main and cleanup steps in authored order."""
        return self.setup + self.steps + self.cleanup


def journey_slug(journey_id: str) -> str:
    """
    File-name form of a Journey id, shared by test modules and artifacts.

    Distinct ids can share a slug (``J-1`` and ``J_1``); analyze rejects
    such pairs so no two Journeys write the same files.
    """
    return re.sub(r"[^a-z0-9]+", "_", journey_id.lower()).strip("_")


# =============================================================================
# LOCATORS AND VALUES
# =============================================================================


class LocatorStrategy(Enum):
    """How a UI element is located."""

    TEST_ID = "test-id"
    ROLE = "role"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    TEXT = "text"
    CSS = "css"


# Most to least preferred
LOCATOR_PRIORITY: tuple[LocatorStrategy, ...] = (
    LocatorStrategy.TEST_ID,
    LocatorStrategy.ROLE,
    LocatorStrategy.LABEL,
    LocatorStrategy.PLACEHOLDER,
    LocatorStrategy.TEXT,
    LocatorStrategy.CSS,
)

_DATA_ATTRIBUTE = re.compile(r"^\[data-[\w-]+(?:[~|^$*]?=\s*['\"]?[^\]]*['\"]?)?\]$")


@dataclass(frozen=True)
class LocatorSpec:
    """Strategy + value pair identifying a UI element, with disambiguation options."""

    strategy: LocatorStrategy
    value: str
    name: str | None = None  # Accessible name for role locators
    exact: bool = False
    nth: int | None = None
    level: int | None = None  # Heading level for role=heading

    @property
    def is_data_attribute(self) -> bool:
        """True for css selectors that only target a data-* attribute."""
        return self.strategy is LocatorStrategy.CSS and bool(
            _DATA_ATTRIBUTE.match(self.value.strip())
        )

    @property
    def is_debt(self) -> bool:
        """Raw structural selectors are selector debt."""
        return self.strategy is LocatorStrategy.CSS and not self.is_data_attribute

    @property
    def rank(self) -> int:
        """Position in the strategy priority (lower is better)."""
        if self.strategy is LocatorStrategy.CSS:
            return len(LOCATOR_PRIORITY) - (0 if self.is_debt else 1)
        return LOCATOR_PRIORITY.index(self.strategy)

    def describe(self) -> str:
        """Short human-readable form used in reports and fingerprints."""
        text = f"{self.strategy.value}={self.value}"
        if self.name:
            text += f" name={self.name}"
        if self.exact:
            text += " exact"
        if self.nth is not None:
            text += f" nth={self.nth}"
        return text


class ValueKind(Enum):
    """Origin of a value typed or compared by a primitive."""

    LITERAL = "literal"
    GENERATED = "generated"  # Namespaced with the run id at execution time
    CONTEXTUAL = "contextual"  # Read from the environment at execution time


_CONTEXTUAL_VALUE = re.compile(r"^\{\{\s*([\w.-]+)\s*\}\}$")
_GENERATED_VALUE = re.compile(r"^\$\{\s*([\w.@+-]+)\s*\}$")


@dataclass(frozen=True)
class ValueSpec:
    """A literal, generated or contextual value."""

    kind: ValueKind
    value: str

    @classmethod
    def from_text(cls, raw: str) -> "ValueSpec":
        """
        Interpret authored value text.

        ``{{key}}`` is contextual, ``${name}`` is generated, anything else
        is a literal.
        """
        contextual = _CONTEXTUAL_VALUE.match(raw)
        if contextual:
            return cls(ValueKind.CONTEXTUAL, contextual.group(1))
        generated = _GENERATED_VALUE.match(raw)
        if generated:
            return cls(ValueKind.GENERATED, generated.group(1))
        return cls(ValueKind.LITERAL, raw)


# =============================================================================
# IR PRIMITIVES
# =============================================================================


class PrimitiveKind(Enum):
    """Tag of an IR primitive."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"
    UPLOAD = "upload"
    PRESS_KEY = "press-key"
    HOVER = "hover"
    WAIT_FOR_URL = "wait-for-url"
    WAIT_FOR_RESPONSE = "wait-for-response"
    EXPECT_VISIBLE = "expect-visible"
    EXPECT_NOT_VISIBLE = "expect-not-visible"
    EXPECT_TEXT = "expect-text"
    EXPECT_VALUE = "expect-value"
    EXPECT_URL = "expect-url"
    EXPECT_TITLE = "expect-title"
    INVOKE_MODULE = "invoke-module"
    BLOCKED = "blocked"

    @property
    def is_assertion(self) -> bool:
        return self.value.startswith("expect-")

    @property
    def needs_locator(self) -> bool:
        return self in _LOCATOR_KINDS


_LOCATOR_KINDS = frozenset(
    {
        PrimitiveKind.CLICK,
        PrimitiveKind.FILL,
        PrimitiveKind.SELECT,
        PrimitiveKind.CHECK,
        PrimitiveKind.UNCHECK,
        PrimitiveKind.UPLOAD,
        PrimitiveKind.HOVER,
        PrimitiveKind.EXPECT_VISIBLE,
        PrimitiveKind.EXPECT_NOT_VISIBLE,
        PrimitiveKind.EXPECT_TEXT,
        PrimitiveKind.EXPECT_VALUE,
    }
)


class PrimitiveOrigin(Enum):
    """Which resolution source produced a primitive."""

    HINT = "hint"
    BUILTIN = "builtin"
    GLOSSARY = "glossary"
    KNOWLEDGE_BASE = "knowledge-base"
    COMPLETION = "completion"
    HEAL = "heal"


@dataclass(frozen=True)
class Primitive:
    """
    One typed IR operation.

    A ``blocked`` primitive must carry a non-empty reason: no step is ever
    silently dropped.
    """

    kind: PrimitiveKind
    locator: LocatorSpec | None = None
    value: ValueSpec | None = None
    url: str | None = None
    key: str | None = None
    option: str | None = None
    files: tuple[str, ...] = ()
    module: str | None = None
    args: tuple[str, ...] = ()
    expected: str | None = None  # Expected text, value or title
    timeout_ms: int | None = None
    wait_for_visible: bool = False
    reason: str | None = None
    source_text: str = ""
    origin: PrimitiveOrigin = PrimitiveOrigin.BUILTIN
    pattern_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind is PrimitiveKind.BLOCKED and not (self.reason or "").strip():
            raise ValueError("blocked primitive requires a non-empty reason")

    @property
    def is_assertion(self) -> bool:
        return self.kind.is_assertion

    @property
    def is_blocked(self) -> bool:
        return self.kind is PrimitiveKind.BLOCKED

    @classmethod
    def blocked(cls, reason: str, source_text: str = "") -> "Primitive":
        return cls(kind=PrimitiveKind.BLOCKED, reason=reason, source_text=source_text)


@dataclass(frozen=True)
class Suggestion:
    """Knowledge-base match below the confidence threshold, never auto-applied."""

    pattern_id: str
    confidence: float
    primitive: Primitive


@dataclass(frozen=True)
class MappingBlocked:
    """Record of a step line that could not be mapped (non-fatal)."""

    step_id: str
    text: str
    reason: str
    suggestions: tuple[Suggestion, ...] = ()


# =============================================================================
# IR PROGRAM
# =============================================================================


@dataclass(frozen=True)
class IRStep:
    """A step of the IR program, primitives kept in authored order."""

    step_id: str
    description: str
    primitives: tuple[Primitive, ...]
    section: str = "steps"

    @property
    def actions(self) -> tuple[Primitive, ...]:
        return tuple(p for p in self.primitives if not p.is_assertion)

    @property
    def assertions(self) -> tuple[Primitive, ...]:
        return tuple(p for p in self.primitives if p.is_assertion)

    @property
    def is_blocked(self) -> bool:
        return any(p.is_blocked for p in self.primitives)


@dataclass(frozen=True)
class MappingStats:
    """Per-Journey mapping statistics."""

    total_steps: int
    mapped_steps: int
    blocked_steps: int
    actions: int
    assertions: int
    blocked_primitives: int
    selector_debt: int

    @property
    def coverage(self) -> float:
        if self.total_steps == 0:
            return 1.0
        return self.mapped_steps / self.total_steps


@dataclass(frozen=True)
class IRProgram:
    """
    Ordered, typed program for one Journey.

    ``steps`` holds setup and main steps followed by the completion step;
    ``cleanup`` is rendered so it always runs after the main body.
    """

    journey_id: str
    title: str
    tier: Tier
    tags: tuple[str, ...]
    steps: tuple[IRStep, ...]
    cleanup: tuple[IRStep, ...] = ()
    blocked: tuple[MappingBlocked, ...] = ()
    stats: MappingStats | None = None
    pattern_version: str = ""
    kb_version: str = ""

    @property
    def all_steps(self) -> tuple[IRStep, ...]:
        return self.steps + self.cleanup

    def find_step(self, step_id: str) -> IRStep:
        for step in self.all_steps:
            if step.step_id == step_id:
                return step
        raise KeyError(f"Step not found: {step_id}")


# =============================================================================
# GUARD RESULT
# =============================================================================


@dataclass(frozen=True)
class Violation:
    """A single policy violation: rule id and 1-based line."""

    rule_id: str
    line: int
    message: str = ""


@dataclass(frozen=True)
class GuardResult:
    """Immutable validation outcome."""

    passed: bool
    violations: tuple[Violation, ...] = ()
    guard_name: str | None = None

    @property
    def feedback(self) -> str:
        if self.passed:
            return "All rules passed"
        return "\n".join(
            f"{v.rule_id} (line {v.line}): {v.message}" for v in self.violations
        )


# =============================================================================
# EXECUTION RESULT
# =============================================================================


class ExecutionStatus(Enum):
    """Terminal status of one test execution."""

    PASSED = "passed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class FailureCategory(Enum):
    """Repair-relevant failure bucket."""

    SELECTOR = "selector"
    TIMING = "timing"
    NAVIGATION = "navigation"
    DATA = "data"
    ENVIRONMENT = "environment"
    APP_BUG = "app-bug"
    UNCLASSIFIED = "unclassified"  # Routes directly to blocked


@dataclass(frozen=True)
class Failure:
    """Structured failure extracted from a test run."""

    message: str
    category: FailureCategory = FailureCategory.UNCLASSIFIED
    locator: str | None = None  # Implicated locator, when identifiable
    line: int | None = None  # Line in the generated file
    test_name: str = ""
    fingerprint: str = ""
    confidence: float = 0.0


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of running one generated test file."""

    status: ExecutionStatus
    failures: tuple[Failure, ...] = ()
    evidence_path: str | None = None
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_s: float = 0.0
    tests_run: int = 0

    @property
    def passed(self) -> bool:
        return self.status is ExecutionStatus.PASSED

    @property
    def cost(self) -> float:
        """Cost charged against the healing budget (seconds of execution)."""
        return self.duration_s


# =============================================================================
# LEARNING EVENTS
# =============================================================================


class LearningOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class LearningEvent:
    """Event reported back to the external knowledge base."""

    pattern_id: str
    outcome: LearningOutcome
    journey_id: str
    detail: str = ""
    timestamp: str = field(default="")


@dataclass(frozen=True)
class PrimitiveRef:
    """Address of a primitive inside an IR program."""

    step_id: str
    index: int
