"""
Domain layer for journeyforge.

Contains the Journey, IR, execution and pipeline models with no
dependencies on the filesystem, subprocesses or third-party services.
"""

from journeyforge.domain.exceptions import (
    ArtifactMissing,
    CircuitOpen,
    ConcurrencyConflict,
    ConfigurationError,
    ExecutionTimeout,
    ForbiddenFix,
    JourneyForgeError,
    LockUnavailable,
    ParseError,
    StateTransitionError,
    ValidationFailure,
)
from journeyforge.domain.interfaces import (
    GuardInterface,
    KnowledgeBaseInterface,
    TestRunnerInterface,
)
from journeyforge.domain.knowledge import (
    ConfidencePolicy,
    GlossaryEntry,
    KnowledgeBaseSnapshot,
    LearnedPattern,
    confidence_policy,
)
from journeyforge.domain.models import (
    CompletionKind,
    CompletionSignal,
    ExecutionResult,
    ExecutionStatus,
    Failure,
    FailureCategory,
    GuardResult,
    IRProgram,
    IRStep,
    JourneyDocument,
    JourneyStep,
    LearningEvent,
    LearningOutcome,
    LocatorSpec,
    LocatorStrategy,
    MappingBlocked,
    MappingStats,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
    PrimitiveRef,
    Tier,
    ValueKind,
    ValueSpec,
    Violation,
    journey_slug,
)
from journeyforge.domain.pipeline import PipelineStage, PipelineState

__all__ = [
    # Journey models
    "JourneyDocument",
    "JourneyStep",
    "CompletionSignal",
    "CompletionKind",
    "Tier",
    "journey_slug",
    # IR
    "IRProgram",
    "IRStep",
    "Primitive",
    "PrimitiveKind",
    "PrimitiveOrigin",
    "PrimitiveRef",
    "LocatorSpec",
    "LocatorStrategy",
    "ValueSpec",
    "ValueKind",
    "MappingBlocked",
    "MappingStats",
    # Validation and execution
    "Violation",
    "GuardResult",
    "ExecutionResult",
    "ExecutionStatus",
    "Failure",
    "FailureCategory",
    # Knowledge base
    "LearnedPattern",
    "GlossaryEntry",
    "KnowledgeBaseSnapshot",
    "ConfidencePolicy",
    "confidence_policy",
    "LearningEvent",
    "LearningOutcome",
    # Pipeline
    "PipelineStage",
    "PipelineState",
    # Interfaces
    "GuardInterface",
    "TestRunnerInterface",
    "KnowledgeBaseInterface",
    # Exceptions
    "JourneyForgeError",
    "ParseError",
    "ValidationFailure",
    "ExecutionTimeout",
    "StateTransitionError",
    "ConcurrencyConflict",
    "LockUnavailable",
    "CircuitOpen",
    "ForbiddenFix",
    "ConfigurationError",
    "ArtifactMissing",
]
