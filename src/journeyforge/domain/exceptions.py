"""
Domain exceptions for the Journey compiler.

Parse, validation and transition errors abort the current command with
full diagnostic context. Mapping and execution failures are recorded as
data (MappingBlocked, ExecutionResult) and never raised.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from journeyforge.domain.models import Violation


class JourneyForgeError(Exception):
    """Base class for every error surfaced by a pipeline command."""

    retryable: bool = False

    def details(self) -> dict[str, Any]:
        """Structured context attached to the error report."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the structured error emitted on stderr."""
        return {
            "error": type(self).__name__,
            "message": str(self),
            "retryable": self.retryable,
            "details": self.details(),
        }


class ParseError(JourneyForgeError):
    """
    Raised when a Journey document is malformed.

    Fatal: aborts before IR construction.
    """

    def __init__(
        self, message: str, source: str | None = None, field: str | None = None
    ):
        """
        Args:
            message: Human-readable description of the problem
            source: Path of the offending Journey file, when known
            field: Front matter field or section that failed
        """
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")
        self.source = source
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"source": self.source, "field": self.field}


class ValidationFailure(JourneyForgeError):
    """
    Raised when generated code violates a policy rule.

    Blocks promotion to execution.
    """

    def __init__(self, violations: "list[Violation]", path: str | None = None):
        """
        Args:
            violations: Every (rule id, line) failure found
            path: Generated file the violations refer to
        """
        summary = ", ".join(f"{v.rule_id}@{v.line}" for v in violations)
        super().__init__(f"validation failed for {path or '<source>'}: {summary}")
        self.violations = violations
        self.path = path

    def details(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "violations": [
                {"rule_id": v.rule_id, "line": v.line, "message": v.message}
                for v in self.violations
            ],
        }


class ExecutionTimeout(JourneyForgeError):
    """Raised when a test subprocess exceeds its hard timeout."""

    def __init__(self, timeout_s: float, command: list[str]):
        super().__init__(f"test execution exceeded {timeout_s}s")
        self.timeout_s = timeout_s
        self.command = command

    def details(self) -> dict[str, Any]:
        return {"timeout_s": self.timeout_s, "command": self.command}


class StateTransitionError(JourneyForgeError):
    """
    Raised when a command requests a stage transition the graph forbids.

    Fatal to that invocation only. Persisted state is left untouched.
    """

    def __init__(self, current: str, target: str, command: str, reason: str = ""):
        message = f"'{command}' cannot move pipeline from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.command = command

    def details(self) -> dict[str, Any]:
        return {"current": self.current, "target": self.target, "command": self.command}


class ConcurrencyConflict(JourneyForgeError):
    """
    Raised when the on-disk revision no longer matches the revision read.

    Retryable by the caller: reload state and re-run the command.
    """

    retryable = True

    def __init__(self, expected: int, actual: int, message: str | None = None):
        super().__init__(
            message
            or f"pipeline state changed concurrently (expected revision {expected}, found {actual})"
        )
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, Any]:
        return {"expected_revision": self.expected, "actual_revision": self.actual}


class LockUnavailable(ConcurrencyConflict):
    """Raised when the pipeline lock cannot be acquired before the timeout."""

    def __init__(self, lock_path: str, holder: str | None = None):
        holder_text = f" (held by {holder})" if holder else ""
        super().__init__(-1, -1, f"could not acquire lock {lock_path}{holder_text}")
        self.lock_path = lock_path
        self.holder = holder

    def details(self) -> dict[str, Any]:
        return {"lock_path": self.lock_path, "holder": self.holder}


class CircuitOpen(JourneyForgeError):
    """
    Raised when healing stops on a terminal circuit-breaker condition.

    The pipeline becomes blocked and requires operator action via clean.
    """

    def __init__(self, reason: str, journey_id: str | None = None):
        super().__init__(f"healing stopped: {reason}")
        self.reason = reason
        self.journey_id = journey_id

    def details(self) -> dict[str, Any]:
        return {"reason": self.reason, "journey_id": self.journey_id}


class ForbiddenFix(JourneyForgeError):
    """Raised when a fix outside the allowed families is requested."""

    def __init__(self, fix: str):
        super().__init__(f"fix '{fix}' is forbidden")
        self.fix = fix

    def details(self) -> dict[str, Any]:
        return {"fix": self.fix}


class ArtifactMissing(JourneyForgeError):
    """
    Raised when an artifact the current stage depends on is absent or unreadable.

    State and artifacts disagree; re-running the command that produces the
    artifact (or 'clean') restores them.
    """

    def __init__(self, path: str, producer: str, problem: str = "missing"):
        super().__init__(f"{path} is {problem}; re-run '{producer}' to recreate it")
        self.path = path
        self.producer = producer
        self.problem = problem

    def details(self) -> dict[str, Any]:
        return {"path": self.path, "producer": self.producer, "problem": self.problem}


class ConfigurationError(JourneyForgeError):
    """Raised when configuration files are invalid or missing."""

    pass
