"""
Pipeline state machine.

A directed graph of stage transitions plus the persisted PipelineState
aggregate. Every command validates its transition here before any state
is mutated.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from journeyforge.domain.exceptions import StateTransitionError

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"
MAX_HISTORY = 50


class PipelineStage(Enum):
    """Node in the directed progress graph."""

    INITIAL = "initial"
    ANALYZED = "analyzed"
    PLANNED = "planned"
    GENERATED = "generated"
    TESTED = "tested"
    REFINING = "refining"
    COMPLETED = "completed"
    BLOCKED = "blocked"


_S = PipelineStage

# Self-loops let analyze/plan/generate/run be re-run at the same stage.
TRANSITIONS: dict[PipelineStage, frozenset[PipelineStage]] = {
    _S.INITIAL: frozenset({_S.ANALYZED}),
    _S.ANALYZED: frozenset({_S.ANALYZED, _S.PLANNED, _S.INITIAL}),
    _S.PLANNED: frozenset({_S.PLANNED, _S.GENERATED, _S.ANALYZED, _S.INITIAL}),
    _S.GENERATED: frozenset({_S.GENERATED, _S.TESTED, _S.PLANNED, _S.INITIAL}),
    _S.TESTED: frozenset(
        {_S.TESTED, _S.REFINING, _S.COMPLETED, _S.GENERATED, _S.INITIAL}
    ),
    _S.REFINING: frozenset({_S.TESTED, _S.COMPLETED, _S.BLOCKED, _S.INITIAL}),
    _S.COMPLETED: frozenset({_S.INITIAL, _S.ANALYZED}),
    _S.BLOCKED: frozenset({_S.INITIAL, _S.ANALYZED}),
}


def can_transition(current: PipelineStage, target: PipelineStage) -> bool:
    return target in TRANSITIONS[current]


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded command invocation."""

    timestamp: str
    command: str
    stage: PipelineStage
    success: bool = True


@dataclass
class PipelineState:
    """
    Progress of the pipeline for one working directory.

    Mutated only through validate_transition/transition/reset; persisted
    atomically after every command by the state store, which owns the
    revision counter.
    """

    stage: PipelineStage = PipelineStage.INITIAL
    history: list[HistoryEntry] = field(default_factory=list)
    is_blocked: bool = False
    blocked_reason: str | None = None
    revision: int = 0
    journey_ids: list[str] = field(default_factory=list)
    test_paths: list[str] = field(default_factory=list)
    refinement_attempts: int = 0
    last_command: str | None = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def validate_transition(self, target: PipelineStage, command: str) -> None:
        """
        Raise StateTransitionError unless ``command`` may move to ``target``.

        Does not mutate the state.
        """
        if self.is_blocked and command != "clean":
            raise StateTransitionError(
                self.stage.value,
                target.value,
                command,
                f"pipeline is blocked ({self.blocked_reason}); run 'clean' to reset",
            )
        if not can_transition(self.stage, target):
            allowed = sorted(s.value for s in TRANSITIONS[self.stage])
            raise StateTransitionError(
                self.stage.value,
                target.value,
                command,
                f"allowed targets: {', '.join(allowed)}",
            )

    def transition(
        self,
        target: PipelineStage,
        command: str,
        *,
        reason: str | None = None,
        timestamp: str | None = None,
    ) -> None:
        """Validate, then move to ``target`` and record the command."""
        self.validate_transition(target, command)
        self.stage = target
        if target is PipelineStage.BLOCKED:
            if not (reason or "").strip():
                raise ValueError("blocking the pipeline requires a reason")
            self.is_blocked = True
            self.blocked_reason = reason
        self.record(command, success=True, timestamp=timestamp)

    def reset(self, command: str = "clean", *, timestamp: str | None = None) -> None:
        """Return to initial from any stage, clearing the blocked flag."""
        self.stage = PipelineStage.INITIAL
        self.is_blocked = False
        self.blocked_reason = None
        self.journey_ids = []
        self.test_paths = []
        self.refinement_attempts = 0
        self.record(command, success=True, timestamp=timestamp)

    def record(
        self, command: str, success: bool, *, timestamp: str | None = None
    ) -> None:
        """Append a history entry, evicting the oldest beyond MAX_HISTORY."""
        stamp = timestamp or _now()
        self.history.append(HistoryEntry(stamp, command, self.stage, success))
        if len(self.history) > MAX_HISTORY:
            del self.history[: len(self.history) - MAX_HISTORY]
        self.last_command = command
        self.updated_at = stamp

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "stage": self.stage.value,
            "revision": self.revision,
            "is_blocked": self.is_blocked,
            "blocked_reason": self.blocked_reason,
            "last_command": self.last_command,
            "journey_ids": list(self.journey_ids),
            "test_paths": list(self.test_paths),
            "refinement_attempts": self.refinement_attempts,
            "history": [
                {
                    "timestamp": h.timestamp,
                    "command": h.command,
                    "stage": h.stage.value,
                    "success": h.success,
                }
                for h in self.history
            ],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineState":
        """
        Deserialize a persisted state.

        Raises:
            ValueError: If a required field is missing or has an invalid value
        """
        unknown = set(data) - _KNOWN_FIELDS
        if unknown:
            logger.warning(
                "Ignoring unknown pipeline state fields: %s", ", ".join(sorted(unknown))
            )
        try:
            history = [
                HistoryEntry(
                    timestamp=h["timestamp"],
                    command=h["command"],
                    stage=PipelineStage(h["stage"]),
                    success=bool(h.get("success", True)),
                )
                for h in data.get("history", [])
            ][-MAX_HISTORY:]
            return cls(
                stage=PipelineStage(data["stage"]),
                history=history,
                is_blocked=bool(data.get("is_blocked", False)),
                blocked_reason=data.get("blocked_reason"),
                revision=int(data["revision"]),
                journey_ids=list(data.get("journey_ids", [])),
                test_paths=list(data.get("test_paths", [])),
                refinement_attempts=int(data.get("refinement_attempts", 0)),
                last_command=data.get("last_command"),
                created_at=data.get("created_at") or _now(),
                updated_at=data.get("updated_at") or _now(),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"invalid pipeline state structure: {e}") from e


_KNOWN_FIELDS = frozenset(
    {
        "version",
        "stage",
        "revision",
        "is_blocked",
        "blocked_reason",
        "last_command",
        "journey_ids",
        "test_paths",
        "refinement_attempts",
        "history",
        "created_at",
        "updated_at",
    }
)
