"""
Refinement session: the persisted record of one Journey's healing run.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from journeyforge.healing.circuit_breaker import CircuitBreaker, StopReason, Trend


class SessionStatus(Enum):
    RUNNING = "running"
    HEALED = "healed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class AttemptOutcome(Enum):
    PASSED = "passed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    INVALID = "invalid"  # Regenerated file rejected by the validator


@dataclass(frozen=True)
class HealAttempt:
    """One fix-regenerate-execute iteration."""

    number: int
    fix: str
    target: str  # "<step id>[<index>]"
    description: str
    fingerprint: str  # Failure after the fix ("" when passed)
    category: str
    cost: float
    duration_s: float
    outcome: AttemptOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "fix": self.fix,
            "target": self.target,
            "description": self.description,
            "fingerprint": self.fingerprint,
            "category": self.category,
            "cost": self.cost,
            "duration_s": self.duration_s,
            "outcome": self.outcome.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealAttempt":
        return cls(
            number=data["number"],
            fix=data["fix"],
            target=data["target"],
            description=data.get("description", ""),
            fingerprint=data.get("fingerprint", ""),
            category=data.get("category", ""),
            cost=float(data.get("cost", 0.0)),
            duration_s=float(data.get("duration_s", 0.0)),
            outcome=AttemptOutcome(data["outcome"]),
        )


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class RefinementSession:
    """Mutable aggregate, persisted after every attempt."""

    journey_id: str
    test_path: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: list[HealAttempt] = field(default_factory=list)
    circuit_breaker: CircuitBreaker = field(default_factory=CircuitBreaker)
    trend: Trend = Trend.STAGNATING
    status: SessionStatus = SessionStatus.RUNNING
    stop_reason: str | None = None
    started_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def record(self, attempt: HealAttempt) -> None:
        self.attempts.append(attempt)
        self.trend = self.circuit_breaker.trend()
        self.updated_at = _now()

    def finish(self, status: SessionStatus, reason: str | StopReason | None = None) -> None:
        self.status = status
        self.stop_reason = reason.value if isinstance(reason, StopReason) else reason
        self.updated_at = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "journey_id": self.journey_id,
            "test_path": self.test_path,
            "attempts": [a.to_dict() for a in self.attempts],
            "circuit_breaker": self.circuit_breaker.to_dict(),
            "trend": self.trend.value,
            "status": self.status.value,
            "stop_reason": self.stop_reason,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RefinementSession":
        return cls(
            journey_id=data["journey_id"],
            test_path=data["test_path"],
            session_id=data["session_id"],
            attempts=[HealAttempt.from_dict(a) for a in data.get("attempts", [])],
            circuit_breaker=CircuitBreaker.from_dict(data.get("circuit_breaker", {})),
            trend=Trend(data.get("trend", Trend.STAGNATING.value)),
            status=SessionStatus(data.get("status", SessionStatus.RUNNING.value)),
            stop_reason=data.get("stop_reason"),
            started_at=data.get("started_at", ""),
            updated_at=data.get("updated_at", ""),
        )
