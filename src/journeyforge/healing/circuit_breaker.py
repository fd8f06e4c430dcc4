"""
Circuit breaker and convergence detection for the healing loop.

The breaker records one fingerprint per healing attempt (the failure seen
after the fix was applied) and evaluates four independent stop conditions.
Its state round-trips through plain dicts so an interrupted session can be
resumed.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StopReason(Enum):
    """Why the healing loop halted without success."""

    NON_CONVERGENT = "non-convergent"
    OSCILLATING = "oscillating"
    EXHAUSTED = "exhausted"
    ATTEMPTS_EXHAUSTED = "attempts-exhausted"


class Trend(Enum):
    """Direction of failure counts across attempts."""

    IMPROVING = "improving"
    STAGNATING = "stagnating"
    DEGRADING = "degrading"
    OSCILLATING = "oscillating"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    max_attempts: int = 3
    max_duration_s: float = 300.0  # Wall-clock budget for one session
    max_cost: float = 50000.0  # Cumulative cost budget (execution seconds)
    oscillation_window: int = 4


class ConvergenceDetector:
    """
    Pure checks over an ordered fingerprint history.

    Example:
        ["a", "a"] -> non-convergent
        ["a", "b", "a", "b"] -> oscillating
    """

    def __init__(self, window: int = 4):
        self.window = window

    def is_non_convergent(self, fingerprints: list[str]) -> bool:
        return len(fingerprints) >= 2 and fingerprints[-1] == fingerprints[-2]

    def is_oscillating(self, fingerprints: list[str]) -> bool:
        if len(fingerprints) < self.window:
            return False
        recent = fingerprints[-self.window :]
        evens, odds = set(recent[0::2]), set(recent[1::2])
        return len(evens) == 1 and len(odds) == 1 and evens != odds

    def trend(self, fingerprints: list[str], failure_counts: list[int]) -> Trend:
        if self.is_oscillating(fingerprints):
            return Trend.OSCILLATING
        if len(failure_counts) < 2:
            return Trend.STAGNATING
        recent = failure_counts[-3:]
        if all(count == recent[0] for count in recent):
            return Trend.STAGNATING
        if all(b <= a for a, b in zip(recent, recent[1:])):
            return Trend.IMPROVING
        if all(b >= a for a, b in zip(recent, recent[1:])):
            return Trend.DEGRADING
        return Trend.STAGNATING


@dataclass
class CircuitBreaker:
    """
    Mutable breaker state for one refinement session.

    Stop conditions are checked in a fixed order and the first hit wins:
    non-convergent, oscillating, exhausted, attempts-exhausted.
    """

    config: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    fingerprints: list[str] = field(default_factory=list)
    failure_counts: list[int] = field(default_factory=list)
    total_cost: float = 0.0
    started_at: float | None = None  # Epoch seconds of the first attempt
    open_reason: StopReason | None = None
    clock: Callable[[], float] = field(default=time.time, repr=False, compare=False)

    @property
    def attempts(self) -> int:
        return len(self.fingerprints)

    @property
    def is_open(self) -> bool:
        return self.open_reason is not None

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()

    def elapsed(self) -> float:
        return 0.0 if self.started_at is None else self.clock() - self.started_at

    def record(self, fingerprint: str, cost: float = 0.0, failure_count: int = 1) -> None:
        """Record the outcome of one attempt (``fingerprint`` "" for success)."""
        self.start()
        self.fingerprints.append(fingerprint)
        self.failure_counts.append(failure_count)
        self.total_cost += cost

    def check(self) -> StopReason | None:
        """
        Evaluate every stop condition and open the breaker on the first hit.

        Returns:
            The triggering StopReason, or None while the loop may continue
        """
        if self.open_reason is not None:
            return self.open_reason
        detector = ConvergenceDetector(self.config.oscillation_window)
        failing = [fp for fp in self.fingerprints if fp]
        reason: StopReason | None = None
        if detector.is_non_convergent(failing) and self.fingerprints[-1]:
            reason = StopReason.NON_CONVERGENT
        elif detector.is_oscillating(failing):
            reason = StopReason.OSCILLATING
        elif self.elapsed() > self.config.max_duration_s or self.total_cost > self.config.max_cost:
            reason = StopReason.EXHAUSTED
        elif self.attempts >= self.config.max_attempts:
            reason = StopReason.ATTEMPTS_EXHAUSTED
        self.open_reason = reason
        return reason

    def trend(self) -> Trend:
        detector = ConvergenceDetector(self.config.oscillation_window)
        return detector.trend([fp for fp in self.fingerprints if fp], self.failure_counts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": {
                "max_attempts": self.config.max_attempts,
                "max_duration_s": self.config.max_duration_s,
                "max_cost": self.config.max_cost,
                "oscillation_window": self.config.oscillation_window,
            },
            "fingerprints": list(self.fingerprints),
            "failure_counts": list(self.failure_counts),
            "total_cost": self.total_cost,
            "started_at": self.started_at,
            "open_reason": self.open_reason.value if self.open_reason else None,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], clock: Callable[[], float] = time.time
    ) -> "CircuitBreaker":
        open_reason = data.get("open_reason")
        return cls(
            config=CircuitBreakerConfig(**data.get("config", {})),
            fingerprints=list(data.get("fingerprints", [])),
            failure_counts=list(data.get("failure_counts", [])),
            total_cost=float(data.get("total_cost", 0.0)),
            started_at=data.get("started_at"),
            open_reason=StopReason(open_reason) if open_reason else None,
            clock=clock,
        )
