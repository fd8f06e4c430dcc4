"""
Knowledge-base snapshot consumed by the matcher.

The external knowledge base owns storage, merging and decay. This module
models the immutable export loaded once per pipeline run, the quarantine
rule and the swappable confidence policy.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from journeyforge.domain.models import Primitive

MAX_OUTCOMES = 20  # Bounded outcome history per pattern
QUARANTINE_WINDOW = 5
QUARANTINE_FAILURES = 3


@dataclass(frozen=True)
class LearnedPattern:
    """
    Trigger -> primitive template learned by the knowledge base.

    ``outcomes`` is the bounded history of recorded uses, oldest first
    (True for success).
    """

    pattern_id: str
    trigger: str  # Normalized step text
    template: Primitive
    confidence: float
    outcomes: tuple[bool, ...] = ()
    quarantined: bool = False
    provenance: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"confidence must be in [0, 1], got {self.confidence} for {self.pattern_id}"
            )
        if len(self.outcomes) > MAX_OUTCOMES:
            object.__setattr__(self, "outcomes", self.outcomes[-MAX_OUTCOMES:])

    @property
    def recent_failures(self) -> int:
        """Failures among the last QUARANTINE_WINDOW outcomes."""
        return sum(1 for ok in self.outcomes[-QUARANTINE_WINDOW:] if not ok)

    @property
    def is_quarantined(self) -> bool:
        """Flagged by the store, or too many recent failures."""
        return self.quarantined or self.recent_failures >= QUARANTINE_FAILURES


@dataclass(frozen=True)
class GlossaryEntry:
    """Reusable named operation ("module"): normalized term -> primitive."""

    term: str
    template: Primitive
    provenance: str = ""


@dataclass(frozen=True)
class KnowledgeBaseSnapshot:
    """Immutable export of the knowledge base for the duration of one run."""

    version: str = "empty"
    patterns: tuple[LearnedPattern, ...] = ()
    glossary: tuple[GlossaryEntry, ...] = ()

    def glossary_entry(self, normalized: str) -> GlossaryEntry | None:
        for entry in self.glossary:
            if entry.term == normalized:
                return entry
        return None

    def candidates(self, normalized: str) -> tuple[LearnedPattern, ...]:
        return tuple(p for p in self.patterns if p.trigger == normalized)

    def find_pattern(self, pattern_id: str) -> LearnedPattern | None:
        for pattern in self.patterns:
            if pattern.pattern_id == pattern_id:
                return pattern
        return None


# =============================================================================
# CONFIDENCE POLICIES
# =============================================================================


class ConfidencePolicy(ABC):
    """Computes the confidence the matcher trusts for a learned pattern."""

    name: str = "abstract"

    @abstractmethod
    def effective(self, pattern: LearnedPattern) -> float:
        """Return a confidence in [0, 1]."""


class StoredConfidencePolicy(ConfidencePolicy):
    """Trust the confidence exported by the knowledge base unchanged."""

    name = "stored"

    def effective(self, pattern: LearnedPattern) -> float:
        return pattern.confidence


def wilson_lower_bound(successes: int, total: int, z: float = 1.96) -> float:
    """Lower bound of the Wilson score interval; 0.0 with no observations."""
    if total == 0:
        return 0.0
    p_hat = successes / total
    z2 = z * z
    denominator = 1 + z2 / total
    centre = p_hat + z2 / (2 * total)
    margin = z * math.sqrt((p_hat * (1 - p_hat) + z2 / (4 * total)) / total)
    return max(0.0, min(1.0, (centre - margin) / denominator))


class WilsonConfidencePolicy(ConfidencePolicy):
    """
    Stored confidence shrunk toward the Wilson lower bound of the history.

    The stored confidence counts as ``prior_weight`` observations; the
    Wilson lower bound over the recorded outcomes gets a weight of
    ``n / (n + prior_weight)``. A pattern without history keeps the score
    the store assigned it, and a long consistent history dominates it.

    Args:
        z: Normal quantile for the Wilson interval (1.96 = 95%)
        prior_weight: How many observations the stored confidence is worth
    """

    name = "wilson"

    def __init__(self, z: float = 1.96, prior_weight: float = 5.0):
        if prior_weight <= 0:
            raise ValueError(f"prior_weight must be positive, got {prior_weight}")
        self.z = z
        self.prior_weight = prior_weight

    def effective(self, pattern: LearnedPattern) -> float:
        total = len(pattern.outcomes)
        if total == 0:
            return pattern.confidence
        successes = sum(1 for ok in pattern.outcomes if ok)
        observed = total / (total + self.prior_weight)
        bound = wilson_lower_bound(successes, total, self.z)
        return (1 - observed) * pattern.confidence + observed * bound


def confidence_policy(name: str) -> ConfidencePolicy:
    """Look up a confidence policy by configured name."""
    policies: dict[str, type[ConfidencePolicy]] = {
        StoredConfidencePolicy.name: StoredConfidencePolicy,
        WilsonConfidencePolicy.name: WilsonConfidencePolicy,
    }
    try:
        return policies[name]()
    except KeyError:
        raise ValueError(f"Unknown confidence policy: {name}") from None
