"""
Bounded self-healing of failing generated tests.

- fixes: allowed fix families as IR-to-IR transformations
- circuit_breaker: stop conditions and convergence detection
- session: persisted record of one healing run
- loop: the healing loop itself
"""

from journeyforge.healing.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    ConvergenceDetector,
    StopReason,
    Trend,
)
from journeyforge.healing.fixes import (
    FORBIDDEN_FIXES,
    FixType,
    ProposedFix,
    apply_fix,
    ensure_allowed,
    propose_fix,
    resolve_target,
)
from journeyforge.healing.loop import HealingLoop, HealingOutcome, ModuleWriterInterface
from journeyforge.healing.session import (
    AttemptOutcome,
    HealAttempt,
    RefinementSession,
    SessionStatus,
)

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "ConvergenceDetector",
    "StopReason",
    "Trend",
    # Fixes
    "FixType",
    "FORBIDDEN_FIXES",
    "ProposedFix",
    "apply_fix",
    "ensure_allowed",
    "propose_fix",
    "resolve_target",
    # Session
    "RefinementSession",
    "HealAttempt",
    "AttemptOutcome",
    "SessionStatus",
    # Loop
    "HealingLoop",
    "HealingOutcome",
    "ModuleWriterInterface",
]
