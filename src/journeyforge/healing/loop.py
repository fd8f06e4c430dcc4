"""
Bounded healing loop.

Each iteration: check cancellation -> pick an allowed fix for the
classified failure -> apply it to the IR -> regenerate and validate ->
execute -> reclassify -> persist the attempt. The circuit breaker decides
when to stop; every stop carries a specific reason.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from journeyforge.codegen.generator import GeneratedFile, GeneratedModule
from journeyforge.domain.exceptions import CircuitOpen, ValidationFailure
from journeyforge.domain.interfaces import KnowledgeBaseInterface, TestRunnerInterface
from journeyforge.domain.models import (
    ExecutionResult,
    ExecutionStatus,
    Failure,
    FailureCategory,
    IRProgram,
    LearningEvent,
    LearningOutcome,
    Primitive,
    PrimitiveOrigin,
)
from journeyforge.execution.classifier import FailureClassifier, message_head
from journeyforge.healing.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from journeyforge.healing.fixes import (
    ProposedFix,
    apply_fix,
    primitive_at,
    propose_fix,
    resolve_target,
)
from journeyforge.healing.session import (
    AttemptOutcome,
    HealAttempt,
    RefinementSession,
    SessionStatus,
)

logger = logging.getLogger(__name__)

LEARNED_ORIGINS = frozenset({PrimitiveOrigin.KNOWLEDGE_BASE, PrimitiveOrigin.GLOSSARY})


class ModuleWriterInterface(ABC):
    """Renders, validates and writes the test module for one program."""

    @abstractmethod
    def test_path(self, journey_id: str) -> Path:
        """Path of the generated module for ``journey_id``."""

    @abstractmethod
    def render(self, program: IRProgram) -> GeneratedModule:
        """Merged source for ``program`` without writing it."""

    @abstractmethod
    def execute(self, program: IRProgram) -> GeneratedFile:
        """
        Render, validate and write ``program``.

        Raises:
            ValidationFailure: If the merged source violates a rule; the file
                on disk is left untouched
        """


@dataclass(frozen=True)
class HealingOutcome:
    """Final session, healed (or last) IR and the last execution result."""

    session: RefinementSession
    program: IRProgram
    result: ExecutionResult
    applied: tuple[ProposedFix, ...] = field(default_factory=tuple)

    @property
    def healed(self) -> bool:
        return self.session.status is SessionStatus.HEALED

    def raise_for_status(self) -> None:
        """
        Raises:
            CircuitOpen: If the session ended blocked
        """
        if self.session.status is SessionStatus.BLOCKED:
            raise CircuitOpen(self.session.stop_reason or "blocked", self.session.journey_id)


def _short(message: str, limit: int = 160) -> str:
    text = " ".join(message_head(message).split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class HealingLoop:
    """
    Repairs one failing generated test within strict bounds.

    Args:
        generation: Render-validate-write transaction for the test file
        runner: Executes the regenerated file
        classifier: Classifies execution failures
        breaker_config: Attempt, time and cost budgets
        default_timeout_ms: Timeout assumed for primitives without one
        max_timeout_ms: Upper bound for increase-timeout
        save_session: Persists the session after every attempt
        knowledge_base: Receives learning events
        cancel_requested: Polled at the top of each iteration
        clock: Epoch clock for wall-clock budgets
    """

    def __init__(
        self,
        generation: ModuleWriterInterface,
        runner: TestRunnerInterface,
        classifier: FailureClassifier | None = None,
        *,
        breaker_config: CircuitBreakerConfig | None = None,
        default_timeout_ms: int = 10000,
        max_timeout_ms: int = 60000,
        save_session: Callable[[RefinementSession], None] | None = None,
        knowledge_base: KnowledgeBaseInterface | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.generation = generation
        self.runner = runner
        self.classifier = classifier or FailureClassifier()
        self.breaker_config = breaker_config or CircuitBreakerConfig()
        self.default_timeout_ms = default_timeout_ms
        self.max_timeout_ms = max_timeout_ms
        self._save = save_session or (lambda session: None)
        self.knowledge_base = knowledge_base
        self._cancel_requested = cancel_requested or (lambda: False)
        self.clock = clock

    def heal(
        self,
        program: IRProgram,
        result: ExecutionResult,
        evidence_path: Path,
        session: RefinementSession | None = None,
    ) -> HealingOutcome:
        """
        Heal ``program`` starting from its classified failing ``result``.

        Args:
            program: IR the failing test was generated from
            result: Classified execution result with at least one failure
            evidence_path: Where each attempt's JUnit report is written
            session: Session to resume (a new one is created otherwise)

        Returns:
            HealingOutcome; the session status is healed, blocked or cancelled
        """
        test_path = self.generation.test_path(program.journey_id)
        if session is None:
            session = RefinementSession(
                journey_id=program.journey_id,
                test_path=str(test_path),
                circuit_breaker=CircuitBreaker(config=self.breaker_config, clock=self.clock),
            )
        breaker = session.circuit_breaker
        breaker.start()
        module = self.generation.render(program)
        applied: list[ProposedFix] = []
        originals: list[Primitive] = []
        previous_target = None

        def finish(status: SessionStatus, reason: str | None) -> HealingOutcome:
            session.finish(status, reason)
            self._save(session)
            self._report(program.journey_id, status, applied, originals, result, program)
            if status is SessionStatus.HEALED:
                logger.info("Healed %s after %d attempt(s)", program.journey_id, len(session.attempts))
            else:
                logger.warning("Healing %s stopped: %s (%s)", program.journey_id, status.value, reason)
            return HealingOutcome(session, program, result, tuple(applied))

        while True:
            if self._cancel_requested():
                return finish(SessionStatus.CANCELLED, "cancelled by operator")

            if result.passed:
                return finish(SessionStatus.HEALED, None)
            if result.status is ExecutionStatus.TIMEOUT:
                return finish(SessionStatus.BLOCKED, "execution timeout")
            failure = self._primary_failure(result)
            if failure.category is FailureCategory.UNCLASSIFIED:
                return finish(
                    SessionStatus.BLOCKED, f"unclassified failure: {_short(failure.message)}"
                )

            target = resolve_target(program, failure, module, previous_target)
            proposed = None
            if target is not None:
                proposed = propose_fix(
                    program,
                    failure,
                    target,
                    default_timeout_ms=self.default_timeout_ms,
                    max_timeout_ms=self.max_timeout_ms,
                )
            if proposed is None:
                return finish(
                    SessionStatus.BLOCKED,
                    f"no applicable fix for {failure.category.value} failure: {_short(failure.message)}",
                )

            originals.append(primitive_at(program, proposed.target))
            program = apply_fix(program, proposed)
            applied.append(proposed)
            number = len(session.attempts) + 1
            target_label = f"{proposed.target.step_id}[{proposed.target.index}]"
            logger.info(
                "Attempt %d for %s: %s on %s (%s)",
                number,
                program.journey_id,
                proposed.fix.value,
                target_label,
                proposed.description,
            )

            started = time.monotonic()
            try:
                generated = self.generation.execute(program)
            except ValidationFailure as e:
                session.record(
                    HealAttempt(
                        number=number,
                        fix=proposed.fix.value,
                        target=target_label,
                        description=proposed.description,
                        fingerprint="",
                        category=failure.category.value,
                        cost=0.0,
                        duration_s=time.monotonic() - started,
                        outcome=AttemptOutcome.INVALID,
                    )
                )
                return finish(SessionStatus.BLOCKED, f"regenerated test failed validation: {e}")
            module = generated.module

            result = self.classifier.classify_result(self.runner.run(generated.path, evidence_path))
            fingerprint = "" if result.passed else self._primary_failure(result).fingerprint
            breaker.record(fingerprint, result.cost, len(result.failures))
            session.record(
                HealAttempt(
                    number=number,
                    fix=proposed.fix.value,
                    target=target_label,
                    description=proposed.description,
                    fingerprint=fingerprint,
                    category="" if result.passed else self._primary_failure(result).category.value,
                    cost=result.cost,
                    duration_s=time.monotonic() - started,
                    outcome=AttemptOutcome(result.status.value),
                )
            )
            self._save(session)

            if result.passed:
                return finish(SessionStatus.HEALED, None)
            reason = breaker.check()
            if reason is not None:
                return finish(SessionStatus.BLOCKED, reason.value)
            previous_target = proposed.target

    @staticmethod
    def _primary_failure(result: ExecutionResult) -> Failure:
        if result.failures:
            return result.failures[0]
        return Failure(message=f"test run {result.status.value} without failure details")

    def _report(
        self,
        journey_id: str,
        status: SessionStatus,
        applied: list[ProposedFix],
        originals: list[Primitive],
        result: ExecutionResult,
        program: IRProgram,
    ) -> None:
        if self.knowledge_base is None or status is SessionStatus.CANCELLED:
            return
        events: list[LearningEvent] = []
        if status is SessionStatus.HEALED:
            for fix, original in zip(applied, originals):
                events.append(
                    LearningEvent(
                        pattern_id=original.pattern_id or f"heal.{fix.fix.value}",
                        outcome=LearningOutcome.SUCCESS,
                        journey_id=journey_id,
                        detail=f"{fix.fix.value}: {fix.description}",
                    )
                )
        else:
            failed = {o.pattern_id for o in originals if o.origin in LEARNED_ORIGINS and o.pattern_id}
            if not failed and result.failures:
                target = resolve_target(program, result.failures[0])
                if target is not None:
                    primitive = primitive_at(program, target)
                    if primitive.origin in LEARNED_ORIGINS and primitive.pattern_id:
                        failed.add(primitive.pattern_id)
            events.extend(
                LearningEvent(
                    pattern_id=pattern_id,
                    outcome=LearningOutcome.FAILURE,
                    journey_id=journey_id,
                    detail="healing stopped without success",
                )
                for pattern_id in sorted(failed)
            )
        if events:
            self.knowledge_base.report(events)
