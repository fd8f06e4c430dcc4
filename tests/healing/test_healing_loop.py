"""Tests for HealingLoop."""

from pathlib import Path

import pytest

from journeyforge.application.generation import GenerationPair
from journeyforge.domain.exceptions import CircuitOpen
from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.knowledge import KnowledgeBaseSnapshot, LearnedPattern
from journeyforge.domain.models import (
    ExecutionResult,
    ExecutionStatus,
    Failure,
    GuardResult,
    IRProgram,
    LearningOutcome,
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    PrimitiveKind,
    Violation,
)
from journeyforge.execution.classifier import FailureClassifier
from journeyforge.execution.scripted import ScriptedRunner
from journeyforge.healing.circuit_breaker import CircuitBreakerConfig
from journeyforge.healing.loop import HealingLoop
from journeyforge.healing.session import AttemptOutcome, RefinementSession, SessionStatus
from journeyforge.infrastructure.knowledge.memory import InMemoryKnowledgeBase
from journeyforge.ir.builder import build_program
from journeyforge.journey.parser import parse_journey


def failed(message: str) -> ExecutionResult:
    return ExecutionResult(
        status=ExecutionStatus.FAILED, failures=(Failure(message=message),), duration_s=1.0
    )


def passed() -> ExecutionResult:
    return ExecutionResult(status=ExecutionStatus.PASSED, duration_s=1.0)


class RejectingGuard(GuardInterface):
    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:  # noqa: ARG002
        return GuardResult(passed=False, violations=(Violation("no-sleep", 3, "x"),))


@pytest.fixture
def generation(tmp_path: Path) -> GenerationPair:
    return GenerationPair(tmp_path / "tests")


@pytest.fixture
def evidence(tmp_path: Path) -> Path:
    return tmp_path / "evidence" / "report.xml"


def make_loop(
    generation: GenerationPair,
    runner: ScriptedRunner,
    classifier: FailureClassifier,
    **kwargs,
) -> HealingLoop:
    kwargs.setdefault("breaker_config", CircuitBreakerConfig(max_attempts=3))
    return HealingLoop(generation, runner, classifier, **kwargs)


class TestHealingLoop:
    """End-to-end healing scenarios with scripted execution results."""

    def test_timing_failure_heals_with_explicit_wait(
        self, generation, evidence, classifier, sign_in_program
    ):
        runner = ScriptedRunner([passed()])
        loop = make_loop(generation, runner, classifier)
        initial = classifier.classify_result(failed("Timeout 30000ms exceeded."))

        outcome = loop.heal(sign_in_program, initial, evidence)

        assert outcome.healed
        assert outcome.session.status is SessionStatus.HEALED
        (attempt,) = outcome.session.attempts
        assert attempt.fix == "add-explicit-wait"
        assert attempt.target == "S2[0]"
        assert attempt.outcome is AttemptOutcome.PASSED
        assert outcome.program.find_step("S2").primitives[0].wait_for_visible is True
        assert generation.test_path("JRN-0001").exists()
        assert runner.calls == [generation.test_path("JRN-0001")]

    def test_repeated_failure_is_non_convergent(
        self, generation, evidence, classifier, submit_program
    ):
        runner = ScriptedRunner([failed("selector not found: #submit")] * 2)
        loop = make_loop(generation, runner, classifier)
        initial = classifier.classify_result(failed("selector not found: #submit"))

        outcome = loop.heal(submit_program, initial, evidence)

        assert outcome.session.status is SessionStatus.BLOCKED
        assert outcome.session.stop_reason == "non-convergent"
        assert [a.fix for a in outcome.session.attempts] == [
            "upgrade-selector",
            "add-explicit-wait",
        ]
        with pytest.raises(CircuitOpen, match="non-convergent"):
            outcome.raise_for_status()

    def test_attempt_budget(self, generation, evidence, classifier, submit_program):
        runner = ScriptedRunner(
            [failed("selector not found: 'x1'"), failed("selector not found: 'x2'")]
        )
        loop = make_loop(
            generation, runner, classifier, breaker_config=CircuitBreakerConfig(max_attempts=2)
        )
        initial = classifier.classify_result(failed("selector not found: #submit"))

        outcome = loop.heal(submit_program, initial, evidence)

        assert outcome.session.stop_reason == "attempts-exhausted"
        assert len(outcome.session.attempts) == 2

    def test_timeout_stops_immediately(self, generation, evidence, classifier, submit_program):
        runner = ScriptedRunner()
        initial = ExecutionResult(
            status=ExecutionStatus.TIMEOUT, failures=(Failure("exceeded 300s"),)
        )
        outcome = make_loop(generation, runner, classifier).heal(submit_program, initial, evidence)
        assert outcome.session.stop_reason == "execution timeout"
        assert runner.call_count == 0

    def test_unclassified_failure_blocks(self, generation, evidence, classifier, submit_program):
        initial = classifier.classify_result(failed("the moon is made of cheese"))
        outcome = make_loop(generation, ScriptedRunner(), classifier).heal(
            submit_program, initial, evidence
        )
        assert outcome.session.status is SessionStatus.BLOCKED
        assert outcome.session.stop_reason.startswith("unclassified failure: the moon")

    def test_no_applicable_fix(self, generation, evidence, classifier, submit_program):
        initial = classifier.classify_result(failed("Internal Server Error"))
        outcome = make_loop(generation, ScriptedRunner(), classifier).heal(
            submit_program, initial, evidence
        )
        assert outcome.session.stop_reason.startswith("no applicable fix for app-bug failure")

    def test_cancellation(self, generation, evidence, classifier, submit_program):
        loop = make_loop(generation, ScriptedRunner(), classifier, cancel_requested=lambda: True)
        initial = classifier.classify_result(failed("selector not found: #submit"))
        outcome = loop.heal(submit_program, initial, evidence)
        assert outcome.session.status is SessionStatus.CANCELLED
        outcome.raise_for_status()

    def test_invalid_regeneration_blocks(self, tmp_path, evidence, classifier, submit_program):
        generation = GenerationPair(tmp_path / "tests", guard=RejectingGuard())
        runner = ScriptedRunner()
        initial = classifier.classify_result(failed("selector not found: #submit"))
        outcome = make_loop(generation, runner, classifier).heal(submit_program, initial, evidence)
        assert outcome.session.stop_reason.startswith("regenerated test failed validation")
        assert outcome.session.attempts[0].outcome is AttemptOutcome.INVALID
        assert runner.call_count == 0

    def test_session_saved_after_every_attempt(
        self, generation, evidence, classifier, submit_program
    ):
        saved: list[int] = []
        runner = ScriptedRunner([failed("selector not found: #submit")] * 2)
        loop = make_loop(
            generation,
            runner,
            classifier,
            save_session=lambda session: saved.append(len(session.attempts)),
        )
        loop.heal(submit_program, classifier.classify_result(failed("selector not found: #submit")), evidence)
        assert saved == [1, 2, 2]

    def test_resumed_session_keeps_breaker_history(
        self, generation, evidence, classifier, submit_program
    ):
        repeated = classifier.classify_result(failed("selector not found: #submit"))
        session = RefinementSession(journey_id="JRN-0002", test_path="t.py")
        session.circuit_breaker.record(repeated.failures[0].fingerprint)
        runner = ScriptedRunner([failed("selector not found: #submit")])

        outcome = make_loop(generation, runner, classifier).heal(
            submit_program, repeated, evidence, session=session
        )

        assert outcome.session is session
        assert outcome.session.stop_reason == "non-convergent"
        assert runner.call_count == 1


class TestLearningEvents:
    def test_success_reported_for_healed_primitive(
        self, generation, evidence, classifier, sign_in_program, memory_kb
    ):
        loop = make_loop(generation, ScriptedRunner([passed()]), classifier, knowledge_base=memory_kb)
        loop.heal(sign_in_program, classifier.classify_result(failed("Timeout 1ms exceeded.")), evidence)
        (event,) = memory_kb.events
        assert event.outcome is LearningOutcome.SUCCESS
        assert event.pattern_id == "builtin.fill-with"
        assert event.journey_id == "JRN-0001"

    def test_failure_reported_for_learned_pattern(self, generation, evidence, classifier):
        archive = Primitive(
            kind=PrimitiveKind.CLICK, locator=LocatorSpec(LocatorStrategy.TEXT, "Archive")
        )
        snapshot = KnowledgeBaseSnapshot(
            patterns=(
                LearnedPattern(
                    pattern_id="kb-1", trigger="archive the report", template=archive, confidence=0.9
                ),
            )
        )
        document = parse_journey(
            "---\nid: JRN-0004\ntitle: Archive\nactor: a\n---\n## Steps\n- Archive the report\n"
        )
        program = build_program(document, snapshot)
        knowledge_base = InMemoryKnowledgeBase(snapshot)
        runner = ScriptedRunner([failed("the moon is made of cheese")])
        loop = make_loop(generation, runner, classifier, knowledge_base=knowledge_base)

        outcome = loop.heal(
            program, classifier.classify_result(failed("selector not found: Archive")), evidence
        )

        assert outcome.session.status is SessionStatus.BLOCKED
        (event,) = knowledge_base.events
        assert event.pattern_id == "kb-1"
        assert event.outcome is LearningOutcome.FAILURE

    def test_cancelled_session_reports_nothing(
        self, generation, evidence, classifier, submit_program, memory_kb
    ):
        loop = make_loop(
            generation,
            ScriptedRunner(),
            classifier,
            knowledge_base=memory_kb,
            cancel_requested=lambda: True,
        )
        loop.heal(submit_program, classifier.classify_result(failed("selector not found: #submit")), evidence)
        assert memory_kb.events == []
