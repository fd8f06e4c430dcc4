"""
PipelineService: the seven pipeline commands.

Every mutating command follows read-validate-write: load the state and
validate the stage transition before touching anything, then take the
pipeline lock, re-check the revision, do the work (checkpointing each
artifact as it is produced) and save. The lock is held until the save, so
a command that lost a race to another process fails before it writes an
artifact. An invalid transition leaves the state file byte-for-byte
unchanged.
"""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from journeyforge.application.generation import GenerationPair
from journeyforge.config import JourneyForgeConfig
from journeyforge.domain.exceptions import ArtifactMissing, ConfigurationError, ParseError
from journeyforge.domain.interfaces import KnowledgeBaseInterface, TestRunnerInterface
from journeyforge.domain.knowledge import confidence_policy
from journeyforge.domain.models import (
    ExecutionResult,
    ExecutionStatus,
    JourneyDocument,
    journey_slug,
)
from journeyforge.domain.pipeline import PipelineStage, PipelineState
from journeyforge.execution.classifier import FailureClassifier, summarize
from journeyforge.execution.runner import PytestRunner
from journeyforge.healing.circuit_breaker import CircuitBreakerConfig
from journeyforge.healing.loop import HealingLoop
from journeyforge.healing.session import RefinementSession, SessionStatus
from journeyforge.infrastructure.knowledge.filesystem import FilesystemKnowledgeBase
from journeyforge.infrastructure.persistence.artifacts import ArtifactStore
from journeyforge.infrastructure.persistence.lock import PipelineLock
from journeyforge.infrastructure.persistence.state_store import LOCK_FILE, FileStateStore
from journeyforge.ir.builder import build_program
from journeyforge.journey.parser import parse_journey_file
from journeyforge.mapping.matcher import StepMatcher

logger = logging.getLogger(__name__)


# =============================================================================
# Command results
# =============================================================================


@dataclass(frozen=True)
class RunSummary:
    """Outcome counts of one run (or refine) over all Journeys."""

    total: int
    passed: int
    failed: int
    timed_out: int
    categories: dict[str, int] = field(default_factory=dict)
    statuses: dict[str, str] = field(default_factory=dict)  # journey id -> status

    @classmethod
    def from_results(cls, results: dict[str, ExecutionResult]) -> "RunSummary":
        failures = [f for r in results.values() for f in r.failures if not r.passed]
        return cls(
            total=len(results),
            passed=sum(1 for r in results.values() if r.status is ExecutionStatus.PASSED),
            failed=sum(1 for r in results.values() if r.status is ExecutionStatus.FAILED),
            timed_out=sum(1 for r in results.values() if r.status is ExecutionStatus.TIMEOUT),
            categories=summarize(failures),
            statuses={jid: r.status.value for jid, r in results.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "categories": dict(self.categories),
            "statuses": dict(self.statuses),
        }


@dataclass(frozen=True)
class CommandResult:
    """What a command did, for CLI rendering."""

    command: str
    stage: PipelineStage
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "stage": self.stage.value,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Service
# =============================================================================


class PipelineService:
    """
    Orchestrates analyze -> plan -> generate -> run -> refine.

    Args:
        config: Loaded configuration
        workdir: Working directory all relative paths resolve against
        runner: Test runner (default PytestRunner from config)
        knowledge_base: Knowledge base (default filesystem export)
        classifier: Failure classifier
        clock: Epoch clock for healing budgets
    """

    def __init__(
        self,
        config: JourneyForgeConfig,
        workdir: Path,
        *,
        runner: TestRunnerInterface | None = None,
        knowledge_base: KnowledgeBaseInterface | None = None,
        classifier: FailureClassifier | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.workdir = workdir
        self.state_dir = workdir / config.persistence.state_dir
        lock = PipelineLock(
            self.state_dir / LOCK_FILE,
            timeout_s=config.persistence.lock_timeout_s,
            stale_after_s=config.persistence.stale_after_s,
        )
        self.store = FileStateStore(self.state_dir, lock)
        self.artifacts = ArtifactStore(self.state_dir)
        self.generation = GenerationPair(workdir / config.codegen.tests_dir)
        self.runner = runner or PytestRunner(
            timeout_s=config.runner.timeout_s,
            base_url=config.runner.base_url,
            extra_args=config.runner.pytest_args,
            cwd=workdir,
        )
        self.knowledge_base = knowledge_base or FilesystemKnowledgeBase(
            workdir / config.knowledge.export_path,
            workdir / config.knowledge.events_path,
        )
        self.classifier = classifier or FailureClassifier()
        self.clock = clock

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def analyze(self) -> CommandResult:
        """Parse every Journey in ``journeys_dir`` into analysis.json."""
        with self._command(PipelineStage.ANALYZED, "analyze") as (state, expected):
            journeys_dir = self.workdir / self.config.journeys_dir
            if not journeys_dir.is_dir():
                raise ConfigurationError(f"Journeys directory not found: {journeys_dir}")
            paths = sorted(journeys_dir.glob("*.md"))
            if not paths:
                raise ConfigurationError(f"No Journey files (*.md) in {journeys_dir}")

            documents = [parse_journey_file(p) for p in paths]
            _check_unique_ids(documents)
            self.artifacts.write_analysis(documents)

            state.transition(PipelineStage.ANALYZED, "analyze")
            state.journey_ids = [d.journey_id for d in documents]
            self.store.save(state, expected)
        return CommandResult(
            "analyze",
            state.stage,
            f"Analyzed {len(documents)} Journey(s)",
            {"journeys": state.journey_ids},
        )

    def plan(self) -> CommandResult:
        """Map every analyzed Journey to an IR program in plan.json."""
        with self._command(PipelineStage.PLANNED, "plan") as (state, expected):
            documents = self.artifacts.read_analysis()
            snapshot = self.knowledge_base.snapshot()
            matcher = StepMatcher(
                snapshot,
                confidence_threshold=self.config.matcher.kb_confidence_threshold,
                policy=confidence_policy(self.config.matcher.confidence_policy),
            )
            programs = [build_program(d, snapshot, matcher=matcher) for d in documents]
            self.artifacts.write_plan(programs)

            state.transition(PipelineStage.PLANNED, "plan")
            self.store.save(state, expected)
        details = {
            p.journey_id: {
                "steps": p.stats.total_steps if p.stats else 0,
                "blocked": p.stats.blocked_primitives if p.stats else 0,
                "selector_debt": p.stats.selector_debt if p.stats else 0,
            }
            for p in programs
        }
        blocked = sum(d["blocked"] for d in details.values())
        return CommandResult(
            "plan",
            state.stage,
            f"Planned {len(programs)} Journey(s), {blocked} blocked primitive(s)",
            details,
        )

    def generate(self) -> CommandResult:
        """
        Generate, validate and write one test module per program.

        Raises:
            ValidationFailure: If any module violates a rule; files already
                generated stay checkpointed, the stage does not advance
        """
        with self._command(PipelineStage.GENERATED, "generate") as (state, expected):
            programs = self.artifacts.read_plan()
            self.generation.ensure_conftest()
            written: list[str] = []
            for program in programs:
                generated = self.generation.execute(program)
                self.artifacts.record_generated(
                    program.journey_id,
                    {
                        "path": str(generated.path),
                        "changed": generated.changed,
                        "blocked_primitives": (
                            program.stats.blocked_primitives if program.stats else 0
                        ),
                        "assertions": program.stats.assertions if program.stats else 0,
                    },
                )
                written.append(str(generated.path))

            state.transition(PipelineStage.GENERATED, "generate")
            state.test_paths = written
            self.store.save(state, expected)
        return CommandResult(
            "generate", state.stage, f"Generated {len(written)} test file(s)", {"files": written}
        )

    def run(self, resume: bool = False) -> CommandResult:
        """
        Execute every generated test; each result is flushed immediately.

        Args:
            resume: Reuse results already on disk from an interrupted run
        """
        with self._command(PipelineStage.TESTED, "run") as (state, expected):
            results: dict[str, ExecutionResult] = {}
            for program in self.artifacts.read_plan():
                jid = program.journey_id
                if resume:
                    previous = self.artifacts.read_result(jid)
                    if previous is not None:
                        logger.info("Reusing result for %s", jid)
                        results[jid] = previous
                        continue
                raw = self.runner.run(
                    self.generation.test_path(jid), self.artifacts.evidence_path(jid)
                )
                results[jid] = self.classifier.classify_result(raw)
                self.artifacts.write_result(jid, results[jid])
                self.store.lock.refresh()

            summary = RunSummary.from_results(results)
            state.transition(PipelineStage.TESTED, "run")
            self.store.save(state, expected)
        return CommandResult(
            "run",
            state.stage,
            f"{summary.passed}/{summary.total} passed",
            summary.to_dict(),
        )

    def refine(self) -> CommandResult:
        """
        Heal failing tests within the configured bounds.

        With no failures the pipeline completes directly. Otherwise it
        moves to refining, heals each failing Journey, and ends completed,
        blocked (with the triggering reason) or, when cancelled, back at
        tested. A cancel request left over from before this refine started
        is discarded; one made while it runs is consumed by it.
        """
        state = self.store.load()
        expected = state.revision
        # A refine interrupted mid-run left the stage at refining; it resumes there
        resuming = state.stage is PipelineStage.REFINING
        if not resuming:
            state.validate_transition(PipelineStage.REFINING, "refine")
        with self.store.exclusive(expected):
            self._discard_cancel_request()
            try:
                return self._refine(state, expected, resuming)
            finally:
                self._discard_cancel_request()

    def status(self) -> dict[str, Any]:
        """Read-only summary of the pipeline. Never mutates state."""
        state = self.store.load()
        results = {
            jid: result
            for jid in state.journey_ids
            if (result := self.artifacts.read_result(jid)) is not None
        }
        return {
            "stage": state.stage.value,
            "revision": state.revision,
            "is_blocked": state.is_blocked,
            "blocked_reason": state.blocked_reason,
            "journeys": list(state.journey_ids),
            "test_paths": list(state.test_paths),
            "refinement_attempts": state.refinement_attempts,
            "results": RunSummary.from_results(results).to_dict() if results else None,
            "history": [
                {
                    "timestamp": h.timestamp,
                    "command": h.command,
                    "stage": h.stage.value,
                    "success": h.success,
                }
                for h in state.history[-5:]
            ],
        }

    def clean(self) -> CommandResult:
        """Reset to initial from any stage and clear artifacts; generated tests are kept."""
        state = self.store.load()
        expected = state.revision
        with self.store.exclusive(expected):
            self.artifacts.clear()
            state.reset("clean")
            self.store.save(state, expected)
        return CommandResult("clean", state.stage, "Pipeline reset")

    def request_cancel(self) -> Path:
        """Ask a running refine to stop at its next iteration."""
        path = self.artifacts.cancel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        return path

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _command(
        self, target: PipelineStage, command: str
    ) -> Iterator[tuple[PipelineState, int]]:
        """
        Load and validate, then hold the lock for the command's side effects.

        The transition is checked before any lock or file is touched
        (StateTransitionError). Under the lock the revision is checked
        again, so a command that lost a race raises ConcurrencyConflict
        before it writes anything.
        """
        state = self.store.load()
        state.validate_transition(target, command)
        logger.debug("%s: %s -> %s", command, state.stage.value, target.value)
        with self.store.exclusive(state.revision):
            yield state, state.revision

    def _refine(self, state: PipelineState, expected: int, resuming: bool) -> CommandResult:
        programs = {p.journey_id: p for p in self.artifacts.read_plan()}
        results: dict[str, ExecutionResult] = {}
        for jid in programs:
            result = self.artifacts.read_result(jid)
            if result is None:
                raise ArtifactMissing(str(self.artifacts.result_path(jid)), "run")
            results[jid] = result
        failing = [jid for jid, r in results.items() if not r.passed]

        if not failing:
            state.transition(PipelineStage.COMPLETED, "refine")
            self.store.save(state, expected)
            return CommandResult(
                "refine", state.stage, "All tests passed", RunSummary.from_results(results).to_dict()
            )

        if not resuming:
            state.transition(PipelineStage.REFINING, "refine")
            expected = self.store.save(state, expected)

        loop = self._healing_loop()
        blocked: list[str] = []
        cancelled = False
        sessions: dict[str, dict[str, Any]] = {}
        for jid in failing:
            outcome = loop.heal(
                programs[jid],
                results[jid],
                self.artifacts.evidence_path(jid),
                session=self._resumable_session(jid),
            )
            results[jid] = outcome.result
            self.artifacts.write_result(jid, outcome.result)
            if outcome.applied:
                self.artifacts.replace_program(outcome.program)
            state.refinement_attempts += len(outcome.session.attempts)
            sessions[jid] = {
                "status": outcome.session.status.value,
                "stop_reason": outcome.session.stop_reason,
                "attempts": len(outcome.session.attempts),
            }
            if outcome.session.status is SessionStatus.CANCELLED:
                cancelled = True
                break
            if outcome.session.status is SessionStatus.BLOCKED:
                blocked.append(f"{jid}: {outcome.session.stop_reason}")

        if cancelled:
            state.transition(PipelineStage.TESTED, "refine")
            message = "Refinement cancelled"
        elif blocked:
            state.transition(PipelineStage.BLOCKED, "refine", reason="; ".join(blocked))
            message = f"Blocked: {state.blocked_reason}"
        else:
            state.transition(PipelineStage.COMPLETED, "refine")
            message = f"Healed {len(failing)} Journey(s)"
        self.store.save(state, expected)
        details = RunSummary.from_results(results).to_dict()
        details["sessions"] = sessions
        return CommandResult("refine", state.stage, message, details)

    def _discard_cancel_request(self) -> None:
        if self.artifacts.cancel_path.exists():
            logger.info("Discarding cancel request %s", self.artifacts.cancel_path)
            self.artifacts.cancel_path.unlink(missing_ok=True)

    def _checkpoint_session(self, session: RefinementSession) -> None:
        self.artifacts.save_session(session)
        self.store.lock.refresh()

    def _healing_loop(self) -> HealingLoop:
        healing = self.config.healing
        return HealingLoop(
            self.generation,
            self.runner,
            self.classifier,
            breaker_config=CircuitBreakerConfig(
                max_attempts=healing.max_attempts,
                max_duration_s=healing.max_duration_s,
                max_cost=healing.max_cost,
            ),
            default_timeout_ms=healing.default_timeout_ms,
            max_timeout_ms=healing.max_timeout_ms,
            save_session=self._checkpoint_session,
            knowledge_base=self.knowledge_base,
            cancel_requested=self.artifacts.cancel_path.exists,
            clock=self.clock,
        )

    def _resumable_session(self, journey_id: str) -> RefinementSession | None:
        """A session interrupted mid-run is resumed; finished ones start over."""
        data = self.artifacts.load_session_data(journey_id)
        if data is None:
            return None
        session = RefinementSession.from_dict(data)
        if session.status is not SessionStatus.RUNNING:
            return None
        logger.info("Resuming refinement session %s for %s", session.session_id, journey_id)
        return session



def _check_unique_ids(documents: list[JourneyDocument]) -> None:
    """Journey ids must be unique, and so must the file names derived from them."""
    seen: dict[str, JourneyDocument] = {}
    for document in documents:
        slug = journey_slug(document.journey_id)
        if not slug:
            raise ParseError(
                f"Journey id {document.journey_id!r} has no letters or digits",
                source=document.source_path,
                field="id",
            )
        other = seen.get(slug)
        if other is not None:
            if other.journey_id == document.journey_id:
                problem = f"Journey id {document.journey_id!r} is declared in both"
            else:
                problem = (
                    f"Journey ids {other.journey_id!r} and {document.journey_id!r} "
                    f"both map to file name {slug!r}; declared in"
                )
            raise ParseError(
                f"{problem} {other.source_path} and {document.source_path}",
                source=document.source_path,
                field="id",
            )
        seen[slug] = document
