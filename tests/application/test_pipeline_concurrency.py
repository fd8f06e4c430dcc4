"""Two processes racing pipeline commands against one working directory."""

import multiprocessing
from pathlib import Path
from typing import Any

import pytest

from journeyforge.application.pipeline import PipelineService
from journeyforge.config import JourneyForgeConfig
from journeyforge.domain.exceptions import ConcurrencyConflict
from journeyforge.domain.pipeline import PipelineStage
from journeyforge.execution.scripted import ScriptedRunner
from journeyforge.infrastructure.knowledge.memory import InMemoryKnowledgeBase


def make_service(workdir: Path) -> PipelineService:
    return PipelineService(
        JourneyForgeConfig(),
        workdir,
        runner=ScriptedRunner(),
        knowledge_base=InMemoryKnowledgeBase(),
    )


def _run_command(workdir: str, command: str, barrier: Any, results: Any) -> None:
    """
    Child process body: load state, wait for the rival to load the same
    revision, then run ``command`` and report how it ended.
    """
    service = make_service(Path(workdir))
    load = service.store.load

    def load_then_wait():
        state = load()
        barrier.wait(timeout=60)
        return state

    service.store.load = load_then_wait
    try:
        result = getattr(service, command)()
    except ConcurrencyConflict as e:
        results.put((command, "conflict", type(e).__name__))
    except Exception as e:
        results.put((command, "error", repr(e)))
    else:
        results.put((command, "ok", result.stage.value))


def race(workdir: Path, first: str, second: str) -> list[tuple[str, str, str]]:
    ctx = multiprocessing.get_context("spawn")
    barrier = ctx.Barrier(2)
    results = ctx.Queue()
    processes = [
        ctx.Process(target=_run_command, args=(str(workdir), command, barrier, results))
        for command in (first, second)
    ]
    for process in processes:
        process.start()
    outcomes = [results.get(timeout=120) for _ in processes]
    for process in processes:
        process.join(timeout=30)
        assert process.exitcode == 0
    return outcomes


@pytest.fixture
def analyzed(workdir: Path) -> PipelineService:
    service = make_service(workdir)
    service.analyze()
    return service


class TestCommandRace:
    """Exactly one of two commands loaded at the same revision commits."""

    def test_plan_against_plan(self, workdir: Path, analyzed: PipelineService) -> None:
        outcomes = race(workdir, "plan", "plan")

        assert sorted(kind for _, kind, _ in outcomes) == ["conflict", "ok"], outcomes
        assert [detail for _, kind, detail in outcomes if kind == "conflict"] == [
            "ConcurrencyConflict"
        ]
        state = analyzed.store.load()
        assert state.revision == 2
        assert state.stage is PipelineStage.PLANNED
        assert [p.journey_id for p in analyzed.artifacts.read_plan()] == ["JRN-0001", "JRN-0002"]

    def test_plan_against_clean(self, workdir: Path, analyzed: PipelineService) -> None:
        outcomes = race(workdir, "plan", "clean")

        assert sorted(kind for _, kind, _ in outcomes) == ["conflict", "ok"], outcomes
        (winner,) = [command for command, kind, _ in outcomes if kind == "ok"]
        state = analyzed.store.load()
        assert state.revision == 2
        if winner == "plan":
            assert state.stage is PipelineStage.PLANNED
            assert analyzed.artifacts.plan_path.exists()
            assert analyzed.artifacts.analysis_path.exists()
        else:
            assert state.stage is PipelineStage.INITIAL
            assert not analyzed.artifacts.plan_path.exists()
            assert not analyzed.artifacts.analysis_path.exists()
        assert not analyzed.store.lock.path.exists()
