"""Tests for ArtifactStore."""

from dataclasses import replace
from pathlib import Path

import pytest

from journeyforge.domain.exceptions import ArtifactMissing
from journeyforge.domain.models import (
    ExecutionResult,
    ExecutionStatus,
    Failure,
    FailureCategory,
    IRProgram,
    JourneyDocument,
)
from journeyforge.healing.session import RefinementSession
from journeyforge.infrastructure.persistence.artifacts import ArtifactStore


@pytest.fixture
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / ".journeyforge")


class TestStageArtifacts:
    def test_analysis(self, artifacts: ArtifactStore, sign_in_document: JourneyDocument):
        artifacts.write_analysis([sign_in_document])
        (restored,) = artifacts.read_analysis()
        assert restored.journey_id == "JRN-0001"
        assert len(restored.steps) == len(sign_in_document.steps)

    def test_optional_artifacts_read_empty(self, artifacts: ArtifactStore):
        assert artifacts.read_manifest() == {"files": {}}
        assert artifacts.read_result("JRN-0001") is None
        assert artifacts.load_session_data("JRN-0001") is None

    def test_missing_stage_artifacts_raise(self, artifacts: ArtifactStore):
        with pytest.raises(ArtifactMissing, match="re-run 'analyze'") as exc_info:
            artifacts.read_analysis()
        assert exc_info.value.details()["problem"] == "missing"
        with pytest.raises(ArtifactMissing, match="re-run 'plan'"):
            artifacts.read_plan()

    @pytest.mark.parametrize(
        ("content", "problem"),
        [
            ("{not json", "not valid JSON"),
            ("[]", "missing its 'programs' list"),
            ('{"programs": [{"title": "no id"}]}', "unreadable"),
        ],
    )
    def test_unreadable_plan_raises(
        self, artifacts: ArtifactStore, content: str, problem: str
    ):
        artifacts.state_dir.mkdir(parents=True)
        artifacts.plan_path.write_text(content, encoding="utf-8")
        with pytest.raises(ArtifactMissing) as exc_info:
            artifacts.read_plan()
        assert exc_info.value.details()["problem"].startswith(problem)

    def test_empty_plan_is_not_missing(self, artifacts: ArtifactStore):
        artifacts.write_plan([])
        assert artifacts.read_plan() == []

    def test_replace_program(
        self,
        artifacts: ArtifactStore,
        sign_in_program: IRProgram,
        submit_program: IRProgram,
    ):
        artifacts.write_plan([sign_in_program, submit_program])
        healed = replace(submit_program, title="Healed")
        artifacts.replace_program(healed)
        plan = artifacts.read_plan()
        assert [p.journey_id for p in plan] == ["JRN-0001", "JRN-0002"]
        assert plan[1].title == "Healed"

    def test_manifest_checkpoints_each_file(self, artifacts: ArtifactStore):
        artifacts.record_generated("JRN-0001", {"path": "tests/test_jrn_0001.py"})
        artifacts.record_generated("JRN-0002", {"path": "tests/test_jrn_0002.py"})
        files = artifacts.read_manifest()["files"]
        assert set(files) == {"JRN-0001", "JRN-0002"}


class TestResults:
    def test_result_round_trip(self, artifacts: ArtifactStore):
        result = ExecutionResult(
            status=ExecutionStatus.FAILED,
            failures=(
                Failure(
                    message="selector not found: #submit",
                    category=FailureCategory.SELECTOR,
                    locator="#submit",
                    line=12,
                    test_name="test_submit_order",
                    fingerprint="selector:1a2b",
                    confidence=0.9,
                ),
            ),
            evidence_path="evidence/JRN-0002.xml",
            exit_code=1,
            duration_s=2.5,
            tests_run=1,
        )
        artifacts.write_result("JRN-0002", result)
        assert artifacts.read_result("JRN-0002") == result

    def test_paths_use_journey_slugs(self, artifacts: ArtifactStore):
        assert artifacts.result_path("team/JRN 1").name == "team_jrn_1.json"
        assert artifacts.evidence_path("JRN-1").name == "jrn_1.xml"


class TestSessionsAndCleanup:
    def test_session_saved_as_raw_record(self, artifacts: ArtifactStore):
        session = RefinementSession(journey_id="JRN-0002", test_path="tests/test_jrn_0002.py")
        artifacts.save_session(session)
        assert artifacts.session_path("JRN-0002").name == "jrn_0002.refinement-session.json"
        data = artifacts.load_session_data("JRN-0002")
        assert RefinementSession.from_dict(data).session_id == session.session_id

    def test_clear_removes_stage_artifacts(
        self, artifacts: ArtifactStore, sign_in_program: IRProgram
    ):
        artifacts.write_plan([sign_in_program])
        artifacts.write_result("JRN-0001", ExecutionResult(status=ExecutionStatus.PASSED))
        artifacts.save_session(RefinementSession(journey_id="JRN-0001", test_path="t.py"))
        state_file = artifacts.state_dir / "pipeline-state.json"
        state_file.write_text("{}", encoding="utf-8")

        artifacts.clear()

        assert not artifacts.plan_path.exists()
        assert not (artifacts.state_dir / "results").exists()
        assert not (artifacts.state_dir / "sessions").exists()
        assert state_file.exists()
