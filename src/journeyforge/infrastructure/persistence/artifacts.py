"""
Filesystem layout of pipeline artifacts under the state directory.

    <state_dir>/
        analysis.json                         parsed Journeys
        plan.json                             IR programs
        generated.json                        generated-file manifest
        results/<journey>.json                execution results
        evidence/<journey>.xml                JUnit reports
        sessions/<journey>.refinement-session.json
        pipeline-state.json                   (FileStateStore)
        pipeline.lock                         (PipelineLock)

Every file is written atomically as soon as it is produced, so an
interrupted command leaves completed work on disk.
"""

import json
import logging
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from journeyforge.domain.exceptions import ArtifactMissing
from journeyforge.domain.models import (
    ExecutionResult,
    ExecutionStatus,
    Failure,
    FailureCategory,
    IRProgram,
    JourneyDocument,
    journey_slug,
)
from journeyforge.infrastructure.persistence.atomic import (
    atomic_write_json,
    read_json_with_recovery,
)
from journeyforge.ir.serialize import (
    document_from_dict,
    document_to_dict,
    program_from_dict,
    program_to_dict,
)

if TYPE_CHECKING:
    from journeyforge.healing.session import RefinementSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANALYSIS_FILE = "analysis.json"
PLAN_FILE = "plan.json"
MANIFEST_FILE = "generated.json"
CANCEL_FILE = "cancel-refine"


def result_to_dict(result: ExecutionResult) -> dict[str, Any]:
    return {
        "status": result.status.value,
        "exit_code": result.exit_code,
        "duration_s": result.duration_s,
        "tests_run": result.tests_run,
        "evidence_path": result.evidence_path,
        "failures": [
            {
                "message": f.message,
                "category": f.category.value,
                "locator": f.locator,
                "line": f.line,
                "test_name": f.test_name,
                "fingerprint": f.fingerprint,
                "confidence": f.confidence,
            }
            for f in result.failures
        ],
        "stdout": result.stdout,
        "stderr": result.stderr,
    }


def result_from_dict(data: dict[str, Any]) -> ExecutionResult:
    return ExecutionResult(
        status=ExecutionStatus(data["status"]),
        failures=tuple(
            Failure(
                message=f["message"],
                category=FailureCategory(f.get("category", "unclassified")),
                locator=f.get("locator"),
                line=f.get("line"),
                test_name=f.get("test_name", ""),
                fingerprint=f.get("fingerprint", ""),
                confidence=float(f.get("confidence", 0.0)),
            )
            for f in data.get("failures", [])
        ),
        evidence_path=data.get("evidence_path"),
        exit_code=data.get("exit_code"),
        stdout=data.get("stdout", ""),
        stderr=data.get("stderr", ""),
        duration_s=float(data.get("duration_s", 0.0)),
        tests_run=int(data.get("tests_run", 0)),
    )


class ArtifactStore:
    """Reads and writes per-stage artifacts in the state directory."""

    def __init__(self, state_dir: Path):
        self.state_dir = state_dir

    # Paths -----------------------------------------------------------------

    @property
    def analysis_path(self) -> Path:
        return self.state_dir / ANALYSIS_FILE

    @property
    def plan_path(self) -> Path:
        return self.state_dir / PLAN_FILE

    @property
    def manifest_path(self) -> Path:
        return self.state_dir / MANIFEST_FILE

    @property
    def cancel_path(self) -> Path:
        return self.state_dir / CANCEL_FILE

    def result_path(self, journey_id: str) -> Path:
        return self.state_dir / "results" / f"{journey_slug(journey_id)}.json"

    def evidence_path(self, journey_id: str) -> Path:
        return self.state_dir / "evidence" / f"{journey_slug(journey_id)}.xml"

    def session_path(self, journey_id: str) -> Path:
        return self.state_dir / "sessions" / f"{journey_slug(journey_id)}.refinement-session.json"

    # Analysis / plan ---------------------------------------------------------

    def write_analysis(self, documents: list[JourneyDocument]) -> None:
        atomic_write_json(
            self.analysis_path, {"journeys": [document_to_dict(d) for d in documents]}
        )

    def read_analysis(self) -> list[JourneyDocument]:
        """
        Raises:
            ArtifactMissing: If analysis.json is absent or unreadable
        """
        return self._read_required(self.analysis_path, "analyze", "journeys", document_from_dict)

    def write_plan(self, programs: list[IRProgram]) -> None:
        atomic_write_json(self.plan_path, {"programs": [program_to_dict(p) for p in programs]})

    def read_plan(self) -> list[IRProgram]:
        """
        Raises:
            ArtifactMissing: If plan.json is absent or unreadable
        """
        return self._read_required(self.plan_path, "plan", "programs", program_from_dict)

    def _read_required(
        self, path: Path, producer: str, key: str, build: Callable[[dict[str, Any]], T]
    ) -> list[T]:
        try:
            data = read_json_with_recovery(path)
        except json.JSONDecodeError as e:
            raise ArtifactMissing(str(path), producer, f"not valid JSON ({e.msg})") from e
        if data is None:
            raise ArtifactMissing(str(path), producer)
        if not isinstance(data, dict) or not isinstance(data.get(key), list):
            raise ArtifactMissing(str(path), producer, f"missing its '{key}' list")
        try:
            return [build(item) for item in data[key]]
        except (KeyError, TypeError, ValueError) as e:
            raise ArtifactMissing(str(path), producer, f"unreadable ({e})") from e

    def replace_program(self, program: IRProgram) -> None:
        """Swap one program in plan.json (healed IR)."""
        programs = [
            program if p.journey_id == program.journey_id else p for p in self.read_plan()
        ]
        self.write_plan(programs)

    # Manifest ----------------------------------------------------------------

    def read_manifest(self) -> dict[str, Any]:
        data = read_json_with_recovery(self.manifest_path)
        return data if isinstance(data, dict) else {"files": {}}

    def record_generated(self, journey_id: str, entry: dict[str, Any]) -> None:
        """Checkpoint one generated file in the manifest."""
        manifest = self.read_manifest()
        manifest.setdefault("files", {})[journey_id] = entry
        atomic_write_json(self.manifest_path, manifest)

    # Results -----------------------------------------------------------------

    def write_result(self, journey_id: str, result: ExecutionResult) -> None:
        atomic_write_json(self.result_path(journey_id), result_to_dict(result))

    def read_result(self, journey_id: str) -> ExecutionResult | None:
        data = read_json_with_recovery(self.result_path(journey_id))
        return None if data is None else result_from_dict(data)

    # Sessions ----------------------------------------------------------------

    def save_session(self, session: "RefinementSession") -> None:
        atomic_write_json(self.session_path(session.journey_id), session.to_dict())

    def load_session_data(self, journey_id: str) -> dict[str, Any] | None:
        """Raw session record; the healing layer rebuilds the aggregate."""
        data = read_json_with_recovery(self.session_path(journey_id))
        return data if isinstance(data, dict) else None

    # Cleanup -----------------------------------------------------------------

    def clear(self) -> None:
        """Delete stage artifacts. State, lock and generated tests are untouched."""
        for path in (self.analysis_path, self.plan_path, self.manifest_path, self.cancel_path):
            path.unlink(missing_ok=True)
        for name in ("results", "evidence", "sessions"):
            directory = self.state_dir / name
            if directory.exists():
                shutil.rmtree(directory)
        logger.info("Cleared artifacts in %s", self.state_dir)
