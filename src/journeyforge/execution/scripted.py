"""
Scripted runner for testing without a browser.

Returns predefined results in sequence, per Journey test file.
"""

from dataclasses import replace
from pathlib import Path

from journeyforge.domain.interfaces import TestRunnerInterface
from journeyforge.domain.models import ExecutionResult, ExecutionStatus


class ScriptedRunner(TestRunnerInterface):
    """Returns predefined results for testing."""

    def __init__(
        self,
        results: list[ExecutionResult] | None = None,
        per_file: dict[str, list[ExecutionResult]] | None = None,
    ):
        """
        Args:
            results: Results returned in sequence for any file
            per_file: Results returned in sequence for one test file name
                (e.g. ``test_jrn_0001.py``), taking precedence over ``results``
        """
        self._results = list(results or [])
        self._per_file = {name: list(seq) for name, seq in (per_file or {}).items()}
        self.calls: list[Path] = []

    def run(self, test_path: Path, evidence_path: Path) -> ExecutionResult:
        """Return the next predefined result; passing once the script runs out."""
        self.calls.append(test_path)
        queue = self._per_file.get(test_path.name)
        if queue is None:
            queue = self._results
        result = queue.pop(0) if queue else ExecutionResult(status=ExecutionStatus.PASSED)
        return replace(result, evidence_path=str(evidence_path))

    @property
    def call_count(self) -> int:
        """Number of times run() has been called."""
        return len(self.calls)
