"""
Test execution via a pytest subprocess.

The runner never raises for test failures or timeouts: both are data in
the returned ExecutionResult. Results are parsed from the JUnit XML report
pytest writes with ``--junitxml``.
"""

import logging
import os
import re
import subprocess
import sys
import time
import xml.etree.ElementTree as ET
from pathlib import Path

from journeyforge.domain.exceptions import ExecutionTimeout
from journeyforge.domain.interfaces import TestRunnerInterface
from journeyforge.domain.models import ExecutionResult, ExecutionStatus, Failure

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 4000
NO_TESTS_COLLECTED = 5  # pytest exit code


def tail(text: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    return text if len(text) <= limit else text[-limit:]


class PytestRunner(TestRunnerInterface):
    """
    Runs a generated module with ``python -m pytest`` under a hard timeout.

    Args:
        timeout_s: Wall-clock limit for the subprocess
        base_url: Passed to pytest-playwright as --base-url when set
        extra_args: Additional pytest arguments
        python: Interpreter used to launch pytest
        cwd: Working directory for the subprocess
        env: Extra environment variables for the subprocess
    """

    def __init__(
        self,
        timeout_s: float = 300.0,
        base_url: str | None = None,
        extra_args: tuple[str, ...] | list[str] = (),
        python: str = sys.executable,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ):
        self.timeout_s = timeout_s
        self.base_url = base_url
        self.extra_args = tuple(extra_args)
        self.python = python
        self.cwd = cwd
        self.env = env or {}

    def command(self, test_path: Path, evidence_path: Path) -> list[str]:
        cmd = [
            self.python,
            "-m",
            "pytest",
            str(test_path),
            f"--junitxml={evidence_path}",
            "-q",
            "-p",
            "no:cacheprovider",
        ]
        if self.base_url:
            cmd.append(f"--base-url={self.base_url}")
        cmd.extend(self.extra_args)
        return cmd

    def run(self, test_path: Path, evidence_path: Path) -> ExecutionResult:
        evidence_path.parent.mkdir(parents=True, exist_ok=True)
        if evidence_path.exists():
            evidence_path.unlink()
        cmd = self.command(test_path, evidence_path)
        logger.info("Running %s", test_path)
        logger.debug("Command: %s", " ".join(cmd))

        started = time.monotonic()
        try:
            completed = self._execute(cmd)
        except ExecutionTimeout as e:
            duration = time.monotonic() - started
            logger.warning("Test run timed out after %.1fs: %s", e.timeout_s, test_path)
            return ExecutionResult(
                status=ExecutionStatus.TIMEOUT,
                failures=(Failure(message=str(e), test_name=test_path.stem),),
                evidence_path=str(evidence_path) if evidence_path.exists() else None,
                duration_s=duration,
            )
        duration = time.monotonic() - started

        failures, tests_run = self._parse_report(evidence_path, test_path)
        if completed.returncode == 0:
            status = ExecutionStatus.PASSED
            failures = ()
        else:
            status = ExecutionStatus.FAILED
            if not failures:
                failures = (self._output_failure(completed, test_path),)

        logger.info(
            "%s: %s (%d test(s), %.1fs)", test_path.name, status.value, tests_run, duration
        )
        return ExecutionResult(
            status=status,
            failures=failures,
            evidence_path=str(evidence_path) if evidence_path.exists() else None,
            exit_code=completed.returncode,
            stdout=tail(completed.stdout or ""),
            stderr=tail(completed.stderr or ""),
            duration_s=duration,
            tests_run=tests_run,
        )

    def _execute(self, cmd: list[str]) -> subprocess.CompletedProcess:
        env = {**os.environ, **self.env}
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                cwd=self.cwd,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionTimeout(self.timeout_s, cmd) from e

    def _parse_report(
        self, evidence_path: Path, test_path: Path
    ) -> tuple[tuple[Failure, ...], int]:
        """Failures and test count from the JUnit XML; empty when missing or corrupt."""
        if not evidence_path.exists():
            return (), 0
        try:
            root = ET.parse(evidence_path).getroot()
        except ET.ParseError as e:
            logger.warning("Corrupt JUnit report %s: %s", evidence_path, e)
            return (), 0

        failures: list[Failure] = []
        tests_run = 0
        for case in root.iter("testcase"):
            tests_run += 1
            for tag in ("failure", "error"):
                node = case.find(tag)
                if node is None:
                    continue
                text = node.text or ""
                message = node.get("message") or ""
                if not message and text.strip():
                    message = text.strip().splitlines()[-1]
                if not message:
                    message = f"{tag} without message"
                failures.append(
                    Failure(
                        message=message,
                        line=failure_line(text, test_path.name),
                        test_name=case.get("name", ""),
                    )
                )
        return tuple(failures), tests_run

    def _output_failure(
        self, completed: subprocess.CompletedProcess, test_path: Path
    ) -> Failure:
        output = ((completed.stdout or "") + "\n" + (completed.stderr or "")).strip()
        if completed.returncode == NO_TESTS_COLLECTED:
            message = f"no tests collected from {test_path.name}"
        else:
            message = tail(output, 1000) or f"pytest exited with code {completed.returncode}"
        return Failure(message=message, line=failure_line(output, test_path.name))


def failure_line(traceback_text: str, filename: str) -> int | None:
    """Deepest line of ``filename`` named in a pytest traceback."""
    pattern = re.compile(rf"(?:^|[\s/\\]){re.escape(filename)}:(\d+)")
    matches = pattern.findall(traceback_text)
    return int(matches[-1]) if matches else None
