"""Tests for PytestRunner and ScriptedRunner."""

import subprocess
from pathlib import Path

import pytest

from journeyforge.domain.models import ExecutionResult, ExecutionStatus, Failure
from journeyforge.execution.runner import PytestRunner, failure_line
from journeyforge.execution.scripted import ScriptedRunner


@pytest.fixture
def runner(tmp_path: Path) -> PytestRunner:
    return PytestRunner(timeout_s=120, cwd=tmp_path)


def write_test(tmp_path: Path, name: str, body: str) -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return path


class TestPytestRunner:
    """Tests against a real pytest subprocess."""

    def test_command(self, tmp_path: Path):
        runner = PytestRunner(base_url="http://localhost:3000", extra_args=["-x"])
        cmd = runner.command(tmp_path / "test_a.py", tmp_path / "report.xml")
        assert cmd[1:4] == ["-m", "pytest", str(tmp_path / "test_a.py")]
        assert f"--junitxml={tmp_path / 'report.xml'}" in cmd
        assert "--base-url=http://localhost:3000" in cmd
        assert cmd[-1] == "-x"

    def test_passing_module(self, runner: PytestRunner, tmp_path: Path):
        test_path = write_test(tmp_path, "test_ok.py", "def test_ok():\n    assert True\n")
        evidence = tmp_path / "evidence" / "ok.xml"
        result = runner.run(test_path, evidence)
        assert result.status is ExecutionStatus.PASSED
        assert result.failures == ()
        assert result.tests_run == 1
        assert result.evidence_path == str(evidence)
        assert evidence.exists()

    def test_failing_module(self, runner: PytestRunner, tmp_path: Path):
        test_path = write_test(
            tmp_path,
            "test_bad.py",
            "def test_bad():\n    assert False, 'selector not found: #submit'\n",
        )
        result = runner.run(test_path, tmp_path / "bad.xml")
        assert result.status is ExecutionStatus.FAILED
        (failure,) = result.failures
        assert "selector not found: #submit" in failure.message
        assert failure.line == 2
        assert failure.test_name == "test_bad"
        assert result.exit_code == 1

    def test_timeout_is_a_status(self, runner: PytestRunner, tmp_path: Path, monkeypatch):
        def expire(*args, **kwargs):
            raise subprocess.TimeoutExpired(cmd="pytest", timeout=120)

        monkeypatch.setattr(subprocess, "run", expire)
        result = runner.run(tmp_path / "test_slow.py", tmp_path / "slow.xml")
        assert result.status is ExecutionStatus.TIMEOUT
        assert "exceeded 120s" in result.failures[0].message

    def test_no_tests_collected(self, runner: PytestRunner, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(
            runner, "_execute", lambda cmd: subprocess.CompletedProcess(cmd, 5, "", "")
        )
        result = runner.run(tmp_path / "test_empty.py", tmp_path / "empty.xml")
        assert result.status is ExecutionStatus.FAILED
        assert result.failures[0].message == "no tests collected from test_empty.py"

    def test_corrupt_report_falls_back_to_output(
        self, runner: PytestRunner, tmp_path: Path, monkeypatch
    ):
        evidence = tmp_path / "corrupt.xml"

        def execute(cmd):
            evidence.write_text("<testsuite", encoding="utf-8")
            return subprocess.CompletedProcess(cmd, 1, "", "")

        monkeypatch.setattr(runner, "_execute", execute)
        result = runner.run(tmp_path / "test_x.py", evidence)
        assert result.failures[0].message == "pytest exited with code 1"


class TestFailureLine:
    def test_deepest_line_of_file(self):
        text = "tests/test_a.py:10: in test_a\n    foo()\ntests/test_a.py:14: AssertionError"
        assert failure_line(text, "test_a.py") == 14

    def test_other_files_ignored(self):
        assert failure_line("lib/test_a.py.bak:3\nother_test_a.py:9", "test_a.py") is None


class TestScriptedRunner:
    def test_results_in_sequence_then_pass(self, tmp_path: Path):
        failed = ExecutionResult(ExecutionStatus.FAILED, (Failure("boom"),))
        runner = ScriptedRunner([failed])
        first = runner.run(tmp_path / "test_a.py", tmp_path / "a.xml")
        second = runner.run(tmp_path / "test_a.py", tmp_path / "a.xml")
        assert first.status is ExecutionStatus.FAILED
        assert first.evidence_path == str(tmp_path / "a.xml")
        assert second.status is ExecutionStatus.PASSED
        assert runner.call_count == 2

    def test_per_file_scripts(self, tmp_path: Path):
        failed = ExecutionResult(ExecutionStatus.FAILED, (Failure("boom"),))
        runner = ScriptedRunner(per_file={"test_b.py": [failed]})
        assert runner.run(tmp_path / "test_a.py", tmp_path / "a.xml").passed
        assert not runner.run(tmp_path / "test_b.py", tmp_path / "b.xml").passed
