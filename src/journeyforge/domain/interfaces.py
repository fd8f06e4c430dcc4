"""
Domain interfaces (Ports) for the Journey compiler.

These abstract base classes define the contracts that adapters must
satisfy. They have no external dependencies.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from journeyforge.domain.knowledge import KnowledgeBaseSnapshot
    from journeyforge.domain.models import (
        ExecutionResult,
        GuardResult,
        IRProgram,
        LearningEvent,
    )


class GuardInterface(ABC):
    """
    Port for static policy checks on generated source text.

    Guards are pure: they inspect text and never touch the filesystem.
    """

    @abstractmethod
    def validate(self, source: str, program: "IRProgram | None" = None) -> "GuardResult":
        """
        Check generated source against one or more policy rules.

        Args:
            source: Full text of the generated test module
            program: IR the source was rendered from, for rules that
                compare against it

        Returns:
            GuardResult listing every (rule id, line) violation
        """


class TestRunnerInterface(ABC):
    """Port for executing a generated test file."""

    __test__ = False  # Not a pytest test class

    @abstractmethod
    def run(self, test_path: Path, evidence_path: Path) -> "ExecutionResult":
        """
        Execute a generated test file and capture structured results.

        Must return (never raise) on test failures and on timeout; timeout
        is reported as its own status.

        Args:
            test_path: Generated test module to execute
            evidence_path: Where to write the machine-readable report

        Returns:
            ExecutionResult with status, failures and evidence reference
        """


class KnowledgeBaseInterface(ABC):
    """
    Port to the external knowledge base.

    The core reads one immutable snapshot per run and reports learning
    events back. Storage, merge and decay belong to the store.
    """

    @abstractmethod
    def snapshot(self) -> "KnowledgeBaseSnapshot":
        """Return the snapshot for this run. Repeated calls return the same object."""

    @abstractmethod
    def report(self, events: Sequence["LearningEvent"]) -> None:
        """Emit learning events (pattern id, outcome, Journey id)."""
