"""
Convention Enforcement Tests.

Permanent tests that catch anti-patterns which import-based layer rules
cannot detect: frozen dataclass conventions, immutable collections,
silent exception swallowing, and interface contracts.
"""

import ast
import inspect
from pathlib import Path

import pytest

SRC_ROOT = Path(__file__).parent.parent.parent / "src" / "journeyforge"

# Aggregates mutated through their own methods
MUTABLE_DATACLASS_ALLOWLIST = {"PipelineState"}

IMMUTABLE_MODEL_FILES = ["models.py", "knowledge.py"]


def _is_dataclass_decorator(decorator: ast.expr) -> tuple[bool, bool]:
    """Return (is_dataclass, is_frozen) for one decorator node."""
    if isinstance(decorator, ast.Name) and decorator.id == "dataclass":
        return True, False
    if isinstance(decorator, ast.Call):
        func = decorator.func
        if isinstance(func, ast.Name) and func.id == "dataclass":
            for kw in decorator.keywords:
                if kw.arg == "frozen" and isinstance(kw.value, ast.Constant):
                    return True, bool(kw.value.value)
            return True, False
    return False, False


def _dataclass_info(filepath: Path) -> list[tuple[ast.ClassDef, bool]]:
    """Parse a file and return (class node, is_frozen) for each @dataclass."""
    tree = ast.parse(filepath.read_text(encoding="utf-8"))
    results = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.ClassDef):
            continue
        for decorator in node.decorator_list:
            is_dataclass, is_frozen = _is_dataclass_decorator(decorator)
            if is_dataclass:
                results.append((node, is_frozen))
    return results


class TestFrozenDataclassConvention:
    """Domain value objects must be frozen."""

    @pytest.mark.parametrize("filename", IMMUTABLE_MODEL_FILES)
    def test_domain_models_are_frozen(self, filename):
        violations = [
            node.name
            for node, is_frozen in _dataclass_info(SRC_ROOT / "domain" / filename)
            if not is_frozen and node.name not in MUTABLE_DATACLASS_ALLOWLIST
        ]
        assert not violations, (
            f"Domain dataclasses must be frozen. Violations: {violations}. "
            f"If mutable is intentional, add to MUTABLE_DATACLASS_ALLOWLIST."
        )

    def test_pipeline_history_entries_are_frozen(self):
        path = SRC_ROOT / "domain" / "pipeline.py"
        info = {node.name: frozen for node, frozen in _dataclass_info(path)}
        assert info["HistoryEntry"] is True
        assert info["PipelineState"] is False


class TestImmutableCollections:
    """Frozen domain model fields should use tuple, not list."""

    @pytest.mark.parametrize("filename", IMMUTABLE_MODEL_FILES)
    def test_domain_models_use_tuples_not_lists(self, filename):
        path = SRC_ROOT / "domain" / filename
        source = path.read_text(encoding="utf-8")
        violations = []

        for node, is_frozen in _dataclass_info(path):
            if not is_frozen:
                continue
            for item in node.body:
                if isinstance(item, ast.AnnAssign):
                    target_name = getattr(item.target, "id", "?")
                    annotation = ast.get_source_segment(source, item.annotation) or ""
                    if "list[" in annotation.lower():
                        violations.append(f"{node.name}.{target_name}")

        assert not violations, (
            "Frozen dataclass fields should use tuple, not list:\n"
            + "\n".join(f"  - {v}" for v in violations)
        )


class TestNoSilentExceptionSwallowing:
    """No bare 'except: pass' or 'except Exception: pass' in src/."""

    def test_no_bare_except_pass(self):
        violations = []

        for py_file in SRC_ROOT.rglob("*.py"):
            source = py_file.read_text(encoding="utf-8")
            tree = ast.parse(source)
            for node in ast.walk(tree):
                if not isinstance(node, ast.ExceptHandler):
                    continue
                if node.type is None:
                    violations.append(f"{py_file.name}:{node.lineno}: bare except")
                    continue
                if len(node.body) == 1:
                    stmt = node.body[0]
                    is_pass = isinstance(stmt, ast.Pass)
                    is_ellipsis = (
                        isinstance(stmt, ast.Expr)
                        and isinstance(stmt.value, ast.Constant)
                        and stmt.value.value is ...
                    )
                    if is_pass or is_ellipsis:
                        handler_type = ast.get_source_segment(source, node.type) or ""
                        violations.append(
                            f"{py_file.name}:{node.lineno}: except {handler_type}: pass"
                        )

        assert not violations, "Silent exception swallowing found:\n" + "\n".join(
            f"  - {v}" for v in violations
        )


class TestInterfaceConventions:
    """Interface naming and contract conventions."""

    def test_all_ports_end_with_interface(self):
        """All ABCs in domain/interfaces.py must end with 'Interface'."""
        from journeyforge.domain import interfaces

        abstract_classes = [
            name
            for name, obj in inspect.getmembers(interfaces, inspect.isclass)
            if inspect.isabstract(obj) and not name.startswith("_")
        ]

        violations = [name for name in abstract_classes if not name.endswith("Interface")]
        assert not violations, f"Abstract classes should end with 'Interface': {violations}"

    def test_all_interface_methods_are_abstract(self):
        """Every public method on a port must be abstract."""
        from journeyforge.domain import interfaces

        violations = []
        for name, cls in inspect.getmembers(interfaces, inspect.isclass):
            if not inspect.isabstract(cls) or not name.endswith("Interface"):
                continue
            for method_name, method in inspect.getmembers(cls, predicate=inspect.isfunction):
                if method_name.startswith("_"):
                    continue
                if not getattr(method, "__isabstractmethod__", False):
                    violations.append(f"{name}.{method_name}")

        assert not violations, f"Public interface methods must be abstract: {violations}"

    def test_adapters_are_concrete(self):
        """Every adapter implements all abstract methods of its port."""
        from journeyforge.application.generation import GenerationPair
        from journeyforge.execution.runner import PytestRunner
        from journeyforge.execution.scripted import ScriptedRunner
        from journeyforge.guards import CompositeGuard
        from journeyforge.infrastructure.knowledge import (
            FilesystemKnowledgeBase,
            InMemoryKnowledgeBase,
        )

        for adapter in (
            GenerationPair,
            PytestRunner,
            ScriptedRunner,
            CompositeGuard,
            FilesystemKnowledgeBase,
            InMemoryKnowledgeBase,
        ):
            assert not inspect.isabstract(adapter), f"{adapter.__name__} is abstract"
