"""
Name resolution guard.

Pure AST-based guard that validates all used names are imported or defined.
Does NOT execute code - uses static analysis only.
"""

import ast
import builtins

from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.models import GuardResult, IRProgram, Violation


class UndefinedNameGuard(GuardInterface):
    """
    Validates that every name read in the module is imported or defined.

    Catches hand edits that drop an import the managed blocks rely on
    (``expect``, ``re``) before the file reaches the test runner.
    """

    rule_id = "undefined-name"
    BUILTINS = frozenset(dir(builtins))

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        try:
            tree = ast.parse(source)
        except SyntaxError:
            # Reported by SyntaxGuard
            return GuardResult(passed=True, guard_name=type(self).__name__)

        defined = self._collect_defined_names(tree)
        violations: list[Violation] = []
        reported: set[str] = set()
        for node in ast.walk(tree):
            if (
                isinstance(node, ast.Name)
                and isinstance(node.ctx, ast.Load)
                and node.id not in defined
                and node.id not in self.BUILTINS
                and node.id not in reported
            ):
                reported.add(node.id)
                violations.append(
                    Violation(self.rule_id, node.lineno, f"Undefined name (missing import?): {node.id}")
                )
        violations.sort(key=lambda v: v.line)
        return GuardResult(
            passed=not violations,
            violations=tuple(violations),
            guard_name=type(self).__name__,
        )

    def _collect_defined_names(self, tree: ast.AST) -> set[str]:
        """Imports, definitions, parameters (including lambdas) and assignment targets."""
        defined: set[str] = set()
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    defined.add(alias.asname or alias.name.split(".")[0])
            elif isinstance(node, ast.ImportFrom):
                for alias in node.names:
                    if alias.name != "*":
                        defined.add(alias.asname or alias.name)
            elif isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda):
                if not isinstance(node, ast.Lambda):
                    defined.add(node.name)
                arguments = node.args
                for arg in arguments.posonlyargs + arguments.args + arguments.kwonlyargs:
                    defined.add(arg.arg)
                for extra in (arguments.vararg, arguments.kwarg):
                    if extra is not None:
                        defined.add(extra.arg)
            elif isinstance(node, ast.ClassDef):
                defined.add(node.name)
            elif isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
                defined.add(node.id)
            elif isinstance(node, ast.ExceptHandler) and node.name:
                defined.add(node.name)
        return defined
