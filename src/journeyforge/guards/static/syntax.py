"""
Syntax validation guard.

Pure guard with no I/O dependencies - validates Python AST.
"""

import ast

from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.models import GuardResult, IRProgram, Violation


class SyntaxGuard(GuardInterface):
    """
    Validates that generated code parses as Python.

    Every other rule assumes well-formed source, so a syntax error is
    reported with the offending line.
    """

    rule_id = "syntax"

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        try:
            ast.parse(source)
        except SyntaxError as e:
            return GuardResult(
                passed=False,
                violations=(Violation(self.rule_id, e.lineno or 0, f"Syntax error: {e.msg}"),),
                guard_name=type(self).__name__,
            )
        return GuardResult(passed=True, guard_name=type(self).__name__)
