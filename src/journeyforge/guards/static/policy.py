"""
Policy guards for generated test modules.

Pure AST and text checks. Each guard reports (rule id, line) violations
and never touches the filesystem. Parse failures are left to SyntaxGuard.
"""

import ast
from collections.abc import Iterator

from journeyforge.codegen.generator import BLOCKED_MARKER
from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.models import GuardResult, IRProgram, Violation

# =============================================================================
# Helpers
# =============================================================================


def _parse(source: str) -> ast.Module | None:
    try:
        return ast.parse(source)
    except SyntaxError:
        return None


def _dotted(node: ast.AST) -> str:
    """Dotted name for Name/Attribute chains ("pytest.mark.skip"), else ""."""
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if isinstance(node, ast.Name):
        parts.append(node.id)
        return ".".join(reversed(parts))
    return ""


def _calls(tree: ast.AST) -> Iterator[ast.Call]:
    for node in ast.walk(tree):
        if isinstance(node, ast.Call):
            yield node


def _test_function_line(tree: ast.Module) -> int:
    for node in ast.walk(tree):
        if isinstance(node, ast.FunctionDef) and node.name.startswith("test_"):
            return node.lineno
    return 1


def _result(guard: GuardInterface, violations: list[Violation]) -> GuardResult:
    violations.sort(key=lambda v: (v.line, v.rule_id))
    return GuardResult(
        passed=not violations,
        violations=tuple(violations),
        guard_name=type(guard).__name__,
    )


# =============================================================================
# Forbidden constructs
# =============================================================================


SLEEP_CALLS = frozenset({"time.sleep", "sleep", "asyncio.sleep"})
SKIP_CALLS = frozenset({"pytest.skip", "pytest.xfail", "pytest.importorskip"})
SKIP_MARKERS = frozenset({"pytest.mark.skip", "pytest.mark.skipif", "pytest.mark.xfail"})


class ForbiddenPatternGuard(GuardInterface):
    """
    Rejects constructs that hide flakiness instead of fixing it.

    Rules:
        no-sleep: time.sleep(...) or page.wait_for_timeout(...)
        no-force: force=True on any interaction
        no-networkidle: "networkidle" load states
        no-skip: pytest.skip/xfail calls or skip/xfail markers
    """

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        tree = _parse(source)
        if tree is None:
            return GuardResult(passed=True, guard_name=type(self).__name__)

        violations: list[Violation] = []
        for call in _calls(tree):
            name = _dotted(call.func)
            if name in SLEEP_CALLS or name.endswith(".wait_for_timeout"):
                violations.append(Violation("no-sleep", call.lineno, f"Fixed delay: {name}()"))
            if name in SKIP_CALLS:
                violations.append(Violation("no-skip", call.lineno, f"Test bypass: {name}()"))
            for keyword in call.keywords:
                if (
                    keyword.arg == "force"
                    and isinstance(keyword.value, ast.Constant)
                    and keyword.value.value is True
                ):
                    violations.append(
                        Violation("no-force", call.lineno, "Forced interaction: force=True")
                    )
            arguments = list(call.args) + [k.value for k in call.keywords]
            if any(
                isinstance(arg, ast.Constant) and arg.value == "networkidle" for arg in arguments
            ):
                violations.append(
                    Violation("no-networkidle", call.lineno, "Network-idle wait is not allowed")
                )

        for node in ast.walk(tree):
            if isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef):
                for decorator in node.decorator_list:
                    target = decorator.func if isinstance(decorator, ast.Call) else decorator
                    name = _dotted(target)
                    if name in SKIP_MARKERS:
                        violations.append(
                            Violation("no-skip", decorator.lineno, f"Test bypass: @{name}")
                        )
        return _result(self, violations)


# =============================================================================
# Traceability and honesty rules
# =============================================================================


class RequiredTagGuard(GuardInterface):
    """
    Requires the Journey marker (with the Journey id) and the tier marker.

    Without a program only the presence of a journey marker is checked.
    """

    rule_id = "required-tags"

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        tree = _parse(source)
        if tree is None:
            return GuardResult(passed=True, guard_name=type(self).__name__)

        journey_ids: set[str] = set()
        markers: set[str] = set()
        for node in ast.walk(tree):
            if not isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
                continue
            for decorator in node.decorator_list:
                target = decorator.func if isinstance(decorator, ast.Call) else decorator
                name = _dotted(target)
                markers.add(name)
                if name == "pytest.mark.journey" and isinstance(decorator, ast.Call):
                    journey_ids.update(
                        arg.value
                        for arg in decorator.args
                        if isinstance(arg, ast.Constant) and isinstance(arg.value, str)
                    )

        line = _test_function_line(tree)
        violations: list[Violation] = []
        if program is None:
            if "pytest.mark.journey" not in markers:
                violations.append(Violation(self.rule_id, line, "Missing @pytest.mark.journey marker"))
            return _result(self, violations)

        if program.journey_id not in journey_ids:
            violations.append(
                Violation(
                    self.rule_id,
                    line,
                    f"Missing @pytest.mark.journey({program.journey_id!r}) marker",
                )
            )
        tier_marker = f"pytest.mark.tier_{program.tier.value}"
        if tier_marker not in markers:
            violations.append(Violation(self.rule_id, line, f"Missing @{tier_marker} marker"))
        return _result(self, violations)


class BlockedStepGuard(GuardInterface):
    """
    Every blocked marker must be followed by a failing statement.

    A blocked step that silently passes would report coverage that does not
    exist, so each ``# BLOCKED:`` comment needs ``pytest.fail(...)`` on the
    next non-blank line, and no blocked primitive of the program may be
    missing from the output.
    """

    rule_id = "blocked-must-fail"

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        lines = source.splitlines()
        violations: list[Violation] = []
        markers = 0
        for index, line in enumerate(lines):
            if not line.strip().startswith(BLOCKED_MARKER):
                continue
            markers += 1
            following = next((ln.strip() for ln in lines[index + 1 :] if ln.strip()), "")
            if not following.startswith("pytest.fail("):
                violations.append(
                    Violation(self.rule_id, index + 1, "Blocked marker not followed by pytest.fail()")
                )

        expected = program.stats.blocked_primitives if program and program.stats else 0
        if markers < expected:
            violations.append(
                Violation(
                    self.rule_id,
                    1,
                    f"{expected} blocked primitive(s) in the IR but {markers} marker(s) in the source",
                )
            )
        return _result(self, violations)


class AssertionCountGuard(GuardInterface):
    """Source must hold at least as many expect() assertions as the IR declares."""

    rule_id = "assertion-count"

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        tree = _parse(source)
        if tree is None or program is None or program.stats is None:
            return GuardResult(passed=True, guard_name=type(self).__name__)

        found = sum(
            1
            for call in _calls(tree)
            if isinstance(call.func, ast.Attribute)
            and isinstance(call.func.value, ast.Call)
            and _dotted(call.func.value.func) == "expect"
        )
        violations: list[Violation] = []
        if found < program.stats.assertions:
            violations.append(
                Violation(
                    self.rule_id,
                    _test_function_line(tree),
                    f"Expected at least {program.stats.assertions} assertion(s), found {found}",
                )
            )
        return _result(self, violations)
