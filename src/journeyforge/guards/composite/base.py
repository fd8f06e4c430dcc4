"""
Guard composition.

CompositeGuard runs every guard and merges their violations.
"""

from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.models import GuardResult, IRProgram


class CompositeGuard(GuardInterface):
    """
    Logical AND of multiple guards. All must pass.

    Unlike a short-circuiting chain, every guard is evaluated so the caller
    sees the complete list of violations in one pass.
    """

    def __init__(self, *guards: GuardInterface):
        """
        Args:
            *guards: Guards to compose (evaluated in order)
        """
        self.guards = guards

    def validate(self, source: str, program: IRProgram | None = None) -> GuardResult:
        violations = []
        for guard in self.guards:
            result = guard.validate(source, program)
            if not result.passed:
                violations.extend(result.violations)
        return GuardResult(
            passed=not violations,
            violations=tuple(violations),
            guard_name=type(self).__name__,
        )
