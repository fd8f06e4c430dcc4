"""
Guards over generated test modules.

Guards are deterministic validators that return a pass or a list of
(rule id, line) violations. They are composed with CompositeGuard.

Organization:
- static/: Pure AST/text validation (no execution)
- composite/: Guard composition
"""

from journeyforge.guards.composite import CompositeGuard
from journeyforge.guards.static import (
    AssertionCountGuard,
    BlockedStepGuard,
    ForbiddenPatternGuard,
    RequiredTagGuard,
    SyntaxGuard,
    UndefinedNameGuard,
)


def default_validator() -> CompositeGuard:
    """The full rule set applied before any generated file is written."""
    return CompositeGuard(
        SyntaxGuard(),
        UndefinedNameGuard(),
        ForbiddenPatternGuard(),
        RequiredTagGuard(),
        BlockedStepGuard(),
        AssertionCountGuard(),
    )


__all__ = [
    "SyntaxGuard",
    "UndefinedNameGuard",
    "ForbiddenPatternGuard",
    "RequiredTagGuard",
    "BlockedStepGuard",
    "AssertionCountGuard",
    "CompositeGuard",
    "default_validator",
]
