"""Static guards - pure AST/text validation without execution."""

from journeyforge.guards.static.names import UndefinedNameGuard
from journeyforge.guards.static.policy import (
    AssertionCountGuard,
    BlockedStepGuard,
    ForbiddenPatternGuard,
    RequiredTagGuard,
)
from journeyforge.guards.static.syntax import SyntaxGuard

__all__ = [
    "SyntaxGuard",
    "UndefinedNameGuard",
    "ForbiddenPatternGuard",
    "RequiredTagGuard",
    "BlockedStepGuard",
    "AssertionCountGuard",
]
