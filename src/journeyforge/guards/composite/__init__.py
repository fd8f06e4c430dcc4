"""Guard composition patterns."""

from journeyforge.guards.composite.base import CompositeGuard

__all__ = ["CompositeGuard"]
