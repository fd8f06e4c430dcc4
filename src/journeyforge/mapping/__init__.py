"""Step-to-primitive mapping: normalization, built-in patterns and the matcher."""

from journeyforge.mapping.matcher import StepMatcher
from journeyforge.mapping.normalize import normalize_text
from journeyforge.mapping.patterns import BUILTIN_PATTERNS, PATTERN_VERSION, BuiltinPattern

__all__ = [
    "StepMatcher",
    "BuiltinPattern",
    "BUILTIN_PATTERNS",
    "PATTERN_VERSION",
    "normalize_text",
]
