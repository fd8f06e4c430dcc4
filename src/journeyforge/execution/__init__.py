"""Test execution and failure classification."""

from journeyforge.execution.classifier import (
    CLASSIFICATION_RULES,
    FailureClassifier,
    extract_locator,
    fingerprint,
    summarize,
)
from journeyforge.execution.runner import PytestRunner
from journeyforge.execution.scripted import ScriptedRunner

__all__ = [
    "PytestRunner",
    "ScriptedRunner",
    "FailureClassifier",
    "CLASSIFICATION_RULES",
    "extract_locator",
    "fingerprint",
    "summarize",
]
