"""
Failure classifier.

Maps failure messages to repair-relevant categories with ordered keyword
tables. The category with the most keyword hits wins; ties go to the table
listed first. Messages matching nothing are ``unclassified``, which the
healing loop treats as a stop signal.
"""

import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass, replace

from journeyforge.domain.models import (
    ExecutionResult,
    Failure,
    FailureCategory,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryRule:
    """Keyword table for one category."""

    category: FailureCategory
    keywords: tuple[re.Pattern[str], ...]


def _rule(category: FailureCategory, *patterns: str) -> CategoryRule:
    return CategoryRule(category, tuple(re.compile(p, re.IGNORECASE) for p in patterns))


# Order matters: earlier tables win ties.
CLASSIFICATION_RULES: tuple[CategoryRule, ...] = (
    _rule(
        FailureCategory.SELECTOR,
        r"resolved\s+to\s+\d+\s+elements",
        r"strict\s+mode\s+violation",
        r"waiting\s+for\s+(?:get_by_\w+|locator)\(",
        r"element\s+is\s+not\s+(?:visible|attached|enabled|stable)",
        r"no\s+element\s+matches\s+selector",
        r"selector\s+not\s+found",
        r"outside\s+of\s+the\s+viewport",
        r"locator\s+expected\s+to\s+be\s+visible",
    ),
    _rule(
        FailureCategory.TIMING,
        r"timeout\s+\d+\s*ms\s+exceeded",
        r"exceeded\s+while\s+waiting",
        r"timed?\s*out",
        r"waiting\s+for\s+(?:navigation|load\s+state|event)",
        r"response\s+took\s+too\s+long",
        r"navigation\s+was\s+interrupted",
    ),
    _rule(
        FailureCategory.NAVIGATION,
        r"url\s+expected\s+to\s+(?:match|be)",
        r"to_have_url",
        r"wait_for_url",
        r"page\s+has\s+been\s+closed",
        r"navigation\s+failed",
        r"page\.goto:",
        r"redirect",
        r"url\s+is\s+not\s+valid",
    ),
    _rule(
        FailureCategory.DATA,
        r"expected\s+to\s+(?:have|contain)\s+(?:text|value)",
        r"to_have_(?:text|value)|to_contain_text",
        r"assertion\s+failed",
        r"expected\s+value",
        r"does\s+not\s+match",
        r"already\s+(?:exists|taken|registered)",
        r"duplicate|unique\s+constraint",
        r"missing\s+context\s+value",
    ),
    _rule(
        FailureCategory.ENVIRONMENT,
        r"connection\s+refused|ECONNREFUSED",
        r"net::ERR_",
        r"ERR_NAME_NOT_RESOLVED|ENOTFOUND",
        r"\b50[234]\b",
        r"browser\s+has\s+been\s+closed|browser\s+crash",
        r"executable\s+doesn't\s+exist",
        r"fixture\s+'page'\s+not\s+found",
        r"\b40[13]\b|authentication\s+failed|invalid\s+credentials",
    ),
    _rule(
        FailureCategory.APP_BUG,
        r"internal\s+server\s+error|\b500\b",
        r"uncaught\s+(?:exception|error)",
        r"unhandled\s+(?:exception|rejection)",
        r"application\s+error",
        r"something\s+went\s+wrong",
    ),
)

BLOCKED_PREFIX = "BLOCKED step"

_QUOTED = re.compile(r"(\"[^\"]*\"|'[^']*')")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_HEX_ID = re.compile(r"\b[0-9a-f]{8,}\b")
_WHITESPACE = re.compile(r"\s+")
_LOCATOR_PATTERNS = (
    re.compile(r"(get_by_\w+\((?:[^()]|\([^()]*\))*\)(?:\.first|\.nth\(\d+\))?)"),
    re.compile(r"(locator\((?:\"[^\"]*\"|'[^']*')\))"),
    re.compile(r"selector\s+not\s+found:\s+(\S+)", re.IGNORECASE),
)


def message_head(message: str) -> str:
    """Message text before Playwright's call log, which varies between retries."""
    head, _, _ = message.partition("Call log:")
    return head.strip()


def fingerprint(category: FailureCategory, message: str) -> str:
    """
    Stable identity for a failure.

    Volatile numbers (timeouts, counts, durations) are replaced outside
    quoted strings so quoted selectors keep their digits. Run-id-like hex
    tokens are replaced everywhere.

    Example:
        "Timeout 30000ms exceeded waiting for '#row-3'" ->
        "timing:<sha1 of 'Timeout Nms exceeded waiting for '#row-3''>"
    """
    parts = _QUOTED.split(_HEX_ID.sub("H", message_head(message)))
    normalized = "".join(
        part if index % 2 else _NUMBER.sub("N", part) for index, part in enumerate(parts)
    )
    normalized = _WHITESPACE.sub(" ", normalized).strip()
    digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:12]
    return f"{category.value}:{digest}"


def extract_locator(message: str) -> str | None:
    """First locator expression named in the message, if any."""
    for pattern in _LOCATOR_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


class FailureClassifier:
    """Assigns categories, confidence, locator and fingerprint to failures."""

    def __init__(self, rules: tuple[CategoryRule, ...] = CLASSIFICATION_RULES):
        self.rules = rules

    def categorize(self, message: str) -> tuple[FailureCategory, float]:
        """
        Pick the category with the most keyword hits.

        Returns:
            (category, confidence) where confidence is hits/3 capped at 1.0
        """
        if BLOCKED_PREFIX in message:
            return FailureCategory.UNCLASSIFIED, 1.0

        best: FailureCategory | None = None
        best_hits = 0
        for rule in self.rules:
            hits = sum(1 for keyword in rule.keywords if keyword.search(message))
            if hits > best_hits:
                best, best_hits = rule.category, hits
        if best is None:
            return FailureCategory.UNCLASSIFIED, 0.0
        return best, min(best_hits / 3, 1.0)

    def classify(self, failure: Failure) -> Failure:
        category, confidence = self.categorize(failure.message)
        return replace(
            failure,
            category=category,
            confidence=confidence,
            locator=failure.locator or extract_locator(failure.message),
            fingerprint=fingerprint(category, failure.message),
        )

    def classify_result(self, result: ExecutionResult) -> ExecutionResult:
        """Return ``result`` with every failure classified."""
        failures = tuple(self.classify(f) for f in result.failures)
        for failure in failures:
            logger.debug(
                "Classified failure in %s as %s (%.2f)",
                failure.test_name or "<module>",
                failure.category.value,
                failure.confidence,
            )
        return replace(result, failures=failures)


def summarize(failures: tuple[Failure, ...] | list[Failure]) -> dict[str, int]:
    """Failure counts per category, every category present."""
    counts = Counter(f.category.value for f in failures)
    return {category.value: counts.get(category.value, 0) for category in FailureCategory}
