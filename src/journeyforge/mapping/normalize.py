"""Step text normalization shared by the matcher and the knowledge base."""

import re

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[.;!]+$")
_LEADING_ACTOR = re.compile(r"^(?:the user|user|i|we)\s+")

VERB_STEMS: dict[str, str] = {
    "clicks": "click",
    "clicked": "click",
    "clicking": "click",
    "taps": "click",
    "tap": "click",
    "fills": "fill",
    "filled": "fill",
    "enters": "fill",
    "enter": "fill",
    "types": "fill",
    "type": "fill",
    "selects": "select",
    "chooses": "select",
    "choose": "select",
    "checks": "check",
    "unchecks": "uncheck",
    "navigates": "navigate",
    "goes": "navigate",
    "go": "navigate",
    "opens": "navigate",
    "visits": "navigate",
    "visit": "navigate",
    "sees": "see",
    "verifies": "verify",
    "confirms": "verify",
    "logs": "log",
    "signs": "sign",
}


def collapse(text: str) -> str:
    """Trim and collapse internal whitespace, keeping case."""
    return _WHITESPACE.sub(" ", text).strip()


def normalize_text(text: str) -> str:
    """
    Normalize step text for exact lookups.

    Case-folds, trims, collapses whitespace and drops trailing sentence
    punctuation.
    """
    return _TRAILING_PUNCTUATION.sub("", collapse(text).casefold()).strip()


def canonical_text(text: str) -> str:
    """
    Reduce normalized text to a canonical form.

    Removes a leading actor ("the user", "I") and maps verb forms to their
    stem, so "The user clicks 'Save'" and "click 'Save'" coincide.
    """
    normalized = _LEADING_ACTOR.sub("", normalize_text(text))
    words = normalized.split(" ")
    if words and words[0] in VERB_STEMS:
        words[0] = VERB_STEMS[words[0]]
    return " ".join(words)
