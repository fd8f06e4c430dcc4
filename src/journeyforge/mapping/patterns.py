"""
Built-in step pattern table.

An ordered list of (name, regex, constructor) entries evaluated top to
bottom; the first full match wins. The table is versioned independently
of the knowledge base so a given PATTERN_VERSION always maps the same
text to the same primitive.

Patterns run case-insensitively on whitespace-collapsed text so that
captured values (labels, typed text, urls) keep their authored case.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, replace

from journeyforge.domain.models import (
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
    ValueSpec,
)
from journeyforge.mapping.normalize import collapse

PATTERN_VERSION = "1.0.0"

ACTOR = r"(?:(?:the\s+)?user\s+|i\s+)?"
URL = r"[\"']?(?P<url>[^\"'\s]+)[\"']?"
PATH = r"[\"']?(?P<url>(?:https?://|/)[^\"'\s]*)[\"']?"


def _q(name: str) -> str:
    """Quoted capture group (single or double quotes)."""
    return r"[\"'](?P<" + name + r">[^\"']+)[\"']"


KEY_NAMES = {
    "enter": "Enter",
    "return": "Enter",
    "tab": "Tab",
    "escape": "Escape",
    "esc": "Escape",
    "space": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "arrowup": "ArrowUp",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
}

_TRAILING_PUNCTUATION = re.compile(r"[.;!]+$")


@dataclass(frozen=True)
class BuiltinPattern:
    """One entry of the built-in table."""

    name: str
    regex: re.Pattern[str]
    build: Callable[[re.Match[str]], Primitive]

    def match(self, text: str) -> Primitive | None:
        found = self.regex.fullmatch(text)
        if found is None:
            return None
        return replace(
            self.build(found),
            source_text=text,
            origin=PrimitiveOrigin.BUILTIN,
            pattern_id=f"builtin.{self.name}",
        )


def _pattern(
    name: str, regex: str, build: Callable[[re.Match[str]], Primitive]
) -> BuiltinPattern:
    return BuiltinPattern(name, re.compile(regex, re.IGNORECASE), build)


def _label(value: str) -> LocatorSpec:
    return LocatorSpec(LocatorStrategy.LABEL, value)


def _text(value: str) -> LocatorSpec:
    return LocatorSpec(LocatorStrategy.TEXT, value)


def _role(role: str, name: str) -> LocatorSpec:
    return LocatorSpec(LocatorStrategy.ROLE, role.lower(), name=name)


def _key(raw: str) -> str:
    return KEY_NAMES.get(re.sub(r"\s+", "", raw.lower()), raw)


def _check(m: re.Match[str]) -> Primitive:
    kind = PrimitiveKind.UNCHECK if m["verb"] else PrimitiveKind.CHECK
    return Primitive(kind=kind, locator=_label(m["field"]))


def _press(m: re.Match[str]) -> Primitive:
    locator = _label(m["field"]) if m["field"] else None
    return Primitive(kind=PrimitiveKind.PRESS_KEY, key=_key(m["key"]), locator=locator)


def _hover(m: re.Match[str]) -> Primitive:
    locator = _role(m["role"], m["target"]) if m["role"] else _text(m["target"])
    return Primitive(kind=PrimitiveKind.HOVER, locator=locator)


def _login(m: re.Match[str]) -> Primitive:
    args = (m["who"],) if m["who"] else ()
    return Primitive(kind=PrimitiveKind.INVOKE_MODULE, module="auth.login", args=args)


def _toast(m: re.Match[str]) -> Primitive:
    if m["text"]:
        locator = _text(m["text"])
    else:
        locator = LocatorSpec(
            LocatorStrategy.CSS, f'[data-toast-kind="{m["kind"].lower()}"]'
        )
    return Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=locator)


BUILTIN_PATTERNS: tuple[BuiltinPattern, ...] = (
    # Navigation
    _pattern(
        "navigate",
        ACTOR + r"(?:navigates?|goes|go|opens?|visits?)\s+(?:to\s+)?(?:the\s+)?" + PATH,
        lambda m: Primitive(kind=PrimitiveKind.NAVIGATE, url=m["url"]),
    ),
    _pattern(
        "wait-for-url",
        ACTOR
        + r"waits?\s+for\s+(?:the\s+)?(?:url|page)\s+to\s+(?:contain|match|be|include)\s+"
        + URL,
        lambda m: Primitive(kind=PrimitiveKind.WAIT_FOR_URL, url=m["url"]),
    ),
    _pattern(
        "wait-for-response",
        ACTOR + r"waits?\s+for\s+(?:the\s+|a\s+)?(?:response|request)\s+(?:to|from|of)\s+" + URL,
        lambda m: Primitive(kind=PrimitiveKind.WAIT_FOR_RESPONSE, url=m["url"]),
    ),
    _pattern(
        "expect-url",
        r"(?:the\s+)?(?:url|address)\s+(?:should\s+)?(?:contains?|matches?|includes?|ends?\s+with)\s+"
        + URL,
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_URL, url=m["url"]),
    ),
    _pattern(
        "expect-url-redirect",
        ACTOR
        + r"(?:is|should\s+be|gets?)\s+(?:redirected|taken|sent)\s+to\s+(?:the\s+)?"
        + URL,
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_URL, url=m["url"]),
    ),
    _pattern(
        "expect-url-land",
        ACTOR + r"(?:should\s+)?lands?\s+on\s+(?:the\s+)?" + PATH,
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_URL, url=m["url"]),
    ),
    _pattern(
        "expect-title",
        r"(?:the\s+)?(?:page\s+)?title\s+(?:should\s+)?(?:is|be|equals?|contains?)\s+"
        + _q("title"),
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_TITLE, expected=m["title"]),
    ),
    # Form input
    _pattern(
        "fill-placeholder",
        ACTOR
        + r"(?:enters?|types?|fills?(?:\s+in)?|inputs?)\s+"
        + _q("value")
        + r"\s+(?:in|into)\s+(?:the\s+)?(?:field|input)\s+with\s+placeholder\s+"
        + _q("field"),
        lambda m: Primitive(
            kind=PrimitiveKind.FILL,
            locator=LocatorSpec(LocatorStrategy.PLACEHOLDER, m["field"]),
            value=ValueSpec.from_text(m["value"]),
        ),
    ),
    _pattern(
        "fill-into",
        ACTOR
        + r"(?:enters?|types?|fills?(?:\s+in)?|inputs?)\s+"
        + _q("value")
        + r"\s+(?:in|into)\s+(?:the\s+)?"
        + _q("field")
        + r"(?:\s+(?:field|input|box))?",
        lambda m: Primitive(
            kind=PrimitiveKind.FILL,
            locator=_label(m["field"]),
            value=ValueSpec.from_text(m["value"]),
        ),
    ),
    _pattern(
        "fill-with",
        ACTOR
        + r"fills?\s+(?:in\s+)?(?:the\s+)?"
        + _q("field")
        + r"(?:\s+(?:field|input))?\s+with\s+"
        + _q("value"),
        lambda m: Primitive(
            kind=PrimitiveKind.FILL,
            locator=_label(m["field"]),
            value=ValueSpec.from_text(m["value"]),
        ),
    ),
    _pattern(
        "select",
        ACTOR
        + r"(?:selects?|chooses?|picks?)\s+"
        + _q("option")
        + r"\s+(?:from|in)\s+(?:the\s+)?"
        + _q("field")
        + r"(?:\s+(?:dropdown|select|list|menu))?",
        lambda m: Primitive(
            kind=PrimitiveKind.SELECT, locator=_label(m["field"]), option=m["option"]
        ),
    ),
    _pattern(
        "upload",
        ACTOR
        + r"uploads?\s+"
        + _q("file")
        + r"\s+(?:to|into|in|using)\s+(?:the\s+)?"
        + _q("field"),
        lambda m: Primitive(
            kind=PrimitiveKind.UPLOAD, locator=_label(m["field"]), files=(m["file"],)
        ),
    ),
    _pattern(
        "check",
        ACTOR
        + r"(?P<verb>un)?(?:checks?|ticks?)\s+(?:the\s+)?"
        + _q("field")
        + r"(?:\s+(?:checkbox|box|option))?",
        _check,
    ),
    _pattern(
        "press-key",
        ACTOR
        + r"press(?:es)?\s+(?:the\s+)?(?P<key>enter|return|tab|escape|esc|space|backspace|delete|arrow\s*(?:up|down|left|right))"
        + r"(?:\s+key)?(?:\s+(?:in|on)\s+(?:the\s+)?"
        + _q("field")
        + r")?",
        _press,
    ),
    _pattern(
        "hover",
        ACTOR
        + r"hovers?\s+(?:over\s+)?(?:the\s+)?"
        + _q("target")
        + r"(?:\s+(?P<role>button|link|menuitem|tab))?",
        _hover,
    ),
    # Clicks
    _pattern(
        "click-role-suffix",
        ACTOR
        + r"(?:clicks?|taps?|presses?)\s+(?:on\s+)?(?:the\s+)?"
        + _q("target")
        + r"\s+(?P<role>button|link|tab|checkbox|menuitem|option|radio)",
        lambda m: Primitive(kind=PrimitiveKind.CLICK, locator=_role(m["role"], m["target"])),
    ),
    _pattern(
        "click-role-prefix",
        ACTOR
        + r"(?:clicks?|taps?)\s+(?:on\s+)?(?:the\s+)?(?P<role>button|link|tab|menuitem)\s+"
        + _q("target"),
        lambda m: Primitive(kind=PrimitiveKind.CLICK, locator=_role(m["role"], m["target"])),
    ),
    _pattern(
        "click-text",
        ACTOR + r"(?:clicks?|taps?)\s+(?:on\s+)?(?:the\s+)?" + _q("target"),
        lambda m: Primitive(kind=PrimitiveKind.CLICK, locator=_text(m["target"])),
    ),
    # Reusable modules
    _pattern(
        "login",
        ACTOR
        + r"(?:logs?\s*in|signs?\s*in|authenticates?)(?:\s+as\s+(?P<who>[\w@.{}$+-]+))?",
        _login,
    ),
    _pattern(
        "logout",
        ACTOR + r"(?:logs?\s*out|signs?\s*out)",
        lambda m: Primitive(kind=PrimitiveKind.INVOKE_MODULE, module="auth.logout"),
    ),
    # Assertions
    _pattern(
        "expect-not-visible",
        ACTOR
        + r"(?:should\s+not|does\s+not|doesn't|cannot|can't)\s+see\s+(?:the\s+)?"
        + _q("text"),
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_NOT_VISIBLE, locator=_text(m["text"])),
    ),
    _pattern(
        "expect-hidden",
        r"(?:the\s+)?"
        + _q("text")
        + r"\s+(?:is|should\s+be)\s+(?:hidden|not\s+(?:visible|shown|displayed))",
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_NOT_VISIBLE, locator=_text(m["text"])),
    ),
    _pattern(
        "expect-value",
        r"(?:the\s+)?"
        + _q("field")
        + r"(?:\s+field)?\s+(?:should\s+)?(?:have|has)\s+(?:the\s+)?value\s+"
        + _q("value"),
        lambda m: Primitive(
            kind=PrimitiveKind.EXPECT_VALUE, locator=_label(m["field"]), expected=m["value"]
        ),
    ),
    _pattern(
        "expect-text",
        r"(?:the\s+)?"
        + _q("target")
        + r"\s+(?:should\s+)?(?:contains?|shows?|displays?|reads?|has\s+text)\s+"
        + _q("text"),
        lambda m: Primitive(
            kind=PrimitiveKind.EXPECT_TEXT, locator=_text(m["target"]), expected=m["text"]
        ),
    ),
    _pattern(
        "expect-toast",
        r"(?:an?\s+)?(?P<kind>success|error|info|warning)\s+(?:toast|notification)\s+"
        + r"(?:appears|is\s+shown|is\s+displayed|should\s+appear)(?:\s+with\s+"
        + _q("text")
        + r")?",
        _toast,
    ),
    _pattern(
        "expect-heading",
        ACTOR + r"(?:should\s+)?sees?\s+(?:the\s+|a\s+)?" + _q("text") + r"\s+heading",
        lambda m: Primitive(
            kind=PrimitiveKind.EXPECT_VISIBLE, locator=_role("heading", m["text"])
        ),
    ),
    _pattern(
        "expect-visible-see",
        ACTOR
        + r"(?:should\s+)?sees?\s+(?:the\s+|a\s+)?"
        + _q("text")
        + r"(?:\s+(?:message|text|label))?",
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=_text(m["text"])),
    ),
    _pattern(
        "expect-visible-verify",
        r"(?:verify|assert|confirm|ensure|check)\s+(?:that\s+)?(?:the\s+)?"
        + _q("text")
        + r"\s+(?:is|should\s+be)\s+(?:visible|displayed|shown)",
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=_text(m["text"])),
    ),
    _pattern(
        "expect-visible-is",
        r"(?:the\s+)?" + _q("text") + r"\s+(?:is|should\s+be)\s+(?:visible|displayed|shown)",
        lambda m: Primitive(kind=PrimitiveKind.EXPECT_VISIBLE, locator=_text(m["text"])),
    ),
)


def prepare(text: str) -> str:
    """Collapse whitespace and drop trailing sentence punctuation, keeping case."""
    return _TRAILING_PUNCTUATION.sub("", collapse(text)).strip()


def match_builtin(
    text: str, patterns: tuple[BuiltinPattern, ...] = BUILTIN_PATTERNS
) -> Primitive | None:
    """
    Match step text against the built-in table.

    Returns:
        The primitive built by the first matching entry, or None
    """
    prepared = prepare(text)
    for pattern in patterns:
        primitive = pattern.match(prepared)
        if primitive is not None:
            return primitive
    return None
