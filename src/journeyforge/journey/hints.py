"""
Inline structured hints embedded in step text.

Grammar: a namespaced annotation ``[jf key=value key="quoted value" ...]``
anywhere in a step line. A hint carrying ``action`` bypasses pattern
matching; a hint with only locator keys overrides the locator of the
primitive the remaining text maps to.

Example:
    Click the submit control [jf testid=submit-btn]
    Open settings [jf action=click role=link name="Settings" exact=true]
"""

import logging
import re
from dataclasses import dataclass, replace

from journeyforge.domain.models import (
    LocatorSpec,
    LocatorStrategy,
    Primitive,
    PrimitiveKind,
    PrimitiveOrigin,
    ValueSpec,
)

logger = logging.getLogger(__name__)

HINT_BLOCK = re.compile(r"\[jf(?:\s+(?P<body>[^\]]*))?\]")
_PAIR = re.compile(r"""(?P<key>[\w-]+)=(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"']+))""")

LOCATOR_KEYS = ("testid", "role", "label", "placeholder", "text", "css")
KNOWN_KEYS = frozenset(
    LOCATOR_KEYS
    + (
        "action",
        "name",
        "exact",
        "level",
        "nth",
        "value",
        "url",
        "key",
        "option",
        "module",
        "timeout",
        "expected",
    )
)

VALID_ROLES = frozenset(
    {
        "alert",
        "button",
        "checkbox",
        "combobox",
        "dialog",
        "grid",
        "heading",
        "img",
        "link",
        "list",
        "listitem",
        "menu",
        "menuitem",
        "navigation",
        "option",
        "progressbar",
        "radio",
        "region",
        "row",
        "searchbox",
        "slider",
        "status",
        "switch",
        "tab",
        "table",
        "tabpanel",
        "textbox",
        "tooltip",
    }
)


@dataclass(frozen=True)
class InlineHints:
    """Parsed ``[jf ...]`` annotation."""

    values: tuple[tuple[str, str], ...]
    warnings: tuple[str, ...] = ()

    def get(self, key: str) -> str | None:
        for k, v in self.values:
            if k == key:
                return v
        return None

    @property
    def action(self) -> PrimitiveKind | None:
        raw = self.get("action")
        if raw is None:
            return None
        try:
            return PrimitiveKind(raw.lower())
        except ValueError:
            return None

    @property
    def has_locator(self) -> bool:
        return any(self.get(k) is not None for k in LOCATOR_KEYS)

    def locator(self) -> LocatorSpec | None:
        """
        Build a locator from the hint keys.

        When several strategies are given, the highest-priority one wins:
        testid > role > label > placeholder > text > css.
        """
        exact = (self.get("exact") or "").lower() in ("true", "1", "yes")
        nth = _int_or_none(self.get("nth"))
        testid = self.get("testid")
        if testid:
            return LocatorSpec(LocatorStrategy.TEST_ID, testid, nth=nth)
        role = self.get("role")
        if role and role.lower() in VALID_ROLES:
            return LocatorSpec(
                LocatorStrategy.ROLE,
                role.lower(),
                name=self.get("name"),
                exact=exact,
                nth=nth,
                level=_int_or_none(self.get("level")),
            )
        for key, strategy in (
            ("label", LocatorStrategy.LABEL),
            ("placeholder", LocatorStrategy.PLACEHOLDER),
            ("text", LocatorStrategy.TEXT),
            ("css", LocatorStrategy.CSS),
        ):
            value = self.get(key)
            if value:
                return LocatorSpec(strategy, value, exact=exact, nth=nth)
        return None

    def apply_locator(self, primitive: Primitive) -> Primitive:
        """Override the locator of an already matched primitive."""
        locator = self.locator()
        if locator is None or not (primitive.kind.needs_locator or primitive.locator):
            return primitive
        timeout = _int_or_none(self.get("timeout"))
        return replace(
            primitive,
            locator=locator,
            timeout_ms=timeout if timeout is not None else primitive.timeout_ms,
        )

    def to_primitive(self, source_text: str) -> Primitive:
        """
        Build the primitive named by ``action``.

        Returns a blocked primitive (with the missing requirement as reason)
        when the hint is incomplete.
        """
        kind = self.action
        if kind is None:
            return Primitive.blocked(
                f"hint has unknown action '{self.get('action')}'", source_text
            )
        locator = self.locator()
        if kind.needs_locator and locator is None:
            return Primitive.blocked(
                f"hint action={kind.value} requires a locator key", source_text
            )
        raw_value = self.get("value")
        url = self.get("url")
        if kind in (PrimitiveKind.NAVIGATE, PrimitiveKind.WAIT_FOR_URL, PrimitiveKind.EXPECT_URL, PrimitiveKind.WAIT_FOR_RESPONSE) and not url:
            return Primitive.blocked(f"hint action={kind.value} requires url", source_text)
        if kind is PrimitiveKind.INVOKE_MODULE and not self.get("module"):
            return Primitive.blocked("hint action=invoke-module requires module", source_text)
        if kind is PrimitiveKind.PRESS_KEY and not self.get("key"):
            return Primitive.blocked("hint action=press-key requires key", source_text)
        if kind is PrimitiveKind.BLOCKED:
            return Primitive.blocked(
                self.get("expected") or f"blocked by hint: '{source_text}'", source_text
            )
        files = (raw_value,) if kind is PrimitiveKind.UPLOAD and raw_value else ()
        return Primitive(
            kind=kind,
            locator=locator,
            value=ValueSpec.from_text(raw_value)
            if raw_value is not None and kind is not PrimitiveKind.UPLOAD
            else None,
            url=url,
            key=self.get("key"),
            option=self.get("option"),
            files=files,
            module=self.get("module"),
            expected=self.get("expected") or (raw_value if kind.is_assertion else None),
            timeout_ms=_int_or_none(self.get("timeout")),
            source_text=source_text,
            origin=PrimitiveOrigin.HINT,
            pattern_id="hint",
        )


def _int_or_none(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def extract_hints(text: str) -> tuple[str, InlineHints | None]:
    """
    Strip ``[jf ...]`` annotations from step text.

    Args:
        text: Raw step line

    Returns:
        (text without annotations, parsed hints or None). Unknown keys and
        invalid values become warnings on the hints, never errors.
    """
    blocks = list(HINT_BLOCK.finditer(text))
    if not blocks:
        return text, None

    values: list[tuple[str, str]] = []
    warnings: list[str] = []
    for block in blocks:
        body = block.group("body") or ""
        consumed = 0
        for pair in _PAIR.finditer(body):
            leftover = body[consumed : pair.start()].strip()
            if leftover:
                warnings.append(f"unparsed hint text: '{leftover}'")
            consumed = pair.end()
            key = pair.group("key").lower()
            value = next(
                v for v in (pair.group("dq"), pair.group("sq"), pair.group("bare")) if v is not None
            )
            if key not in KNOWN_KEYS:
                warnings.append(f"unknown hint key '{key}'")
                continue
            values.append((key, value))
        trailing = body[consumed:].strip()
        if trailing:
            warnings.append(f"unparsed hint text: '{trailing}'")

    hints = InlineHints(values=tuple(values), warnings=tuple(warnings))
    role = hints.get("role")
    if role and role.lower() not in VALID_ROLES:
        hints = replace(hints, warnings=hints.warnings + (f"invalid role '{role}'",))
    action = hints.get("action")
    if action is not None and hints.action is None:
        hints = replace(hints, warnings=hints.warnings + (f"unknown action '{action}'",))

    stripped = " ".join(HINT_BLOCK.sub(" ", text).split())
    return stripped, hints
