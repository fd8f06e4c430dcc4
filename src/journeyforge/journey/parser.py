"""
Journey parser: text -> JourneyDocument.

Surface grammar is YAML front matter between ``---`` fences followed by a
Markdown body with ``## Setup``, ``## Steps`` and ``## Cleanup`` sections.
Under ``## Steps`` either ``### Step N: title`` subsections group bullet
lines into one step, or every bullet/numbered item is its own step.
"""

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from journeyforge.domain.exceptions import ParseError
from journeyforge.domain.models import (
    CompletionKind,
    CompletionSignal,
    JourneyDocument,
    JourneyStep,
    Tier,
)

logger = logging.getLogger(__name__)

_FRONT_MATTER = re.compile(r"\A\ufeff?---[ \t]*\r?\n(?P<yaml>.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.S)
_SECTION = re.compile(r"^##\s+(?P<title>.+?)\s*#*\s*$")
_STEP_HEADER = re.compile(
    r"^###\s*(?:step\s+(?P<num>\d+)|(?P<label>[A-Za-z][\w]*-\d+))?\s*[:.)-]?\s*(?P<title>.*?)\s*$",
    re.I,
)
_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?P<text>.+?)\s*$")

SECTION_ALIASES = {
    "setup": "setup",
    "preconditions": "setup",
    "steps": "steps",
    "procedural steps": "steps",
    "cleanup": "cleanup",
    "teardown": "cleanup",
}


# =============================================================================
# FRONT MATTER SCHEMA
# =============================================================================


class CompletionModel(BaseModel):
    """Completion signal as written in the front matter."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    kind: CompletionKind = Field(alias="type")
    value: str = Field(min_length=1)
    timeout: int | None = Field(default=None, gt=0)
    exact: bool = False

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int | float) else v


class JourneyFrontMatter(BaseModel):
    """Validated Journey metadata."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    actor: str = Field(min_length=1)
    tier: Tier = Tier.REGRESSION
    scope: str = ""
    tags: list[str] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)
    completion: list[CompletionModel] = Field(default_factory=list)

    @field_validator("id", "title", "actor", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("modules", mode="before")
    @classmethod
    def _flatten_modules(cls, v: Any) -> Any:
        # Accept {foundation: [...], features: [...]} as well as a flat list
        if isinstance(v, dict):
            return [m for group in v.values() for m in (group or [])]
        return v


KNOWN_FRONT_MATTER = frozenset(JourneyFrontMatter.model_fields)


# =============================================================================
# PARSING
# =============================================================================


def parse_journey(text: str, source: str | None = None) -> JourneyDocument:
    """
    Parse Journey text into a document.

    Args:
        text: Full Journey file content
        source: Path used in error messages

    Returns:
        Immutable JourneyDocument with steps in authored order

    Raises:
        ParseError: Missing or invalid front matter, missing identity
            fields, duplicate step ids, step text outside a step header
            or no steps
    """
    match = _FRONT_MATTER.match(text)
    if match is None:
        raise ParseError("missing YAML front matter (--- fenced block)", source)

    try:
        raw = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as e:
        raise ParseError(f"invalid YAML front matter: {e}", source) from e
    if not isinstance(raw, dict):
        raise ParseError("front matter must be a mapping", source)

    unknown = set(raw) - KNOWN_FRONT_MATTER
    if unknown:
        logger.warning(
            "%s: ignoring unknown front matter fields: %s",
            source or "<journey>",
            ", ".join(sorted(map(str, unknown))),
        )

    try:
        meta = JourneyFrontMatter.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ParseError(f"invalid field '{field}': {first['msg']}", source, field) from e

    sections = _split_sections(text[match.end() :])
    steps = _parse_steps(sections.get("steps", []), source)
    if not steps:
        raise ParseError("journey has no steps", source, "steps")
    setup = _parse_flat(sections.get("setup", []), "setup")
    cleanup = _parse_flat(sections.get("cleanup", []), "cleanup")

    ids = [s.step_id for s in setup + steps + cleanup]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ParseError(f"duplicate step ids: {', '.join(duplicates)}", source, "steps")

    return JourneyDocument(
        journey_id=meta.id,
        title=meta.title,
        actor=meta.actor,
        tier=meta.tier,
        scope=meta.scope,
        tags=tuple(meta.tags),
        steps=steps,
        setup=setup,
        cleanup=cleanup,
        completion=tuple(
            CompletionSignal(kind=c.kind, value=c.value, timeout_ms=c.timeout, exact=c.exact)
            for c in meta.completion
        ),
        modules=tuple(meta.modules),
        source_path=source,
    )


def parse_journey_file(path: Path) -> JourneyDocument:
    """Read and parse a Journey file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"cannot read journey: {e}", str(path)) from e
    return parse_journey(text, str(path))


def _split_sections(body: str) -> dict[str, list[str]]:
    """Group body lines under their ``##`` section (known sections only)."""
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in body.splitlines():
        header = _SECTION.match(line)
        if header and not line.startswith("###"):
            name = SECTION_ALIASES.get(header.group("title").strip().lower())
            current = sections.setdefault(name, []) if name else None
            continue
        if current is not None:
            current.append(line)
    return sections


def _items(lines: list[str]) -> list[str]:
    """Bullet/numbered items; indented plain lines continue the previous item."""
    items: list[str] = []
    for line in lines:
        item = _ITEM.match(line)
        if item:
            items.append(item.group("text"))
        elif line.strip() and items and line[:1].isspace():
            items[-1] = f"{items[-1]} {line.strip()}"
        elif line.strip():
            items.append(line.strip())
    return items


def _parse_flat(lines: list[str], section: str) -> tuple[JourneyStep, ...]:
    prefix = "S" if section == "steps" else f"{section}-"
    return tuple(
        JourneyStep(step_id=f"{prefix}{i}", description=text, lines=(text,), section=section)
        for i, text in enumerate(_items(lines), start=1)
    )


def _parse_steps(lines: list[str], source: str | None) -> tuple[JourneyStep, ...]:
    if not any(line.startswith("###") for line in lines):
        return _parse_flat(lines, "steps")

    steps: list[JourneyStep] = []
    header: re.Match[str] | None = None
    body: list[str] = []

    def flush() -> None:
        if header is None:
            # Intro prose may precede the first header, list items may not
            stray = [m.group("text") for line in body if (m := _ITEM.match(line))]
            if stray:
                raise ParseError(
                    f"step item {stray[0]!r} appears before the first '### Step' header",
                    source,
                    "steps",
                )
            return
        index = len(steps) + 1
        if header.group("num"):
            step_id = f"S{header.group('num')}"
        elif header.group("label"):
            step_id = header.group("label")
        else:
            step_id = f"S{index}"
        title = header.group("title")
        step_lines = tuple(_items(body)) or ((title,) if title else ())
        if not step_lines:
            raise ParseError(f"step {step_id} has no content", source, "steps")
        steps.append(
            JourneyStep(step_id=step_id, description=title or step_lines[0], lines=step_lines)
        )

    for line in lines:
        if line.startswith("###"):
            flush()
            header = _STEP_HEADER.match(line)
            body = []
        else:
            body.append(line)
    flush()
    return tuple(steps)
