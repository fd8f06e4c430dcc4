"""
Code generator: IR program -> pytest module using Playwright's sync API.

Rendering is a deterministic template expansion: the same program always
yields the same text (no timestamps, no random ids). Output is split into
managed blocks so regeneration preserves hand-written code around them.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from journeyforge.codegen.blocks import ManagedBlock, extract_blocks, inject_blocks
from journeyforge.codegen.locators import py_str, render_locator, render_value
from journeyforge.domain.exceptions import ValidationFailure
from journeyforge.domain.models import (
    IRProgram,
    IRStep,
    Primitive,
    PrimitiveKind,
    PrimitiveRef,
    Violation,
    journey_slug,
)

HEADER_BLOCK_ID = "header"
BLOCKED_MARKER = "# BLOCKED:"
INDENT = "    "

HEADER_TEMPLATE = '''"""Generated by journeyforge from {source}. Edit outside managed blocks only."""

import importlib
import os
import re
import uuid

import pytest
from playwright.sync_api import Page, expect

RUN_ID = os.environ.get("JOURNEYFORGE_RUN_ID") or uuid.uuid4().hex[:8]


def unique_value(base: str) -> str:
    """Namespace test data with the run id so parallel runs do not collide."""
    local, at, domain = base.partition("@")
    if at:
        return f"{{local}}+{{RUN_ID}}@{{domain}}"
    return f"{{base}}-{{RUN_ID}}"


def context_value(key: str) -> str:
    """Read an actor/context value from the JOURNEY_<KEY> environment variable."""
    env_key = "JOURNEY_" + re.sub(r"\\W", "_", key).upper()
    value = os.environ.get(env_key)
    if value is None:
        pytest.fail(f"missing context value {{key!r}}: set {{env_key}}")
    return value


def call_module(page: Page, name: str, *args: str) -> None:
    """Invoke a reusable journey module: auth.login -> journey_modules.auth.login(page)."""
    module_path, _, func = name.rpartition(".")
    module = importlib.import_module(
        f"journey_modules.{{module_path}}" if module_path else "journey_modules"
    )
    getattr(module, func)(page, *args)'''

CONFTEST_TEMPLATE = '''"""Marker registration for journeyforge-generated tests."""


def pytest_configure(config):
    config.addinivalue_line("markers", "journey(id): Journey the test was generated from")
    config.addinivalue_line("markers", "tags(*names): Journey tags")
    for tier in ("smoke", "release", "regression"):
        config.addinivalue_line("markers", f"tier_{tier}: {tier} tier journey")
'''


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def block_id_for(journey_id: str) -> str:
    return f"test-{journey_slug(journey_id).replace('_', '-')}"


def function_name_for(program: IRProgram) -> str:
    title = slugify(program.title)[:40].rstrip("_")
    name = f"test_{journey_slug(program.journey_id)}"
    return f"{name}_{title}" if title else name


@dataclass(frozen=True)
class RenderedBlock:
    """A managed block plus the primitive rendered on each content line (0-based)."""

    block: ManagedBlock
    line_map: dict[int, PrimitiveRef] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedModule:
    """Final merged source with the primitive rendered on each line (1-based)."""

    source: str
    primitive_lines: dict[int, PrimitiveRef] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def ref_at(self, line: int | None) -> PrimitiveRef | None:
        """Primitive rendered at ``line``, or on the nearest mapped line above it."""
        if line is None:
            return None
        if line in self.primitive_lines:
            return self.primitive_lines[line]
        above = [n for n in self.primitive_lines if n < line]
        return self.primitive_lines[max(above)] if above else None


@dataclass(frozen=True)
class GeneratedFile:
    """A module written (or found unchanged) on disk."""

    journey_id: str
    path: Path
    module: GeneratedModule
    changed: bool  # False when the file already held identical text


class PlaywrightGenerator:
    """Renders IR programs to pytest-playwright modules."""

    def render_blocks(self, program: IRProgram) -> list[RenderedBlock]:
        """Render the header block and the test block for one program."""
        source = program.journey_id
        header = ManagedBlock(HEADER_TEMPLATE.format(source=source), HEADER_BLOCK_ID)
        content, line_map = self._render_test(program)
        test_block = ManagedBlock(content, block_id_for(program.journey_id))
        return [RenderedBlock(header), RenderedBlock(test_block, line_map)]

    def render(self, program: IRProgram, existing: str = "") -> GeneratedModule:
        """
        Render ``program`` and merge it into previously generated text.

        Args:
            program: IR to render
            existing: Current file content ("" for a new file)

        Returns:
            GeneratedModule with merged source and absolute line map

        Raises:
            ValidationFailure: If ``existing`` repeats a managed block id
        """
        repeated = extract_blocks(existing).duplicates if existing.strip() else ()
        if repeated:
            raise ValidationFailure(
                [
                    Violation(
                        "unique-block-id",
                        block.start_line + 1,
                        f"Managed block id {block.block_id} appears more than once",
                    )
                    for block in repeated
                ]
            )
        rendered = self.render_blocks(program)
        merged = inject_blocks(existing, [r.block for r in rendered])
        extracted = extract_blocks(merged)

        primitive_lines: dict[int, PrimitiveRef] = {}
        maps = {r.block.block_id: r.line_map for r in rendered}
        for block in extracted.blocks:
            line_map = maps.get(block.block_id)
            if not line_map:
                continue
            for offset, ref in line_map.items():
                # start_line is the 0-based BEGIN marker; content starts on the next line
                primitive_lines[block.start_line + 2 + offset] = ref
        return GeneratedModule(merged, primitive_lines, extracted.warnings)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def _render_test(self, program: IRProgram) -> tuple[str, dict[int, PrimitiveRef]]:
        lines: list[str] = [f"@pytest.mark.journey({py_str(program.journey_id)})"]
        lines.append(f"@pytest.mark.tier_{program.tier.value}")
        if program.tags:
            lines.append(f"@pytest.mark.tags({', '.join(py_str(t) for t in program.tags)})")
        lines.append(f"def {function_name_for(program)}(page: Page) -> None:")
        lines.append(f"{INDENT}{py_str(program.journey_id + ': ' + program.title)}")
        line_map: dict[int, PrimitiveRef] = {}

        body_indent = INDENT * 2 if program.cleanup else INDENT
        if program.cleanup:
            lines.append(f"{INDENT}try:")
        self._render_steps(program.steps, body_indent, lines, line_map)
        if program.cleanup:
            lines.append(f"{INDENT}finally:")
            self._render_steps(program.cleanup, body_indent, lines, line_map)
        return "\n".join(lines), line_map

    def _render_steps(
        self,
        steps: tuple[IRStep, ...],
        indent: str,
        lines: list[str],
        line_map: dict[int, PrimitiveRef],
    ) -> None:
        for step in steps:
            lines.append(f"{indent}# Step {step.step_id}: {_one_line(step.description)}")
            for index, primitive in enumerate(step.primitives):
                for rendered in render_primitive(primitive, step.step_id):
                    line_map[len(lines)] = PrimitiveRef(step.step_id, index)
                    lines.append(f"{indent}{rendered}")


def _one_line(text: str) -> str:
    return " ".join(text.split())


def render_primitive(primitive: Primitive, step_id: str) -> list[str]:
    """
    Render one primitive as one or more statements (unindented).

    Raises:
        ValueError: If a locator-based primitive has no locator
    """
    p = primitive
    kind = p.kind
    if kind is PrimitiveKind.BLOCKED:
        reason = _one_line(p.reason or "")
        return [
            f"{BLOCKED_MARKER} step {step_id}: {reason}",
            f"pytest.fail({py_str(f'BLOCKED step {step_id}: {reason}')})",
        ]

    if kind.needs_locator and p.locator is None:
        raise ValueError(f"{kind.value} primitive in step {step_id} has no locator")

    timeout = f"timeout={p.timeout_ms}" if p.timeout_ms else ""
    tail = f", {timeout}" if timeout else ""
    loc = render_locator(p.locator) if p.locator is not None else ""
    lines: list[str] = []
    if p.wait_for_visible and loc and not kind.is_assertion:
        lines.append(f"expect({loc}).to_be_visible({timeout})")

    if kind is PrimitiveKind.NAVIGATE:
        lines.append(f"page.goto({py_str(p.url or '/')}{tail})")
    elif kind is PrimitiveKind.CLICK:
        lines.append(f"{loc}.click({timeout})")
    elif kind is PrimitiveKind.FILL:
        value = render_value(p.value) if p.value is not None else py_str("")
        lines.append(f"{loc}.fill({value}{tail})")
    elif kind is PrimitiveKind.SELECT:
        lines.append(f"{loc}.select_option({py_str(p.option or '')}{tail})")
    elif kind is PrimitiveKind.CHECK:
        lines.append(f"{loc}.check({timeout})")
    elif kind is PrimitiveKind.UNCHECK:
        lines.append(f"{loc}.uncheck({timeout})")
    elif kind is PrimitiveKind.UPLOAD:
        files = ", ".join(py_str(f) for f in p.files)
        lines.append(f"{loc}.set_input_files([{files}]{tail})")
    elif kind is PrimitiveKind.PRESS_KEY:
        target = loc if loc else "page.keyboard"
        key_tail = tail if loc else ""
        lines.append(f"{target}.press({py_str(p.key or 'Enter')}{key_tail})")
    elif kind is PrimitiveKind.HOVER:
        lines.append(f"{loc}.hover({timeout})")
    elif kind is PrimitiveKind.WAIT_FOR_URL:
        lines.append(f"page.wait_for_url(re.compile({py_str(re.escape(p.url or ''))}){tail})")
    elif kind is PrimitiveKind.WAIT_FOR_RESPONSE:
        lines.append(
            f'page.wait_for_event("response", lambda response: {py_str(p.url or "")} in response.url{tail})'
        )
    elif kind is PrimitiveKind.EXPECT_VISIBLE:
        lines.append(f"expect({loc}).to_be_visible({timeout})")
    elif kind is PrimitiveKind.EXPECT_NOT_VISIBLE:
        lines.append(f"expect({loc}).to_be_hidden({timeout})")
    elif kind is PrimitiveKind.EXPECT_TEXT:
        lines.append(f"expect({loc}).to_contain_text({py_str(p.expected or '')}{tail})")
    elif kind is PrimitiveKind.EXPECT_VALUE:
        lines.append(f"expect({loc}).to_have_value({py_str(p.expected or '')}{tail})")
    elif kind is PrimitiveKind.EXPECT_URL:
        lines.append(
            f"expect(page).to_have_url(re.compile({py_str(re.escape(p.url or ''))}){tail})"
        )
    elif kind is PrimitiveKind.EXPECT_TITLE:
        lines.append(
            f"expect(page).to_have_title(re.compile({py_str(re.escape(p.expected or ''))}){tail})"
        )
    elif kind is PrimitiveKind.INVOKE_MODULE:
        args = "".join(f", {py_str(a)}" for a in p.args)
        lines.append(f"call_module(page, {py_str(p.module or '')}{args})")
    else:
        raise ValueError(f"Unsupported primitive kind: {kind}")
    return lines
