"""Playwright test generation with managed blocks."""

from journeyforge.codegen.blocks import (
    BEGIN_MARKER,
    END_MARKER,
    ManagedBlock,
    extract_blocks,
    inject_blocks,
)
from journeyforge.codegen.generator import (
    BLOCKED_MARKER,
    GeneratedFile,
    GeneratedModule,
    PlaywrightGenerator,
    slugify,
)
from journeyforge.codegen.locators import render_locator, render_value

__all__ = [
    "PlaywrightGenerator",
    "GeneratedModule",
    "GeneratedFile",
    "BLOCKED_MARKER",
    "slugify",
    "ManagedBlock",
    "BEGIN_MARKER",
    "END_MARKER",
    "extract_blocks",
    "inject_blocks",
    "render_locator",
    "render_value",
]
