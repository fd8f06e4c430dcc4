"""
Managed block extraction and injection.

Generated text lives between marker lines::

    # JOURNEYFORGE:BEGIN GENERATED id=test-jrn-0001
    ...
    # JOURNEYFORGE:END GENERATED

Everything outside markers is hand-authored and preserved byte-for-byte
on regeneration. Blocks with an id are matched by id; id-less blocks are
matched by their position among id-less blocks only. An id should appear
once per file: a repeated id is reported and only its first block is
replaced.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# JOURNEYFORGE:BEGIN GENERATED"
END_MARKER = "# JOURNEYFORGE:END GENERATED"

_BEGIN = re.compile(r"^[ \t]*# JOURNEYFORGE:BEGIN GENERATED(?:[ \t]+id=(?P<id>[\w.:-]+))?[ \t]*$")
_END = re.compile(r"^[ \t]*# JOURNEYFORGE:END GENERATED[ \t]*$")


@dataclass(frozen=True)
class ManagedBlock:
    """A generated region. ``start_line``/``end_line`` are 0-based marker lines."""

    content: str
    block_id: str | None = None
    start_line: int = -1
    end_line: int = -1


@dataclass(frozen=True)
class Segment:
    """Either preserved text or a managed block, in file order."""

    text: str = ""
    block: ManagedBlock | None = None


@dataclass(frozen=True)
class ExtractionResult:
    blocks: tuple[ManagedBlock, ...]
    segments: tuple[Segment, ...]
    warnings: tuple[str, ...] = field(default=())

    @property
    def preserved(self) -> str:
        """Text outside every block, concatenated."""
        return "".join(s.text for s in self.segments if s.block is None)

    @property
    def duplicates(self) -> tuple[ManagedBlock, ...]:
        """Blocks whose id was already used by an earlier block."""
        seen: set[str] = set()
        repeated: list[ManagedBlock] = []
        for block in self.blocks:
            if block.block_id is None:
                continue
            if block.block_id in seen:
                repeated.append(block)
            seen.add(block.block_id)
        return tuple(repeated)


def wrap_block(content: str, block_id: str | None = None) -> str:
    """Render a block with its start and end markers (no trailing newline)."""
    start = f"{BEGIN_MARKER} id={block_id}" if block_id else BEGIN_MARKER
    return f"{start}\n{content.rstrip(chr(10))}\n{END_MARKER}"


def extract_blocks(text: str) -> ExtractionResult:
    """
    Split text into preserved segments and managed blocks.

    A nested BEGIN closes the open block with a warning; an unclosed block
    is kept as preserved text with a warning, so no hand-written code is
    ever lost.
    """
    lines = text.splitlines(keepends=True)
    segments: list[Segment] = []
    blocks: list[ManagedBlock] = []
    warnings: list[str] = []
    preserved: list[str] = []
    open_start: int | None = None
    open_id: str | None = None
    body: list[str] = []

    def close(end_line: int) -> None:
        block = ManagedBlock(
            content="".join(body).rstrip("\n"),
            block_id=open_id,
            start_line=open_start if open_start is not None else -1,
            end_line=end_line,
        )
        blocks.append(block)
        segments.append(Segment(block=block))

    for index, line in enumerate(lines):
        stripped = line.rstrip("\r\n")
        begin = _BEGIN.match(stripped)
        if begin:
            if open_start is not None:
                warnings.append(
                    f"nested block start at line {index + 1}; closing block opened at line {open_start + 1}"
                )
                close(index - 1)
            elif preserved:
                segments.append(Segment(text="".join(preserved)))
                preserved = []
            open_start, open_id, body = index, begin.group("id"), []
            continue
        if _END.match(stripped):
            if open_start is None:
                warnings.append(f"end marker without start at line {index + 1}")
                preserved.append(line)
                continue
            close(index)
            open_start, open_id, body = None, None, []
            continue
        if open_start is not None:
            body.append(line)
        else:
            preserved.append(line)

    if open_start is not None:
        warnings.append(f"unclosed block starting at line {open_start + 1}; kept as text")
        preserved = [lines[open_start]] + body + preserved
    if preserved:
        segments.append(Segment(text="".join(preserved)))

    first_line: dict[str, int] = {}
    for block in blocks:
        if block.block_id is None:
            continue
        if block.block_id in first_line:
            warnings.append(
                f"duplicate block id {block.block_id} at line {block.start_line + 1}; "
                f"first used at line {first_line[block.block_id] + 1}"
            )
        else:
            first_line[block.block_id] = block.start_line

    for warning in warnings:
        logger.warning("Managed blocks: %s", warning)
    return ExtractionResult(tuple(blocks), tuple(segments), tuple(warnings))


def inject_blocks(existing: str, new_blocks: list[ManagedBlock]) -> str:
    """
    Merge regenerated blocks into previously generated text.

    Pure function of (existing text, new blocks):

    - empty existing text: the new blocks joined by blank lines
    - the first existing block with an id is replaced by the new block with
      that id; later blocks repeating the id are left as they are
    - id-less blocks are replaced by the new id-less block at the same
      position among id-less blocks
    - unmatched existing blocks are kept; unused new blocks are appended
    - text outside blocks is preserved byte-for-byte
    """
    rendered_new = [wrap_block(b.content, b.block_id) for b in new_blocks]
    if not existing.strip():
        return "\n\n".join(rendered_new) + "\n" if rendered_new else existing

    extracted = extract_blocks(existing)
    by_id = {b.block_id: b for b in new_blocks if b.block_id}
    anonymous = [b for b in new_blocks if not b.block_id]
    used: set[int] = set()
    replaced_ids: set[str] = set()
    anonymous_index = 0

    out: list[str] = []
    for segment in extracted.segments:
        if segment.block is None:
            out.append(segment.text)
            continue
        old = segment.block
        replacement: ManagedBlock | None = None
        if old.block_id:
            if old.block_id not in replaced_ids:
                replacement = by_id.get(old.block_id)
                replaced_ids.add(old.block_id)
        else:
            if anonymous_index < len(anonymous):
                replacement = anonymous[anonymous_index]
            anonymous_index += 1
        chosen = replacement or old
        if replacement is not None:
            used.add(id(replacement))
        out.append(wrap_block(chosen.content, chosen.block_id) + "\n")

    merged = "".join(out)
    leftovers = [
        wrap_block(b.content, b.block_id) for b in new_blocks if id(b) not in used
    ]
    if leftovers:
        if merged and not merged.endswith("\n"):
            merged += "\n"
        if merged.strip():
            merged += "\n"
        merged += "\n\n".join(leftovers) + "\n"
    return merged
