"""Anchor extraction: headings, ^block markers and ==**emphasis**== markers."""

from __future__ import annotations

import re

from ..models import Anchor, BlockAnchor, Heading, HeaderAnchor
from .links import inside_inline_code

# ^block-id at the very end of a line (Obsidian block reference)
BLOCK_REF_AT_EOL = re.compile(r"(?<![\w#])\^([a-zA-Z0-9\-_]+)$")

# ==**Name**== emphasis marker
EMPHASIS_MARKER = re.compile(r"==\*\*([^*]+)\*\*==")

# "Heading text {#custom-id}"
EXPLICIT_ID = re.compile(r"^(.*?)\s*\{#([^}]+)\}\s*$")


def url_encode_heading(text: str) -> str:
    """Obsidian-style heading id: colons dropped, whitespace runs become %20."""
    return re.sub(r"\s+", "%20", text.replace(":", ""))


def header_anchor(heading: Heading) -> HeaderAnchor:
    explicit = EXPLICIT_ID.match(heading.text)
    if explicit:
        anchor_id = explicit.group(2).strip()
        return HeaderAnchor(
            id=anchor_id,
            raw_text=heading.text,
            url_encoded_id=anchor_id,
            level=heading.level,
            line=heading.line,
        )
    return HeaderAnchor(
        id=heading.text,
        raw_text=heading.text,
        url_encoded_id=url_encode_heading(heading.text),
        level=heading.level,
        line=heading.line,
    )


def extract_anchors(lines: list[str], headings: list[Heading], code_lines: set[int]) -> list[Anchor]:
    """Collect every anchor a citation could point at.

    Header anchors come first in heading order, then block anchors in line order.
    A caret in the middle of a line is a reference, not a definition, so only
    end-of-line carets define block anchors.
    """
    anchors: list[Anchor] = [header_anchor(h) for h in headings]

    for index, line in enumerate(lines):
        line_no = index + 1
        if line_no in code_lines:
            continue

        stripped = line.rstrip()
        blocks: list[BlockAnchor] = []

        eol = BLOCK_REF_AT_EOL.search(stripped)
        if eol and not inside_inline_code(stripped, eol.start()):
            blocks.append(BlockAnchor(id=eol.group(1), full_match=eol.group(0), line=line_no, column=eol.start()))

        for match in EMPHASIS_MARKER.finditer(stripped):
            if inside_inline_code(stripped, match.start()):
                continue
            blocks.append(
                BlockAnchor(id=match.group(1), full_match=match.group(0), line=line_no, column=match.start())
            )

        anchors.extend(sorted(blocks, key=lambda b: b.column))

    return anchors
