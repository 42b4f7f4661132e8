"""Markdown parsing into a token tree plus citation and anchor lists."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import frontmatter
import yaml
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from ..models import Anchor, Citation, Heading
from .anchors import extract_anchors
from .links import extract_citations, find_token_links

log = logging.getLogger(__name__)

# Block containers whose text lives entirely in their children
CONTAINER_TYPES = frozenset({"root", "bullet_list", "ordered_list", "list_item", "blockquote"})

# Leaf blocks whose lines must not be scanned for citations or anchors
CODE_TYPES = frozenset({"fence", "code_block"})


class ParseError(Exception):
    """Raised when a markdown file cannot be read or parsed."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass(frozen=True)
class Token:
    """One block of the document.

    Leaf blocks carry ``raw``: their verbatim source from their first line up to
    the next leaf block. Containers (lists, list items, blockquotes) carry no raw
    text; their content is reachable through ``children``.
    """

    type: str
    raw: str = ""
    depth: int = 0  # Heading level, 0 for everything else
    text: str = ""  # Heading text / code content
    line: int = 0  # 1-based first line
    children: tuple[Token, ...] = ()


@dataclass(frozen=True)
class ParseResult:
    """Immutable parse output for exactly one file."""

    path: str
    text: str
    tokens: tuple[Token, ...]
    citations: list[Citation] = field(default_factory=list)
    anchors: list[Anchor] = field(default_factory=list)
    headings: list[Heading] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class MarkdownParser:
    """Turns markdown files into ParseResult instances."""

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark").enable("table")

    async def parse_file(self, path: str | Path) -> ParseResult:
        """Read and parse a markdown file.

        Raises:
            ParseError: If the file does not exist or cannot be read.
        """
        file_path = Path(path)
        if not file_path.exists():
            raise ParseError(file_path, "File does not exist")
        if not file_path.is_file():
            raise ParseError(file_path, "Path is not a file")

        try:
            text = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(file_path, f"Failed to read file: {e}") from e

        return self.parse_text(text, str(file_path))

    def parse_text(self, text: str, path: str) -> ParseResult:
        """Parse markdown text that belongs to ``path``."""
        metadata, frontmatter_lines = _split_frontmatter(text, path)

        lines = text.split("\n")
        # Blank the frontmatter so "title: x\n---" never tokenizes as a heading
        scan_lines = [""] * frontmatter_lines + lines[frontmatter_lines:]
        scan_text = "\n".join(scan_lines)

        md_tokens = self._md.parse(scan_text)
        root = SyntaxTreeNode(md_tokens)
        leaves: list[SyntaxTreeNode] = []
        _collect_leaves(root, leaves)

        raw_by_leaf = _leaf_raw_text(text, leaves)
        tokens = tuple(_build_token(child, raw_by_leaf) for child in root.children)

        code_lines: set[int] = set()
        headings: list[Heading] = []
        for leaf in leaves:
            start, end = leaf.map  # type: ignore[misc]
            if leaf.type in CODE_TYPES:
                code_lines.update(range(start + 1, end + 1))
            elif leaf.type == "heading":
                headings.append(Heading(level=_heading_level(leaf), text=_inline_text(leaf), line=start + 1))

        token_links = find_token_links(md_tokens, scan_lines, self._md.normalizeLink)
        citations = extract_citations(scan_lines, path, code_lines, token_links)
        anchors = extract_anchors(scan_lines, headings, code_lines)

        log.debug(
            "Parsed %s: %d tokens, %d citations, %d anchors",
            path,
            len(tokens),
            len(citations),
            len(anchors),
        )
        return ParseResult(
            path=path,
            text=text,
            tokens=tokens,
            citations=citations,
            anchors=anchors,
            headings=headings,
            metadata=metadata,
        )


def _split_frontmatter(text: str, path: str) -> tuple[dict[str, Any], int]:
    """Return (metadata, number of lines occupied by the frontmatter block)."""
    if not frontmatter.checks(text):
        return {}, 0

    lines = text.split("\n")
    if not lines or lines[0].strip() != "---":
        return {}, 0

    closing = None
    for i in range(1, len(lines)):
        if lines[i].strip() in ("---", "..."):
            closing = i
            break
    if closing is None:
        return {}, 0

    try:
        metadata, _content = frontmatter.parse(text)
    except (yaml.YAMLError, ValueError) as e:
        log.warning("Ignoring unparseable frontmatter in %s: %s", path, e)
        metadata = {}

    return dict(metadata), closing + 1


def _collect_leaves(node: SyntaxTreeNode, out: list[SyntaxTreeNode]) -> None:
    for child in node.children:
        if child.map is None:
            continue
        if child.type in CONTAINER_TYPES:
            _collect_leaves(child, out)
        else:
            out.append(child)


def _line_offsets(text: str) -> list[int]:
    offsets = [0]
    offsets.extend(m.end() for m in re.finditer("\n", text))
    return offsets


def _leaf_raw_text(text: str, leaves: list[SyntaxTreeNode]) -> dict[int, str]:
    """Map each leaf to its source text, trailing blank lines included."""
    offsets = _line_offsets(text)

    def offset(line: int) -> int:
        return offsets[line] if line < len(offsets) else len(text)

    raw_by_leaf: dict[int, str] = {}
    for i, leaf in enumerate(leaves):
        start, own_end = leaf.map  # type: ignore[misc]
        if i + 1 < len(leaves):
            next_start = leaves[i + 1].map[0]  # type: ignore[index]
            end = next_start if next_start > start else own_end
        else:
            end = len(offsets)
        raw_by_leaf[id(leaf)] = text[offset(start):offset(end)]
    return raw_by_leaf


def _build_token(node: SyntaxTreeNode, raw_by_leaf: dict[int, str]) -> Token:
    line = node.map[0] + 1 if node.map else 0
    if node.type in CONTAINER_TYPES:
        children = tuple(_build_token(c, raw_by_leaf) for c in node.children if c.map is not None)
        return Token(type=node.type, line=line, children=children)

    raw = raw_by_leaf.get(id(node), "")
    if node.type == "heading":
        return Token(type="heading", raw=raw, depth=_heading_level(node), text=_inline_text(node), line=line)
    if node.type in CODE_TYPES:
        return Token(type=node.type, raw=raw, text=node.content, line=line)
    return Token(type=node.type, raw=raw, line=line)


def _heading_level(node: SyntaxTreeNode) -> int:
    return int(node.tag[1:]) if node.tag.startswith("h") else 0


def _inline_text(node: SyntaxTreeNode) -> str:
    for child in node.children:
        if child.type == "inline":
            return child.content
    return ""
