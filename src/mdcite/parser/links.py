"""Citation extraction from markdown source lines.

Standard inline links come from the markdown-it token stream; their source
position is recovered with markdown-it's own destination and title parsers.
Regexes cover what CommonMark does not tokenize: anchors with raw spaces,
wiki links, ``[cite: path]`` and bare ``^id`` references.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, Iterable, NamedTuple

from markdown_it.helpers import parseLinkDestination, parseLinkTitle
from markdown_it.token import Token as MdToken

from ..models import AnchorType, Citation, CitationTarget, ExtractionMarker, LinkScope, LinkType, TargetPath

log = logging.getLogger(__name__)

# [text](path#anchor) with a raw, unencoded anchor. The anchor allows spaces
# and two levels of parentheses.
MARKDOWN_LINK = re.compile(
    r"(?<!!)\[(?P<text>[^\]]*)\]"
    r"\((?P<path>[^)#]*?)"
    r"(?:#(?P<anchor>(?:[^()]|\((?:[^()]|\([^)]*\))*\))+))?\)"
)

# '[' that may open an inline link (not an image, not escaped)
LINK_OPENER = re.compile(r"(?<![!\\])\[")

# [[file.md#anchor|alias]]
WIKI_LINK = re.compile(r"\[\[(?P<path>[^#\]|]+\.md)(?:#(?P<anchor>[^|\]]+))?(?:\|(?P<text>[^\]]+))?\]\]")

# [[#anchor|alias]]
WIKI_INTERNAL = re.compile(r"\[\[#(?P<anchor>[^|\]]+)(?:\|(?P<text>[^\]]+))?\]\]")

# [cite: path]
CITE_LINK = re.compile(r"\[cite:\s*(?P<path>[^\]]+)\]")

# Mid-line ^id reference. Excludes footnotes ([^1]), math (x^2) and '#^id' link anchors.
CARET_REF = re.compile(r"(?<![\w#^\[])\^(?P<id>[A-Za-z0-9][A-Za-z0-9-]*)")

SEMVER_TAIL = re.compile(r"\.\d")

# %%marker%% or <!-- marker --> directly after a citation
EXTRACTION_MARKER = re.compile(r"\s*(%%(.+?)%%|<!--\s*(.+?)\s*-->)")

URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:|^//")


class LinkSpan(NamedTuple):
    """Source position of one inline link."""

    column: int  # Index of the opening '['
    end: int  # Index just past the closing ')'
    text: str  # Link label as written
    destination: str  # Destination with <> and backslash escapes removed


def inside_inline_code(line: str, position: int) -> bool:
    """True when ``position`` falls inside a `code span` on ``line``."""
    return line.count("`", 0, position) % 2 == 1


def determine_anchor_type(anchor: str | None) -> AnchorType | None:
    if not anchor:
        return None
    return "block" if anchor.startswith("^") else "header"


def detect_extraction_marker(line: str, end: int) -> ExtractionMarker | None:
    """Return the marker that immediately follows position ``end``, if any."""
    match = EXTRACTION_MARKER.match(line, end)
    if not match:
        return None
    inner = match.group(2) if match.group(2) is not None else match.group(3)
    return ExtractionMarker(full_match=match.group(1), inner_text=inner.strip())


def resolve_target_path(raw_path: str, source_path: str) -> TargetPath:
    """Resolve a raw link path against the citing file's directory."""
    source_dir = os.path.dirname(os.path.abspath(source_path))
    if os.path.isabs(raw_path):
        absolute = os.path.normpath(raw_path)
    else:
        absolute = os.path.normpath(os.path.join(source_dir, raw_path))
    return TargetPath(raw=raw_path, absolute=absolute, relative=os.path.relpath(absolute, source_dir))


# ─────────────────────────────────────────────────────────────────────────────
# Inline links from the token stream
# ─────────────────────────────────────────────────────────────────────────────


def _label_end(line: str, start: int) -> int | None:
    """Index of the ']' closing the label opened at ``start``."""
    level = 0
    pos = start
    while pos < len(line):
        char = line[pos]
        if char == "\\":
            pos += 2
            continue
        if char == "[":
            level += 1
        elif char == "]":
            level -= 1
            if level == 0:
                return pos
        pos += 1
    return None


def _skip_spaces(line: str, pos: int) -> int:
    while pos < len(line) and line[pos] in " \t":
        pos += 1
    return pos


def scan_inline_link(line: str, start: int) -> LinkSpan | None:
    """Parse ``[text](destination "title")`` whose '[' sits at ``start``."""
    label_end = _label_end(line, start)
    if label_end is None or not line.startswith("(", label_end + 1):
        return None

    maximum = len(line)
    pos = _skip_spaces(line, label_end + 2)
    destination = ""
    parsed = parseLinkDestination(line, pos, maximum)
    if parsed.ok:
        destination = parsed.str
        pos = _skip_spaces(line, parsed.pos)
        if pos > parsed.pos:
            title = parseLinkTitle(line, pos, maximum)
            if title.ok:
                pos = _skip_spaces(line, title.pos)

    if not line.startswith(")", pos):
        return None
    return LinkSpan(column=start, end=pos + 1, text=line[start + 1 : label_end], destination=destination)


def _line_link_spans(line: str) -> list[LinkSpan]:
    spans = []
    for opener in LINK_OPENER.finditer(line):
        if inside_inline_code(line, opener.start()):
            continue
        span = scan_inline_link(line, opener.start())
        if span is not None:
            spans.append(span)
    return spans


def find_token_links(
    tokens: Iterable[MdToken], lines: list[str], normalize_link: Callable[[str], str]
) -> dict[int, list[LinkSpan]]:
    """Locate each ``link_open`` token of the stream in the source lines.

    A token is paired with the next inline link in its block whose normalized
    destination equals the token's href. Links with no inline source form
    (reference-style links) have no position and are left out.
    """
    found: dict[int, list[LinkSpan]] = {}
    for token in tokens:
        if token.type != "inline" or not token.map or not token.children:
            continue
        hrefs = [child.attrGet("href") for child in token.children if child.type == "link_open"]
        if not hrefs:
            continue

        first, last = token.map
        candidates = [
            (line_no, span)
            for line_no in range(first + 1, min(last, len(lines)) + 1)
            for span in _line_link_spans(lines[line_no - 1])
        ]
        for href in hrefs:
            if href is None:
                continue
            for i, (line_no, span) in enumerate(candidates):
                if normalize_link(span.destination) == href:
                    found.setdefault(line_no, []).append(span)
                    del candidates[: i + 1]
                    break
            else:
                log.debug("No inline source for link %s on lines %d-%d", href, first + 1, last)
    return found


# ─────────────────────────────────────────────────────────────────────────────
# Citation records
# ─────────────────────────────────────────────────────────────────────────────


def _citation(
    *,
    link_type: LinkType,
    scope: LinkScope,
    source_path: str,
    raw_path: str | None,
    anchor: str | None,
    text: str | None,
    full_match: str,
    column: int,
    line: str,
    line_no: int,
) -> Citation:
    if raw_path:
        path = resolve_target_path(raw_path, source_path)
    else:
        path = TargetPath()
    return Citation(
        link_type=link_type,
        scope=scope,
        anchor_type=determine_anchor_type(anchor),
        source_path=source_path,
        target=CitationTarget(path=path, anchor=anchor),
        text=text,
        full_match=full_match,
        line=line_no,
        column=column,
        extraction_marker=detect_extraction_marker(line, column + len(full_match)),
    )


def _line_citations(
    line: str, line_no: int, source_path: str, token_spans: list[LinkSpan] | None = None
) -> list[Citation]:
    found: list[Citation] = []
    spans: list[tuple[int, int]] = []

    def claim(start: int, end: int) -> bool:
        if inside_inline_code(line, start):
            return False
        if any(s <= start < e for s, e in spans):
            return False
        spans.append((start, end))
        return True

    def markdown_link(raw_path: str, anchor: str | None, text: str, start: int, end: int) -> None:
        found.append(
            _citation(
                link_type="markdown",
                scope="cross-document" if raw_path else "internal",
                source_path=source_path,
                raw_path=raw_path or None,
                anchor=anchor,
                text=text,
                full_match=line[start:end],
                column=start,
                line=line,
                line_no=line_no,
            )
        )

    for span in token_spans or ():
        if not claim(span.column, span.end):
            continue
        raw_path, hash_sign, anchor = span.destination.partition("#")
        raw_path = raw_path.strip()
        if URL_SCHEME.match(raw_path) or not (raw_path or anchor):
            continue
        markdown_link(raw_path, anchor if hash_sign and anchor else None, span.text, span.column, span.end)

    for match in WIKI_INTERNAL.finditer(line):
        if claim(*match.span()):
            found.append(
                _citation(
                    link_type="wiki",
                    scope="internal",
                    source_path=source_path,
                    raw_path=None,
                    anchor=match.group("anchor").strip(),
                    text=match.group("text"),
                    full_match=match.group(0),
                    column=match.start(),
                    line=line,
                    line_no=line_no,
                )
            )

    for match in WIKI_LINK.finditer(line):
        if claim(*match.span()):
            anchor = match.group("anchor")
            found.append(
                _citation(
                    link_type="wiki",
                    scope="cross-document",
                    source_path=source_path,
                    raw_path=match.group("path").strip(),
                    anchor=anchor.strip() if anchor else None,
                    text=match.group("text"),
                    full_match=match.group(0),
                    column=match.start(),
                    line=line,
                    line_no=line_no,
                )
            )

    # Links CommonMark rejects, such as '#Heading With Spaces' anchors
    for match in MARKDOWN_LINK.finditer(line):
        raw_path = match.group("path").strip()
        anchor = match.group("anchor")
        if URL_SCHEME.match(raw_path):
            continue
        if not raw_path and not anchor:
            continue
        if claim(*match.span()):
            markdown_link(raw_path, anchor, match.group("text"), match.start(), match.end())

    for match in CITE_LINK.finditer(line):
        if claim(*match.span()):
            raw_path = match.group("path").strip()
            found.append(
                _citation(
                    link_type="markdown",
                    scope="cross-document",
                    source_path=source_path,
                    raw_path=raw_path,
                    anchor=None,
                    text=f"cite: {raw_path}",
                    full_match=match.group(0),
                    column=match.start(),
                    line=line,
                    line_no=line_no,
                )
            )

    stripped = line.rstrip()
    for match in CARET_REF.finditer(line):
        if match.end() == len(stripped):
            continue  # Block definition, not a reference
        if SEMVER_TAIL.match(line, match.end()):
            continue
        if claim(*match.span()):
            found.append(
                _citation(
                    link_type="markdown",
                    scope="internal",
                    source_path=source_path,
                    raw_path=None,
                    anchor=f"^{match.group('id')}",
                    text=None,
                    full_match=match.group(0),
                    column=match.start(),
                    line=line,
                    line_no=line_no,
                )
            )

    found.sort(key=lambda c: c.column)
    return found


def extract_citations(
    lines: list[str],
    source_path: str,
    code_lines: set[int],
    token_links: dict[int, list[LinkSpan]] | None = None,
) -> list[Citation]:
    """Find every citation in ``lines``, skipping fenced and indented code.

    ``token_links`` maps 1-based line numbers to the inline links markdown-it
    recognized there (see find_token_links).
    """
    token_links = token_links or {}
    citations: list[Citation] = []
    for index, line in enumerate(lines):
        line_no = index + 1
        if line_no in code_lines or not line.strip():
            continue
        citations.extend(_line_citations(line, line_no, source_path, token_links.get(line_no)))
    return citations
