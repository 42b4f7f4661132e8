"""Query and extraction facade over one parsed markdown file."""

from __future__ import annotations

from functools import cached_property
from typing import Any, Iterator

from .config import ANCHOR_SIMILARITY_THRESHOLD, MAX_SIMILAR_ANCHORS
from .models import Anchor, BlockAnchor, Citation, Heading, HeaderAnchor
from .parser import ParseResult, Token


class ParsedDocument:
    """Stable queries over a ParseResult.

    Instances are created and owned by ParseCache; callers must treat them as
    read-only. "Not found" is always reported as ``None``, never raised.
    """

    def __init__(self, result: ParseResult) -> None:
        self._result = result

    def __repr__(self) -> str:
        return f"ParsedDocument({self.path!r})"

    @property
    def path(self) -> str:
        return self._result.path

    @property
    def text(self) -> str:
        return self._result.text

    @property
    def tokens(self) -> tuple[Token, ...]:
        return self._result.tokens

    @property
    def citations(self) -> list[Citation]:
        return self._result.citations

    @property
    def anchors(self) -> list[Anchor]:
        return self._result.anchors

    @property
    def headings(self) -> list[Heading]:
        return self._result.headings

    @property
    def metadata(self) -> dict[str, Any]:
        return self._result.metadata

    # ─────────────────────────────────────────────────────────────────────────
    # Derived views
    # ─────────────────────────────────────────────────────────────────────────

    @cached_property
    def anchor_ids(self) -> frozenset[str]:
        """Every anchor id plus every header's URL-encoded id."""
        ids: set[str] = set()
        for anchor in self.anchors:
            ids.add(anchor.id)
            if isinstance(anchor, HeaderAnchor):
                ids.add(anchor.url_encoded_id)
        return frozenset(ids)

    @cached_property
    def header_anchors(self) -> list[HeaderAnchor]:
        return [a for a in self.anchors if isinstance(a, HeaderAnchor)]

    @cached_property
    def block_anchors(self) -> list[BlockAnchor]:
        return [a for a in self.anchors if isinstance(a, BlockAnchor)]

    @cached_property
    def _candidate_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for anchor in self.anchors:
            seen.setdefault(anchor.id)
            if isinstance(anchor, HeaderAnchor):
                seen.setdefault(anchor.url_encoded_id)
        return list(seen)

    @cached_property
    def _flat_tokens(self) -> list[Token]:
        return list(_walk(self.tokens))

    # ─────────────────────────────────────────────────────────────────────────
    # Anchor queries
    # ─────────────────────────────────────────────────────────────────────────

    def has_anchor(self, anchor_id: str) -> bool:
        return anchor_id in self.anchor_ids

    def find_header_anchor(self, anchor: str) -> HeaderAnchor | None:
        """Header anchor whose id, URL-encoded id or raw text equals ``anchor``."""
        for header in self.header_anchors:
            if anchor in (header.id, header.url_encoded_id, header.raw_text):
                return header
        return None

    def find_similar_anchors(self, anchor_id: str) -> list[str]:
        """Up to five known anchor ids that look like ``anchor_id``.

        Similarity is 1 - levenshtein / longer length, case-insensitive. The
        low threshold favours suggesting half-typed anchors.
        """
        needle = anchor_id.lower()
        scored: list[tuple[float, str]] = []
        for candidate in self._candidate_ids:
            score = similarity(needle, candidate.lower())
            if score > ANCHOR_SIMILARITY_THRESHOLD:
                scored.append((score, candidate))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [candidate for _, candidate in scored[:MAX_SIMILAR_ANCHORS]]

    # ─────────────────────────────────────────────────────────────────────────
    # Content extraction
    # ─────────────────────────────────────────────────────────────────────────

    def extract_full_content(self) -> str:
        return self.text

    def extract_section(self, heading_text: str, level: int | None = None) -> str | None:
        """Raw text from the matching heading up to the next heading of the same or higher rank.

        Deeper headings stay inside the section. When ``level`` is omitted the
        level of the first heading with that text is used.
        """
        if level is None:
            heading = next((h for h in self.headings if h.text == heading_text), None)
            if heading is None:
                return None
            level = heading.level

        flat = self._flat_tokens
        start = None
        for i, token in enumerate(flat):
            if token.type == "heading" and token.text == heading_text and token.depth == level:
                start = i
                break
        if start is None:
            return None

        end = len(flat)
        for i in range(start + 1, len(flat)):
            token = flat[i]
            if token.type == "heading" and token.depth <= level:
                end = i
                break

        return "".join(token.raw for token in flat[start:end])

    def extract_block(self, anchor_id: str) -> str | None:
        """The single source line carrying block anchor ``anchor_id``."""
        anchor = next((a for a in self.block_anchors if a.id == anchor_id), None)
        if anchor is None:
            return None

        lines = self.text.split("\n")
        index = anchor.line - 1
        if index < 0 or index >= len(lines):
            return None
        return lines[index]


def _walk(tokens: tuple[Token, ...]) -> Iterator[Token]:
    """Document order: each token, then its children, then its next sibling."""
    for token in tokens:
        yield token
        if token.children:
            yield from _walk(token.children)


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest
