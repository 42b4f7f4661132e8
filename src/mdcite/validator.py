"""Citation validation: file resolution and anchor matching strategies.

Each citation ends in exactly one of three states:

- valid: the file resolves directly and the anchor (if any) exists
- warning: the file was only found through the filename index, in a different
  place than the citation says; a path conversion is suggested
- error: the file is missing, or the anchor is missing or malformed

Validation problems are recorded on the citation, never raised.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Callable, NamedTuple
from urllib.parse import quote, unquote

from .config import AVAILABLE_ANCHORS_IN_ERROR, SUGGESTED_ANCHORS_IN_ERROR, VAULT_MARKERS
from .document import ParsedDocument
from .file_index import FileIndex
from .models import (
    Citation,
    ErrorValidation,
    HeaderAnchor,
    PathConversion,
    Validation,
    ValidationResult,
    ValidationSummary,
    ValidValidation,
    WarningValidation,
)
from .parse_cache import ParseCache
from .parser import ParseError

log = logging.getLogger(__name__)

# Accepted ids for bare ^caret references inside a document
CARET_PATTERN = re.compile(
    r"^\^([A-Za-z]{2,3}\d+(?:-\d+[a-z]?(?:AC\d+|T\d+(?:-\d+)?)?)?|[A-Za-z]+\d+|MVP-P\d+|[a-z][a-z0-9-]+[a-z0-9])$"
)

EMPHASIS_ANCHOR = re.compile(r"^==\*\*[^*]+\*\*==$")

# "folder/file.md": candidate for a path relative to the vault root
VAULT_RELATIVE = re.compile(r"^[A-Za-z0-9_-]+/")

MARKDOWN_LINK_TEXT = re.compile(r"\[([^\]]*)\]\([^)]*\)")
HIGHLIGHT = re.compile(r"==(.+?)==")

RAW_HEADER_ERROR = "Use raw header format for better Obsidian compatibility"


class PathResolution(NamedTuple):
    """A target file found by one of the path strategies."""

    path: str
    strategy: str
    cross_directory: bool = False
    message: str | None = None


PathStrategy = Callable[[str, str, FileIndex | None], PathResolution | None]
AnchorStrategy = Callable[[str, ParsedDocument], str | None]


# ─────────────────────────────────────────────────────────────────────────────
# Path resolution strategies
# ─────────────────────────────────────────────────────────────────────────────


def _spellings(raw_path: str) -> list[str]:
    decoded = unquote(raw_path)
    return [decoded, raw_path] if decoded != raw_path else [raw_path]


def _join(directory: str, raw_path: str) -> str:
    if os.path.isabs(raw_path):
        return os.path.normpath(raw_path)
    return os.path.normpath(os.path.join(directory, raw_path))


def resolve_standard(raw_path: str, source_path: str, file_index: FileIndex | None) -> PathResolution | None:
    """Relative to the citing file's directory, percent-decoded first."""
    source_dir = os.path.dirname(os.path.abspath(source_path))
    for spelling in _spellings(raw_path):
        candidate = _join(source_dir, spelling)
        if os.path.isfile(candidate):
            return PathResolution(path=candidate, strategy="standard")
    return None


def _is_vault_top(directory: str, scope_folder: str | None) -> bool:
    if scope_folder is not None and os.path.realpath(directory) == scope_folder:
        return True
    return any(os.path.exists(os.path.join(directory, marker)) for marker in VAULT_MARKERS)


def resolve_vault_relative(
    raw_path: str, source_path: str, file_index: FileIndex | None
) -> PathResolution | None:
    """``folder/file.md`` relative to an ancestor of the citing file.

    The upward walk ends at the file index scope or at the first directory
    holding a vault marker (``.obsidian``, ``.git``, ``.mdcite``).
    """
    if os.path.isabs(raw_path) or not VAULT_RELATIVE.match(raw_path):
        return None

    spelling = unquote(raw_path)
    scope_folder = file_index.scope_folder if file_index is not None else None
    current = os.path.dirname(os.path.abspath(source_path))
    while not _is_vault_top(current, scope_folder):
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent
        candidate = os.path.normpath(os.path.join(current, spelling))
        if os.path.isfile(candidate):
            return PathResolution(path=candidate, strategy="vault-relative")
    return None


def resolve_symlinked_source(
    raw_path: str, source_path: str, file_index: FileIndex | None
) -> PathResolution | None:
    """Relative to the real location of a symlinked citing file."""
    link_path = os.path.abspath(source_path)
    real_source = os.path.realpath(link_path)
    if real_source == link_path:
        return None

    real_dir = os.path.dirname(real_source)
    for spelling in _spellings(raw_path):
        candidate = _join(real_dir, spelling)
        if os.path.isfile(candidate):
            return PathResolution(path=os.path.realpath(candidate), strategy="symlink")
    return None


def resolve_by_filename(raw_path: str, source_path: str, file_index: FileIndex | None) -> PathResolution | None:
    """Unique filename anywhere in the indexed scope."""
    if file_index is None or len(file_index) == 0:
        return None

    lookup = file_index.resolve(os.path.basename(unquote(raw_path)))
    if not lookup.found or lookup.path is None:
        return None

    expected = _join(os.path.dirname(os.path.abspath(source_path)), unquote(raw_path))
    cross_directory = os.path.realpath(lookup.path) != os.path.realpath(expected)
    return PathResolution(
        path=lookup.path,
        strategy="file-index",
        cross_directory=cross_directory,
        message=lookup.message,
    )


PATH_STRATEGIES: tuple[PathStrategy, ...] = (
    resolve_standard,
    resolve_vault_relative,
    resolve_symlinked_source,
    resolve_by_filename,
)


# ─────────────────────────────────────────────────────────────────────────────
# Anchor matching strategies
# ─────────────────────────────────────────────────────────────────────────────


def clean_markdown(text: str) -> str:
    """Strip inline markup: code ticks, emphasis, highlights and link syntax."""
    text = MARKDOWN_LINK_TEXT.sub(r"\1", text)
    text = HIGHLIGHT.sub(r"\1", text)
    text = text.replace("`", "").replace("**", "").replace("*", "")
    return text.strip()


def match_exact(anchor: str, doc: ParsedDocument) -> str | None:
    return anchor if doc.has_anchor(anchor) else None


def match_decoded(anchor: str, doc: ParsedDocument) -> str | None:
    decoded = unquote(anchor)
    if decoded != anchor and doc.has_anchor(decoded):
        return decoded
    return None


def match_block_reference(anchor: str, doc: ParsedDocument) -> str | None:
    if not anchor.startswith("^"):
        return None
    block_id = anchor[1:]
    if any(block.id == block_id for block in doc.block_anchors):
        return block_id
    return None


def match_normalized(anchor: str, doc: ParsedDocument) -> str | None:
    wanted = clean_markdown(unquote(anchor))
    if not wanted:
        return None
    for header in doc.header_anchors:
        if clean_markdown(header.raw_text) == wanted or clean_markdown(header.id) == wanted:
            return header.id
    for block in doc.block_anchors:
        if clean_markdown(block.id) == wanted:
            return block.id
    return None


ANCHOR_STRATEGIES: tuple[AnchorStrategy, ...] = (
    match_exact,
    match_decoded,
    match_block_reference,
    match_normalized,
)


def match_anchor(anchor: str, doc: ParsedDocument) -> str | None:
    """Id of the anchor ``anchor`` refers to, via the first strategy that matches."""
    for strategy in ANCHOR_STRATEGIES:
        matched = strategy(anchor, doc)
        if matched is not None:
            log.debug("Anchor %r matched by %s in %s", anchor, strategy.__name__, doc.path)
            return matched
    return None


def _kebab(text: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    return re.sub(r"[\s_]+", "-", slug).strip("-")


def obsidian_header_link(raw_text: str) -> str:
    return "#" + quote(raw_text, safe="!*()~-_.").replace("'", "%27")


def kebab_header(anchor: str, doc: ParsedDocument) -> HeaderAnchor | None:
    """Heading whose kebab-case slug is ``anchor`` (and whose text is not)."""
    for header in doc.header_anchors:
        if header.raw_text != anchor and _kebab(header.raw_text) == anchor:
            return header
    return None


def raw_header_recommendation(anchor: str, doc: ParsedDocument) -> str | None:
    """Raw-header anchor to use instead of a kebab-case ``anchor``, if one exists."""
    header = kebab_header(anchor, doc)
    return obsidian_header_link(header.raw_text) if header else None


def anchor_suggestion(anchor: str, doc: ParsedDocument) -> str | None:
    """Similar anchors, or else the headers and block refs that do exist."""
    similar = doc.find_similar_anchors(anchor.lstrip("^"))[:SUGGESTED_ANCHORS_IN_ERROR]
    if similar:
        return "Did you mean: " + ", ".join(f"#{s}" for s in similar)

    parts = []
    headers = doc.header_anchors[:AVAILABLE_ANCHORS_IN_ERROR]
    if headers:
        parts.append(
            "Available headers: " + ", ".join(f'"{h.raw_text}" → #{h.url_encoded_id}' for h in headers)
        )
    blocks = doc.block_anchors[:AVAILABLE_ANCHORS_IN_ERROR]
    if blocks:
        parts.append("Available block refs: " + ", ".join(f"^{b.id}" for b in blocks))
    return "; ".join(parts) or None


# ─────────────────────────────────────────────────────────────────────────────
# Validator
# ─────────────────────────────────────────────────────────────────────────────


class CitationValidator:
    """Classifies citations as valid, warning or error, enriching them in place."""

    def __init__(self, parse_cache: ParseCache, file_index: FileIndex | None = None) -> None:
        self.parse_cache = parse_cache
        self.file_index = file_index

    async def validate_file(self, path: str | Path) -> ValidationResult:
        """Validate every citation in ``path`` concurrently.

        Raises:
            FileNotFoundError: If ``path`` is not an existing file.
            ParseError: If the file itself cannot be parsed.
        """
        file_path = os.path.abspath(path)
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"File not found: {path}")

        doc = await self.parse_cache.resolve_parsed_file(file_path)
        citations = doc.citations
        await asyncio.gather(*(self.validate_single_citation(c, file_path) for c in citations))

        summary = ValidationSummary.from_citations(citations)
        log.debug(
            "Validated %s: %d valid, %d warnings, %d errors",
            file_path,
            summary.valid,
            summary.warnings,
            summary.errors,
        )
        return ValidationResult(file=file_path, summary=summary, citations=citations)

    async def validate_single_citation(self, citation: Citation, context_path: str | None = None) -> Citation:
        """Validate one citation and return the same, now enriched, record.

        A citation that already carries a validation is returned untouched.
        """
        if citation.validation is not None:
            return citation

        source_path = citation.source_path or context_path
        if not source_path:
            raise ValueError("citation has no source path and no context path was given")

        if citation.scope == "internal":
            citation.validation = await self._validate_internal(citation, source_path)
        else:
            citation.validation = await self._validate_cross_document(citation, source_path)
        return citation

    async def _validate_internal(self, citation: Citation, source_path: str) -> Validation:
        anchor = citation.target.anchor or ""
        if not anchor:
            return ErrorValidation(error="Empty anchor")

        if citation.full_match.startswith("^") and not CARET_PATTERN.match(anchor):
            return ErrorValidation(error=f"Invalid caret pattern: {anchor}")
        format_error = _emphasis_format_error(anchor)
        if format_error is not None:
            return format_error

        try:
            doc = await self.parse_cache.resolve_parsed_file(source_path)
        except (ParseError, OSError) as e:
            return ErrorValidation(error=f"Error reading source file: {e}")

        anchor_error = _anchor_error(anchor, doc)
        if anchor_error is not None:
            return anchor_error
        return ValidValidation()

    async def _validate_cross_document(self, citation: Citation, source_path: str) -> Validation:
        raw_path = citation.target.path.raw
        if not raw_path:
            return ErrorValidation(error="Missing target path")

        anchor = citation.target.anchor
        if anchor:
            format_error = _emphasis_format_error(anchor)
            if format_error is not None:
                return format_error

        resolution = self._resolve_path(raw_path, source_path)
        if resolution is None:
            return ErrorValidation(
                error=f"File not found: {raw_path}",
                suggestion=self._not_found_suggestion(raw_path),
            )

        source_dir = os.path.dirname(os.path.abspath(source_path))
        relative = os.path.relpath(resolution.path, source_dir)
        citation.target.path.absolute = resolution.path
        citation.target.path.relative = relative

        if anchor:
            try:
                doc = await self.parse_cache.resolve_parsed_file(resolution.path)
            except (ParseError, OSError) as e:
                return ErrorValidation(error=f"Error reading target file: {e}")

            anchor_error = _anchor_error(anchor, doc)
            if anchor_error is not None:
                return anchor_error

        if resolution.cross_directory:
            suffix = f"#{anchor}" if anchor else ""
            return WarningValidation(
                error=f"Found via file index in different directory: {relative}",
                suggestion=resolution.message,
                path_conversion=PathConversion(original=raw_path + suffix, recommended=relative + suffix),
            )
        return ValidValidation()

    def _resolve_path(self, raw_path: str, source_path: str) -> PathResolution | None:
        for strategy in PATH_STRATEGIES:
            resolution = strategy(raw_path, source_path, self.file_index)
            if resolution is not None:
                log.debug("Resolved %s via %s: %s", raw_path, resolution.strategy, resolution.path)
                return resolution
        return None

    def _not_found_suggestion(self, raw_path: str) -> str | None:
        if self.file_index is None or len(self.file_index) == 0:
            return None
        lookup = self.file_index.resolve(os.path.basename(unquote(raw_path)))
        if lookup.reason == "duplicate":
            return lookup.message
        return None


def _emphasis_format_error(anchor: str) -> ErrorValidation | None:
    if anchor.startswith("==") and not EMPHASIS_ANCHOR.match(anchor):
        return ErrorValidation(error=f"Invalid emphasis-marked anchor format: {anchor}")
    return None


def _anchor_error(anchor: str, doc: ParsedDocument) -> ErrorValidation | None:
    """Kebab-case spelling of a real heading, or an anchor that does not exist."""
    recommended = raw_header_recommendation(anchor, doc)
    if recommended is not None:
        return ErrorValidation(error=RAW_HEADER_ERROR, suggestion=recommended)
    if match_anchor(anchor, doc) is None:
        return ErrorValidation(error=f"Anchor not found: #{anchor}", suggestion=anchor_suggestion(anchor, doc))
    return None
