"""In-place repair of citations the validator knows how to correct.

Two kinds of fix are applied:

- path: a warning carrying a path conversion (target found through the file
  index in another directory) gets the recommended relative path
- anchor: a header anchor that errored because it is the kebab-case slug of a
  real heading, or a loose spelling of one ("version-1.2" for "Version 1.2"),
  gets the raw-header form of that heading

Everything else is left untouched and counted as a remaining error.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from urllib.parse import unquote

from .document import ParsedDocument
from .models import Citation, CitationFix, FixReport, HeaderAnchor, ValidationResult
from .parse_cache import ParseCache
from .parser import ParseError
from .parser.anchors import EXPLICIT_ID
from .validator import kebab_header, obsidian_header_link

log = logging.getLogger(__name__)

SQUASH = re.compile(r"[.\s]+")


def _title(header: HeaderAnchor) -> str:
    explicit = EXPLICIT_ID.match(header.raw_text)
    return explicit.group(1) if explicit else header.raw_text


def loose_header(anchor: str, doc: ParsedDocument) -> HeaderAnchor | None:
    """Heading matching ``anchor`` with hyphens read as spaces, ignoring case.

    Falls back to comparing with dots and whitespace removed. A trailing
    ``{#id}`` is not part of the heading title.
    """
    wanted = unquote(anchor).replace("-", " ").lower().strip()
    squashed = SQUASH.sub("", wanted)
    for header in doc.header_anchors:
        text = _title(header).lower()
        if text == wanted or SQUASH.sub("", text) == squashed:
            return header
    return None


def _replace_last(text: str, old: str, new: str) -> str:
    head, sep, tail = text.rpartition(old)
    return head + new + tail if sep else text


async def _anchor_fix(citation: Citation, parse_cache: ParseCache) -> CitationFix | None:
    anchor = citation.target.anchor
    if not anchor or citation.anchor_type != "header":
        return None

    doc_path = citation.target.path.absolute if citation.scope == "cross-document" else citation.source_path
    if not doc_path:
        return None
    try:
        doc = await parse_cache.resolve_parsed_file(doc_path)
    except (ParseError, OSError) as e:
        log.debug("Cannot fix anchor #%s, target unreadable: %s", anchor, e)
        return None

    header = kebab_header(anchor, doc) or loose_header(anchor, doc)
    if header is None:
        return None
    if header.id != header.raw_text:
        replacement = f"#{header.id}"  # Explicit {#id}
    else:
        replacement = obsidian_header_link(header.raw_text)
    if replacement == f"#{anchor}":
        return None

    new = _replace_last(citation.full_match, f"#{anchor}", replacement)
    if new == citation.full_match:
        return None
    return CitationFix(line=citation.line, column=citation.column, kind="anchor", old=citation.full_match, new=new)


def _path_fix(citation: Citation) -> CitationFix | None:
    conversion = citation.validation.path_conversion if citation.validation else None
    if conversion is None:
        return None
    new = citation.full_match.replace(conversion.original, conversion.recommended, 1)
    if new == citation.full_match:
        log.debug("Path %s not spelled literally in %s", conversion.original, citation.full_match)
        return None
    return CitationFix(line=citation.line, column=citation.column, kind="path", old=citation.full_match, new=new)


async def plan_fixes(result: ValidationResult, parse_cache: ParseCache) -> list[CitationFix]:
    """Work out the rewrite for every fixable citation in ``result``."""
    fixes = []
    for citation in result.citations:
        validation = citation.validation
        if validation is None or validation.status == "valid":
            continue
        if validation.status == "warning":
            fix = _path_fix(citation)
        else:
            fix = await _anchor_fix(citation, parse_cache)
        if fix is not None:
            fixes.append(fix)
    return fixes


def apply_fixes(path: str | Path, fixes: list[CitationFix]) -> list[CitationFix]:
    """Rewrite ``path`` in place and return the fixes that were applied.

    A fix is applied only where its old text still sits at its line and
    column. Line endings are preserved.
    """
    with open(path, encoding="utf-8", newline="") as f:
        lines = f.read().split("\n")

    applied = []
    # Right to left, so earlier columns on the same line stay valid
    for fix in sorted(fixes, key=lambda f: (f.line, f.column), reverse=True):
        index = fix.line - 1
        if index >= len(lines):
            continue
        line = lines[index]
        end = fix.column + len(fix.old)
        if line[fix.column : end] != fix.old:
            log.warning("Skipping fix on line %d of %s: text changed", fix.line, path)
            continue
        lines[index] = line[: fix.column] + fix.new + line[end:]
        applied.append(fix)

    if applied:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write("\n".join(lines))
    applied.sort(key=lambda f: (f.line, f.column))
    return applied


async def fix_file(result: ValidationResult, parse_cache: ParseCache) -> FixReport:
    """Apply every available fix for an already validated file."""
    fixes = await plan_fixes(result, parse_cache)
    applied = apply_fixes(result.file, fixes) if fixes else []
    anchor_fixes = sum(1 for f in applied if f.kind == "anchor")
    log.debug("Fixed %d of %d planned citations in %s", len(applied), len(fixes), result.file)
    return FixReport(file=result.file, fixes=applied, remaining_errors=result.summary.errors - anchor_fixes)


def format_fix_report(report: FixReport) -> str:
    if not report.fixes:
        return f"No auto-fixable citations found in {report.file}"

    lines = [f"Fixed {len(report.fixes)} citation(s) in {report.file}:"]
    if report.path_fixes:
        lines.append(f"   - {report.path_fixes} path correction(s)")
    if report.anchor_fixes:
        lines.append(f"   - {report.anchor_fixes} anchor correction(s)")
    lines.append("")
    lines.append("Changes made:")
    for fix in report.fixes:
        lines.append(f"  Line {fix.line} ({fix.kind}):")
        lines.append(f"    - {fix.old}")
        lines.append(f"    + {fix.new}")
    return "\n".join(lines)
