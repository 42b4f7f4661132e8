"""Markdown parsing with citation and anchor extraction."""

from ..models import Anchor, Citation, Heading
from .anchors import extract_anchors, url_encode_heading
from .links import (
    determine_anchor_type,
    detect_extraction_marker,
    extract_citations,
    find_token_links,
    resolve_target_path,
    scan_inline_link,
)
from .markdown import MarkdownParser, ParseError, ParseResult, Token

__all__ = [
    "MarkdownParser",
    "ParseError",
    "ParseResult",
    "Token",
    "Citation",
    "Anchor",
    "Heading",
    "extract_citations",
    "find_token_links",
    "scan_inline_link",
    "extract_anchors",
    "determine_anchor_type",
    "detect_extraction_marker",
    "resolve_target_path",
    "url_encode_heading",
]
