"""Wiring of parser, cache, validator and extractor into one pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .extractor import ContentExtractor, ExtractionStrategy, default_strategies
from .file_index import FileIndex
from .parse_cache import ParseCache
from .parser import MarkdownParser
from .validator import CitationValidator

log = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Components sharing one ParseCache for the duration of a run."""

    parser: MarkdownParser
    parse_cache: ParseCache
    file_index: FileIndex
    validator: CitationValidator
    extractor: ContentExtractor


def create_eligibility_strategies() -> list[ExtractionStrategy]:
    return default_strategies()


def create_pipeline(scope: str | Path | None = None, parser: MarkdownParser | None = None) -> Pipeline:
    """Build the full pipeline. The file index is only built when ``scope`` is given."""
    parser = parser or MarkdownParser()
    parse_cache = ParseCache(parser)

    file_index = FileIndex()
    if scope is not None:
        stats = file_index.build(scope)
        log.debug("File index: %d files, %d duplicate names", stats.total_files, stats.duplicates)

    validator = CitationValidator(parse_cache, file_index)
    extractor = ContentExtractor(parse_cache, validator, create_eligibility_strategies())
    return Pipeline(
        parser=parser,
        parse_cache=parse_cache,
        file_index=file_index,
        validator=validator,
        extractor=extractor,
    )
