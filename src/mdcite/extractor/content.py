"""Content extraction with content-addressed deduplication."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import NamedTuple, Sequence
from urllib.parse import unquote

from ..config import CONTENT_ID_LENGTH
from ..document import ParsedDocument
from ..models import (
    Citation,
    CitationReference,
    ContentBlock,
    ContentSource,
    EligibilityDecision,
    ExtractionFlags,
    ExtractionResult,
    ExtractionStats,
    OutcomeStatus,
)
from ..parse_cache import ParseCache
from ..parser import ParseError
from ..validator import CitationValidator, match_anchor
from .strategies import ExtractionStrategy, analyze_eligibility, default_strategies

log = logging.getLogger(__name__)


def generate_content_id(content: str) -> str:
    """Fingerprint of extracted text: truncated SHA-256 hex digest."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:CONTENT_ID_LENGTH]


class ExtractionOutcome(NamedTuple):
    """Per-citation result before deduplication."""

    citation: Citation
    status: OutcomeStatus
    content: str | None = None
    reason: str | None = None
    eligibility_reason: str | None = None


class ContentExtractor:
    """Extracts cited content and stores identical text only once."""

    def __init__(
        self,
        parse_cache: ParseCache,
        validator: CitationValidator | None = None,
        strategies: Sequence[ExtractionStrategy] | None = None,
    ) -> None:
        self.parse_cache = parse_cache
        self.validator = validator or CitationValidator(parse_cache)
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def analyze_eligibility(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision:
        return analyze_eligibility(citation, flags, self.strategies)

    async def extract_links_content(
        self, path: str | Path, flags: ExtractionFlags | None = None
    ) -> ExtractionResult:
        """Validate every citation in ``path`` and extract the eligible ones.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
            ParseError: If ``path`` itself cannot be parsed.
        """
        validation = await self.validator.validate_file(path)
        return await self.extract_content(validation.citations, flags)

    async def extract_content(
        self, citations: Sequence[Citation], flags: ExtractionFlags | None = None
    ) -> ExtractionResult:
        """Extract from citations that have already been validated.

        Internal citations are left out: their content is already in the source.
        """
        flags = flags or ExtractionFlags()
        candidates = [c for c in citations if c.scope != "internal"]
        outcomes = await asyncio.gather(*(self._process(c, flags) for c in candidates))
        return self._deduplicate(list(outcomes))

    async def _process(self, citation: Citation, flags: ExtractionFlags) -> ExtractionOutcome:
        validation = citation.validation
        if validation is None:
            return ExtractionOutcome(citation, "skipped", reason="Link was not validated")
        if validation.status == "error":
            return ExtractionOutcome(citation, "skipped", reason=f"Link failed validation: {validation.error}")

        decision = self.analyze_eligibility(citation, flags)
        if not decision.eligible:
            return ExtractionOutcome(citation, "skipped", reason=f"Link not eligible: {decision.reason}")

        target = citation.target.path.absolute
        if not target:
            return ExtractionOutcome(citation, "error", reason="Extraction failed: target path not resolved")

        try:
            doc = await self.parse_cache.resolve_parsed_file(target)
        except (ParseError, OSError) as e:
            return ExtractionOutcome(citation, "error", reason=f"Extraction failed: cannot read {target}: {e}")

        content, missing = _retrieve(citation, doc)
        if content is None:
            return ExtractionOutcome(citation, "error", reason=missing)

        return ExtractionOutcome(citation, "success", content=content, eligibility_reason=decision.reason)

    def _deduplicate(self, outcomes: list[ExtractionOutcome]) -> ExtractionResult:
        content_index: dict[str, ContentBlock] = {}
        references: list[CitationReference] = []
        duplicates = 0
        unique_bytes = 0
        bytes_saved = 0

        for outcome in outcomes:
            citation = outcome.citation
            target_path = citation.target.path.absolute or citation.target.path.raw
            content_id = None

            if outcome.status == "success" and outcome.content is not None:
                content_id = generate_content_id(outcome.content)
                source = ContentSource(
                    target_path=target_path,
                    anchor=citation.target.anchor,
                    anchor_type=citation.anchor_type,
                    source_line=citation.line,
                    source_link=citation.full_match,
                )
                size = len(outcome.content.encode("utf-8"))
                if content_id in content_index:
                    content_index[content_id].sources.append(source)
                    duplicates += 1
                    bytes_saved += size
                else:
                    content_index[content_id] = ContentBlock(
                        content=outcome.content,
                        content_length=len(outcome.content),
                        sources=[source],
                    )
                    unique_bytes += size

            references.append(
                CitationReference(
                    source_link=citation.full_match,
                    line=citation.line,
                    column=citation.column,
                    target_path=target_path,
                    anchor=citation.target.anchor,
                    content_id=content_id,
                    status=outcome.status,
                    reason=outcome.reason,
                    eligibility_reason=outcome.eligibility_reason,
                )
            )

        total_bytes = unique_bytes + bytes_saved
        stats = ExtractionStats(
            total_links=len(outcomes),
            unique_content=len(content_index),
            duplicate_content_detected=duplicates,
            bytes_saved=bytes_saved,
            compression_ratio=bytes_saved / total_bytes if total_bytes else 0.0,
        )
        serialized = json.dumps({cid: block.model_dump(mode="json") for cid, block in content_index.items()})
        log.debug("Extracted %d unique blocks, %d duplicates", stats.unique_content, duplicates)
        return ExtractionResult(
            content_index=content_index,
            citations=references,
            stats=stats,
            total_content_length=len(serialized),
        )


def _retrieve(citation: Citation, doc: ParsedDocument) -> tuple[str | None, str | None]:
    """Return (content, None) or (None, reason the anchor was not found)."""
    anchor = citation.target.anchor

    if not anchor or citation.anchor_type is None:
        return doc.extract_full_content(), None

    if citation.anchor_type == "block":
        block_id = anchor[1:] if anchor.startswith("^") else anchor
        content = doc.extract_block(block_id)
        if content is None:
            return None, f"Block not found: ^{block_id}"
        return content, None

    heading = unquote(anchor)
    content = doc.extract_section(heading)
    if content is None:
        matched = match_anchor(anchor, doc)
        header = doc.find_header_anchor(matched or heading)
        if header is not None:
            content = doc.extract_section(header.raw_text, header.level)
        elif matched is not None:
            # ==**Name**== anchors are block anchors reached through header syntax
            content = doc.extract_block(matched)
    if content is None:
        return None, f"Heading not found: {heading}"
    return content, None
