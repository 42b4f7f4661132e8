"""Eligibility analysis and deduplicated content extraction."""

from .content import ContentExtractor, ExtractionOutcome, generate_content_id
from .strategies import (
    CliFlagStrategy,
    ExtractionStrategy,
    ForceMarkerStrategy,
    SectionLinkStrategy,
    StopMarkerStrategy,
    analyze_eligibility,
    default_strategies,
)

__all__ = [
    "ContentExtractor",
    "ExtractionOutcome",
    "generate_content_id",
    "ExtractionStrategy",
    "StopMarkerStrategy",
    "ForceMarkerStrategy",
    "SectionLinkStrategy",
    "CliFlagStrategy",
    "analyze_eligibility",
    "default_strategies",
]
