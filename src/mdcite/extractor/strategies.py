"""Eligibility rules deciding which citations get their content extracted.

Rules are evaluated in order; the first one with an opinion decides. A rule
returns None to pass the citation on to the next one.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..config import FORCE_EXTRACT_MARKER, STOP_EXTRACT_MARKER
from ..models import Citation, EligibilityDecision, ExtractionFlags

log = logging.getLogger(__name__)

NO_STRATEGY_MATCHED = "No strategy matched"


class ExtractionStrategy:
    """Base class for eligibility rules."""

    name = "base"

    def get_decision(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision | None:
        raise NotImplementedError


class StopMarkerStrategy(ExtractionStrategy):
    name = "stop-marker"

    def get_decision(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision | None:
        marker = citation.extraction_marker
        if marker is not None and marker.kind == "stop":
            return EligibilityDecision(eligible=False, reason=f"{STOP_EXTRACT_MARKER} marker prevents extraction")
        return None


class ForceMarkerStrategy(ExtractionStrategy):
    name = "force-marker"

    def get_decision(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision | None:
        marker = citation.extraction_marker
        if marker is not None and marker.kind == "force":
            return EligibilityDecision(eligible=True, reason=f"{FORCE_EXTRACT_MARKER} overrides defaults")
        return None


class SectionLinkStrategy(ExtractionStrategy):
    """Links to a heading or block are extracted unless told otherwise."""

    name = "section-link"

    def get_decision(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision | None:
        if citation.anchor_type in ("header", "block"):
            return EligibilityDecision(eligible=True, reason="Markdown anchor links eligible by default")
        return None


class CliFlagStrategy(ExtractionStrategy):
    name = "cli-flag"

    def get_decision(self, citation: Citation, flags: ExtractionFlags) -> EligibilityDecision | None:
        if flags.full_files:
            return EligibilityDecision(eligible=True, reason="CLI flag --full-files forces extraction")
        return None


def default_strategies() -> list[ExtractionStrategy]:
    """The standard chain: stop marker, force marker, anchored link, full-files flag."""
    return [StopMarkerStrategy(), ForceMarkerStrategy(), SectionLinkStrategy(), CliFlagStrategy()]


def analyze_eligibility(
    citation: Citation,
    flags: ExtractionFlags,
    strategies: Sequence[ExtractionStrategy],
) -> EligibilityDecision:
    for strategy in strategies:
        decision = strategy.get_decision(citation, flags)
        if decision is not None:
            log.debug("%s decided %s for %s", strategy.name, decision.eligible, citation.full_match)
            return decision
    return EligibilityDecision(eligible=False, reason=NO_STRATEGY_MATCHED)
