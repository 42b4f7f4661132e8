"""Pydantic models for citations, anchors, validation and extraction results."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import FORCE_EXTRACT_MARKER, STOP_EXTRACT_MARKER

LinkType = Literal["markdown", "wiki"]
LinkScope = Literal["internal", "cross-document"]
AnchorType = Literal["header", "block"]
OutcomeStatus = Literal["success", "skipped", "error"]


# ─────────────────────────────────────────────────────────────────────────────
# Citations
# ─────────────────────────────────────────────────────────────────────────────


class ExtractionMarker(BaseModel):
    """A %%marker%% or <!-- marker --> found right after a citation."""

    full_match: str  # Marker including delimiters
    inner_text: str  # Trimmed text between delimiters

    @property
    def kind(self) -> Literal["force", "stop"] | None:
        if self.inner_text == FORCE_EXTRACT_MARKER:
            return "force"
        if self.inner_text == STOP_EXTRACT_MARKER:
            return "stop"
        return None


class TargetPath(BaseModel):
    """Target path in its three spellings."""

    raw: str | None = None  # As written in the source document
    absolute: str | None = None  # Resolved absolute path (None if unresolved)
    relative: str | None = None  # Relative to the source document's directory


class CitationTarget(BaseModel):
    path: TargetPath = Field(default_factory=TargetPath)
    anchor: str | None = None  # Header text or ^block id, without the leading '#'


class PathConversion(BaseModel):
    """Recommended rewrite for a citation found in a different directory."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["path-conversion"] = "path-conversion"
    original: str
    recommended: str


class ValidValidation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["valid"] = "valid"


class WarningValidation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["warning"] = "warning"
    error: str
    suggestion: str | None = None
    path_conversion: PathConversion | None = None


class ErrorValidation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["error"] = "error"
    error: str
    suggestion: str | None = None
    path_conversion: PathConversion | None = None


Validation = Annotated[
    ValidValidation | WarningValidation | ErrorValidation,
    Field(discriminator="status"),
]


class Citation(BaseModel):
    """A reference from one document to a file and optionally an anchor in it.

    The validator enriches the record in place by setting ``validation``;
    the extractor later reads that same record.
    """

    link_type: LinkType = "markdown"
    scope: LinkScope
    anchor_type: AnchorType | None = None
    source_path: str | None = None
    target: CitationTarget = Field(default_factory=CitationTarget)
    text: str | None = None
    full_match: str
    line: int  # 1-based
    column: int = 0  # 0-based
    extraction_marker: ExtractionMarker | None = None
    validation: Validation | None = None  # Set exactly once by CitationValidator


# ─────────────────────────────────────────────────────────────────────────────
# Anchors
# ─────────────────────────────────────────────────────────────────────────────


class HeaderAnchor(BaseModel):
    """Anchor derived from a heading."""

    anchor_type: Literal["header"] = "header"
    id: str  # Heading text, or explicit {#id}
    raw_text: str  # Heading text exactly as tokenized
    url_encoded_id: str  # Obsidian form: colons dropped, whitespace as %20
    level: int
    line: int
    column: int = 0


class BlockAnchor(BaseModel):
    """Inline marked position (^block-id or ==**Name**==). Has no raw text."""

    model_config = ConfigDict(extra="forbid")

    anchor_type: Literal["block"] = "block"
    id: str
    full_match: str
    line: int
    column: int = 0


Anchor = Annotated[HeaderAnchor | BlockAnchor, Field(discriminator="anchor_type")]


class Heading(BaseModel):
    level: int
    text: str
    line: int


# ─────────────────────────────────────────────────────────────────────────────
# Validation results
# ─────────────────────────────────────────────────────────────────────────────


class ValidationSummary(BaseModel):
    total: int = 0
    valid: int = 0
    warnings: int = 0
    errors: int = 0

    @classmethod
    def from_citations(cls, citations: list[Citation]) -> "ValidationSummary":
        statuses = [c.validation.status for c in citations if c.validation is not None]
        return cls(
            total=len(citations),
            valid=statuses.count("valid"),
            warnings=statuses.count("warning"),
            errors=statuses.count("error"),
        )


class ValidationResult(BaseModel):
    """Result of validating every citation in one file."""

    file: str
    summary: ValidationSummary
    citations: list[Citation] = Field(default_factory=list)


class CitationFix(BaseModel):
    """One citation rewritten by ``validate --fix``."""

    line: int
    column: int
    kind: Literal["path", "anchor"]
    old: str  # Citation syntax before the fix
    new: str


class FixReport(BaseModel):
    file: str
    fixes: list[CitationFix] = Field(default_factory=list)
    remaining_errors: int = 0  # Errors the fixer could not repair

    @property
    def path_fixes(self) -> int:
        return sum(1 for f in self.fixes if f.kind == "path")

    @property
    def anchor_fixes(self) -> int:
        return sum(1 for f in self.fixes if f.kind == "anchor")


# ─────────────────────────────────────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────────────────────────────────────


class ExtractionFlags(BaseModel):
    """Caller-supplied flags consulted by the eligibility chain."""

    full_files: bool = False  # Extract whole files for anchorless citations


class EligibilityDecision(BaseModel):
    eligible: bool
    reason: str


class ContentSource(BaseModel):
    """One citation that produced a content block."""

    target_path: str | None
    anchor: str | None = None
    anchor_type: AnchorType | None = None
    source_line: int
    source_link: str  # Citation syntax as written


class ContentBlock(BaseModel):
    """Extracted text stored once, with every citation that produced it."""

    content: str
    content_length: int
    sources: list[ContentSource] = Field(default_factory=list)


class CitationReference(BaseModel):
    """Per-citation line of the extraction report."""

    source_link: str
    line: int
    column: int
    target_path: str | None = None
    anchor: str | None = None
    content_id: str | None = None  # None unless status is success
    status: OutcomeStatus
    reason: str | None = None  # Why skipped / why it failed
    eligibility_reason: str | None = None  # Which rule admitted it


class ExtractionStats(BaseModel):
    total_links: int = 0
    unique_content: int = 0
    duplicate_content_detected: int = 0
    bytes_saved: int = 0
    compression_ratio: float = 0.0


class ExtractionResult(BaseModel):
    """Deduplicated extraction package for one run."""

    content_index: dict[str, ContentBlock] = Field(default_factory=dict)
    citations: list[CitationReference] = Field(default_factory=list)
    stats: ExtractionStats = Field(default_factory=ExtractionStats)
    total_content_length: int = 0  # Size of the serialized content index
