"""Tests for ContentExtractor: eligibility, retrieval and deduplication."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from mdcite.extractor import ContentExtractor, generate_content_id
from mdcite.factory import create_pipeline
from mdcite.models import ExtractionFlags
from mdcite.parse_cache import ParseCache

SETUP_SECTION = "## Setup\n\nRun the installer.\n\n### Install\n\npip install it\n\n"

NOTES = """# Notes

[a](../docs/guide.md#Setup)
[b](../docs/guide.md#Setup)
[c](../docs/guide.md#^note1)
[d](../docs/guide.md) %%stop-extract-link%%
[e](../docs/guide.md#Usage) %%stop-extract-link%%
[f](../docs/reference/api.md)
[g](../docs/missing.md#X)
[h](#Notes)
"""


def _note(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


async def _extract(path: Path, full_files: bool = False):
    pipeline = create_pipeline()
    return await pipeline.extractor.extract_links_content(path, ExtractionFlags(full_files=full_files))


def _by_link(result) -> dict:
    return {ref.source_link.split("]")[0].lstrip("["): ref for ref in result.citations}


class TestGenerateContentId:
    def test_truncated_sha256(self):
        assert generate_content_id("abc") == hashlib.sha256(b"abc").hexdigest()[:16]
        assert generate_content_id("abc") == "ba7816bf8f01cfea"

    def test_deterministic_and_distinct(self):
        assert generate_content_id("x") == generate_content_id("x")
        assert generate_content_id("x") != generate_content_id("y")


# ─────────────────────────────────────────────────────────────────────────────
# Extract Links Content
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractLinksContent:
    @pytest.mark.asyncio
    async def test_outcomes_per_citation(self, vault: Path):
        path = _note(vault, "notes/index.md", NOTES)

        result = await _extract(path)

        refs = _by_link(result)
        assert "h" not in refs  # internal citations are not extracted
        assert [r.status for r in result.citations] == [
            "success",
            "success",
            "success",
            "skipped",
            "skipped",
            "skipped",
            "skipped",
        ]
        assert refs["d"].reason == "Link not eligible: stop-extract-link marker prevents extraction"
        assert refs["e"].reason == "Link not eligible: stop-extract-link marker prevents extraction"
        assert refs["f"].reason == "Link not eligible: No strategy matched"
        assert refs["g"].reason.startswith("Link failed validation: File not found")
        assert refs["a"].eligibility_reason == "Markdown anchor links eligible by default"
        assert all(r.content_id is None for r in result.citations if r.status != "success")

    @pytest.mark.asyncio
    async def test_identical_content_stored_once(self, vault: Path):
        path = _note(vault, "notes/index.md", NOTES)

        result = await _extract(path)

        refs = _by_link(result)
        assert refs["a"].content_id == refs["b"].content_id
        block = result.content_index[refs["a"].content_id]
        assert block.content == SETUP_SECTION
        assert block.content_length == len(SETUP_SECTION)
        assert [s.source_line for s in block.sources] == [3, 4]
        assert [s.anchor for s in block.sources] == ["Setup", "Setup"]
        assert result.content_index[refs["c"].content_id].content == "Remember this. ^note1"

    @pytest.mark.asyncio
    async def test_stats(self, vault: Path):
        path = _note(vault, "notes/index.md", NOTES)

        result = await _extract(path)

        setup_bytes = len(SETUP_SECTION.encode("utf-8"))
        block_bytes = len("Remember this. ^note1".encode("utf-8"))
        stats = result.stats
        assert stats.total_links == 7
        assert stats.unique_content == 2
        assert stats.duplicate_content_detected == 1
        assert stats.bytes_saved == setup_bytes
        assert stats.compression_ratio == pytest.approx(setup_bytes / (2 * setup_bytes + block_bytes))

        serialized = json.dumps({cid: b.model_dump(mode="json") for cid, b in result.content_index.items()})
        assert result.total_content_length == len(serialized)

    @pytest.mark.asyncio
    async def test_two_citations_one_entry(self, vault: Path):
        path = _note(
            vault,
            "notes/index.md",
            "[one](../docs/guide.md#Usage) and [two](../docs/guide.md#Usage)\n",
        )

        result = await _extract(path)

        assert result.stats.unique_content == 1
        assert result.stats.duplicate_content_detected == 1
        assert len(result.content_index) == 1
        (entry,) = result.content_index.values()
        assert len(entry.sources) == 2

    @pytest.mark.asyncio
    async def test_full_files_flag(self, vault: Path):
        path = _note(vault, "notes/index.md", NOTES)

        result = await _extract(path, full_files=True)

        refs = _by_link(result)
        assert refs["f"].status == "success"
        assert refs["f"].eligibility_reason == "CLI flag --full-files forces extraction"
        assert result.content_index[refs["f"].content_id].content == (vault / "docs/reference/api.md").read_text()
        assert refs["d"].status == "skipped"  # stop marker beats the flag

    @pytest.mark.asyncio
    async def test_force_marker(self, vault: Path):
        path = _note(vault, "notes/index.md", "[api](../docs/reference/api.md) %%force-extract%%\n")

        result = await _extract(path)

        (ref,) = result.citations
        assert ref.status == "success"
        assert ref.eligibility_reason == "force-extract overrides defaults"

    @pytest.mark.asyncio
    async def test_nothing_eligible(self, vault: Path):
        path = _note(vault, "notes/index.md", "[g](../docs/guide.md)\n")

        result = await _extract(path)

        assert result.content_index == {}
        assert result.stats.unique_content == 0
        assert result.stats.compression_ratio == 0.0

    @pytest.mark.asyncio
    async def test_warning_citations_are_extracted(self, vault: Path):
        path = _note(vault, "notes/index.md", "[api](api.md#Endpoints)\n")
        pipeline = create_pipeline(vault)

        result = await pipeline.extractor.extract_links_content(path)

        (ref,) = result.citations
        assert ref.status == "success"
        assert result.content_index[ref.content_id].content == "## Endpoints\n\nGET /items\n"


# ─────────────────────────────────────────────────────────────────────────────
# Anchor Retrieval
# ─────────────────────────────────────────────────────────────────────────────


class TestAnchorRetrieval:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "doc,anchor,expected",
        [
            ("## Getting Started {#start}\n\nbody\n", "start", "## Getting Started {#start}\n\nbody\n"),
            ("## Tips: More\n\nbody\n", "Tips%20More", "## Tips: More\n\nbody\n"),
            ("## Tips & Tricks\n\nbody\n", "Tips%20%26%20Tricks", "## Tips & Tricks\n\nbody\n"),
            ("# T\n\nThe ==**Core Idea**== here.\n", "==**Core Idea**==", "The ==**Core Idea**== here."),
        ],
    )
    async def test_header_anchor_forms(self, vault: Path, doc: str, anchor: str, expected: str):
        _note(vault, "docs/target.md", doc)
        path = _note(vault, "notes/index.md", f"[x](../docs/target.md#{anchor})\n")

        result = await _extract(path)

        (ref,) = result.citations
        assert ref.status == "success", ref.reason
        assert result.content_index[ref.content_id].content == expected


class TestExtractionErrors:
    @pytest.mark.asyncio
    async def test_heading_removed_after_validation(self, vault: Path):
        path = _note(vault, "notes/index.md", "[s](../docs/guide.md#Setup)\n")
        pipeline = create_pipeline()
        validation = await pipeline.validator.validate_file(path)
        (vault / "docs" / "guide.md").write_text("# Guide\n\nNo sections.\n", encoding="utf-8")

        result = await ContentExtractor(ParseCache()).extract_content(validation.citations)

        (ref,) = result.citations
        assert ref.status == "error"
        assert ref.reason == "Heading not found: Setup"
        assert ref.content_id is None

    @pytest.mark.asyncio
    async def test_block_removed_after_validation(self, vault: Path):
        path = _note(vault, "notes/index.md", "[n](../docs/guide.md#^note1)\n")
        validation = await create_pipeline().validator.validate_file(path)
        (vault / "docs" / "guide.md").write_text("# Guide\n", encoding="utf-8")

        result = await ContentExtractor(ParseCache()).extract_content(validation.citations)

        assert result.citations[0].reason == "Block not found: ^note1"

    @pytest.mark.asyncio
    async def test_unreadable_target(self, vault: Path):
        path = _note(vault, "notes/index.md", "[api](../docs/reference/api.md) %%force-extract%%\n")
        validation = await create_pipeline().validator.validate_file(path)
        (vault / "docs" / "reference" / "api.md").write_bytes(b"\xff\xfe\x00")

        result = await ContentExtractor(ParseCache()).extract_content(validation.citations)

        (ref,) = result.citations
        assert ref.status == "error"
        assert ref.reason.startswith("Extraction failed: cannot read")

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, vault: Path):
        path = _note(vault, "notes/index.md", "[s](../docs/guide.md#Setup)\n[u](../docs/guide.md#Usage)\n")
        validation = await create_pipeline().validator.validate_file(path)
        guide = vault / "docs" / "guide.md"
        guide.write_text(guide.read_text().replace("## Setup", "## Renamed"), encoding="utf-8")

        result = await ContentExtractor(ParseCache()).extract_content(validation.citations)

        assert [r.status for r in result.citations] == ["error", "success"]

    @pytest.mark.asyncio
    async def test_unvalidated_citations_skipped(self, vault: Path):
        path = _note(vault, "notes/index.md", "[s](../docs/guide.md#Setup)\n")
        cache = ParseCache()
        doc = await cache.resolve_parsed_file(path)

        result = await ContentExtractor(cache).extract_content(doc.citations)

        assert result.citations[0].status == "skipped"
        assert result.citations[0].reason == "Link was not validated"

    @pytest.mark.asyncio
    async def test_missing_source_raises(self, vault: Path):
        with pytest.raises(FileNotFoundError):
            await _extract(vault / "notes" / "nope.md")
