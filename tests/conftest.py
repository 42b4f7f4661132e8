"""Shared test fixtures for the mdcite test suite.

Design:
- vault: a temporary folder of markdown files that cite each other
- write_md: helper writing a markdown file relative to a root
- counting_parser: MarkdownParser that records every parse_file call
- runner: CliRunner for CLI tests
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from click.testing import CliRunner

from mdcite.parser import MarkdownParser, ParseResult

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def write_file(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


GUIDE = """# Guide

Intro paragraph.

## Setup

Run the installer.

### Install

pip install it

## Usage

Call the thing.
Remember this. ^note1

## Tips & Tricks

Be careful.
"""

API = """# API Reference

## Endpoints

GET /items
"""


class CountingParser(MarkdownParser):
    """MarkdownParser that records which paths it parsed."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def parse_file(self, path) -> ParseResult:
        self.calls.append(str(path))
        return await super().parse_file(path)


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def write_md(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a file under tmp_path and return its path."""

    def _write(rel_path: str, content: str) -> Path:
        return write_file(tmp_path, rel_path, content)

    return _write


@pytest.fixture
def counting_parser() -> CountingParser:
    return CountingParser()


@pytest.fixture
def vault(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Small vault with a guide, an API reference in a subfolder, and notes.

    Layout:
        vault/docs/guide.md
        vault/docs/reference/api.md
        vault/notes/index.md   (cites the docs)
    """
    root = tmp_path / "vault"
    write_file(root, "docs/guide.md", GUIDE)
    write_file(root, "docs/reference/api.md", API)
    monkeypatch.delenv("MDCITE_SCOPE", raising=False)
    monkeypatch.setenv("MDCITE_CACHE_DIR", str(tmp_path / "extract-cache"))
    return root
