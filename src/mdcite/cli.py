#!/usr/bin/env python3
"""
mdcite: validate markdown citations and extract cited content

Usage:
    mdcite validate notes.md              # Check every link and anchor
    mdcite validate notes.md --format json
    mdcite validate notes.md --fix        # Rewrite misplaced paths, kebab anchors
    mdcite extract links notes.md         # Extract cited sections, deduplicated
    mdcite extract header guide.md "Setup"
    mdcite extract file guide.md
    mdcite ast notes.md                   # Dump citations, anchors, headings
"""

from __future__ import annotations

import asyncio
import difflib
import json
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as MDCITE_VERSION
from .errors import ErrorCode, MdciteError, format_error_json
from .models import (
    Citation,
    CitationTarget,
    ExtractionFlags,
    ExtractionResult,
    TargetPath,
    ValidationResult,
    ValidationSummary,
)


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def _json_dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


# ─────────────────────────────────────────────────────────────────────────────
# JSON Error Handling
# ─────────────────────────────────────────────────────────────────────────────


class UnknownCommandError(UsageError):
    """A command name that does not exist, with the closest real one."""

    def __init__(self, name: str, suggestion: str | None, ctx: click.Context | None = None) -> None:
        message = f"No such command '{name}'."
        if suggestion:
            message += f" Did you mean '{suggestion}'?"
        super().__init__(message, ctx)
        self.name = name
        self.suggestion = suggestion


# Checked in order; MissingParameter subclasses BadParameter
_CLICK_ERROR_CODES: tuple[tuple[type[ClickException], ErrorCode], ...] = (
    (UnknownCommandError, ErrorCode.UNKNOWN_COMMAND),
    (click.MissingParameter, ErrorCode.MISSING_ARGUMENT),
    (click.BadParameter, ErrorCode.INVALID_ARGUMENT),
    (click.NoSuchOption, ErrorCode.UNKNOWN_OPTION),
    (UsageError, ErrorCode.USAGE_ERROR),
    (click.FileError, ErrorCode.FILE_NOT_FOUND),
)


def click_error(exc: ClickException) -> MdciteError:
    """Convert a Click parsing error into a coded MdciteError."""
    code = next((code for kind, code in _CLICK_ERROR_CODES if isinstance(exc, kind)), ErrorCode.INTERNAL_ERROR)
    details: dict[str, Any] = {}
    if isinstance(exc, UnknownCommandError) and exc.suggestion:
        details["suggestion"] = exc.suggestion
    elif isinstance(exc, click.NoSuchOption) and exc.possibilities:
        details["suggestion"] = exc.possibilities[0]
    return MdciteError(code, exc.format_message(), details)


class SuggestingGroup(click.Group):
    """Click group that names the closest command when given a typo."""

    def resolve_command(self, ctx, args):
        cmd_name = args[0] if args else ""
        if (
            cmd_name
            and not cmd_name.startswith("-")
            and not ctx.resilient_parsing
            and self.get_command(ctx, cmd_name) is None
        ):
            matches = difflib.get_close_matches(cmd_name, self.list_commands(ctx), n=1, cutoff=0.6)
            raise UnknownCommandError(cmd_name, matches[0] if matches else None, ctx)
        return super().resolve_command(ctx, args)


class JsonErrorGroup(SuggestingGroup):
    """Top-level group that reports errors as JSON when --json-errors is set."""

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch argument parsing errors and report them as JSON when asked.

        ``--json-errors`` is accepted anywhere on the command line.
        """
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        argv = [a for a in argv if a != "--json-errors"]
        argv.insert(0, "--json-errors")

        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(click_error(e).to_json(), err=True)
            raise SystemExit(e.exit_code)
        except SystemExit:
            raise
        except Exception as e:
            click.echo(format_error_json(ErrorCode.INTERNAL_ERROR, str(e)), err=True)
            raise SystemExit(2)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 2) -> NoReturn:
    """Report an infrastructural error and exit.

    Validation findings never come through here; they are part of the report.
    """
    from .parser import ParseError

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if not isinstance(error, MdciteError):
        if isinstance(error, FileNotFoundError):
            error = MdciteError(ErrorCode.FILE_NOT_FOUND, str(error))
        elif isinstance(error, ParseError):
            error = MdciteError(ErrorCode.PARSE_ERROR, str(error), {"path": str(error.path)})
        elif isinstance(error, PermissionError):
            error = MdciteError(ErrorCode.PERMISSION_DENIED, str(error))
        else:
            error = MdciteError(ErrorCode.INTERNAL_ERROR, str(error))

    if json_errors:
        click.echo(error.to_json(), err=True)
    else:
        click.echo(f"Error: {error.message}", err=True)
        suggestion = error.details.get("suggestion")
        if suggestion:
            click.echo(f"Hint: {suggestion}", err=True)
    sys.exit(exit_code)


def _resolve_scope(scope: str | None, file: str) -> Path | None:
    if scope:
        return Path(scope)
    from .config import get_scope_root

    return get_scope_root(Path(file).resolve().parent)


# ─────────────────────────────────────────────────────────────────────────────
# Report Formatting
# ─────────────────────────────────────────────────────────────────────────────


def parse_line_range(value: str) -> tuple[int, int]:
    """Parse ``N`` or ``N-M`` into an inclusive (start, end) pair."""
    parts = value.split("-", 1)
    try:
        start = int(parts[0])
        end = int(parts[1]) if len(parts) == 2 else start
    except ValueError:
        raise MdciteError(
            ErrorCode.INVALID_LINE_RANGE,
            f"Invalid line range: {value}",
            {"suggestion": "Use a single line (42) or a range (10-20)"},
        ) from None
    if start < 1 or end < start:
        raise MdciteError(ErrorCode.INVALID_LINE_RANGE, f"Invalid line range: {value}")
    return start, end


def filter_by_lines(result: ValidationResult, line_range: tuple[int, int]) -> ValidationResult:
    start, end = line_range
    citations = [c for c in result.citations if start <= c.line <= end]
    return ValidationResult(file=result.file, summary=ValidationSummary.from_citations(citations), citations=citations)


def _tree(entries: list[list[str]]) -> list[str]:
    """Render entries (first line, then detail lines) as a box-drawing tree."""
    lines = []
    for i, entry in enumerate(entries):
        last = i == len(entries) - 1
        lines.append(("└─ " if last else "├─ ") + entry[0])
        for j, detail in enumerate(entry[1:]):
            gutter = "   " if last else "│  "
            lines.append(gutter + ("└─ " if j == 0 else "   ") + detail)
    return lines


def format_validation_report(result: ValidationResult) -> str:
    errors: list[list[str]] = []
    warnings: list[list[str]] = []
    valid: list[list[str]] = []

    for citation in result.citations:
        head = f"Line {citation.line}: {citation.full_match}"
        validation = citation.validation
        if validation is None or validation.status == "valid":
            valid.append([head])
            continue
        entry = [head, validation.error]
        if validation.suggestion:
            entry.append(f"Suggestion: {validation.suggestion}")
        if validation.path_conversion:
            entry.append(f"Use: {validation.path_conversion.recommended}")
        (errors if validation.status == "error" else warnings).append(entry)

    lines = ["Citation Validation Report", "==========================", ""]
    lines.append(f"File: {result.file}")
    lines.append(f"Citations found: {result.summary.total}")
    lines.append("")

    for title, entries in (("CRITICAL ERRORS", errors), ("WARNINGS", warnings), ("VALID CITATIONS", valid)):
        if entries:
            lines.append(f"{title} ({len(entries)})")
            lines.extend(_tree(entries))
            lines.append("")

    summary = result.summary
    lines.append("SUMMARY:")
    lines.append(f"- Total citations: {summary.total}")
    lines.append(f"- Valid: {summary.valid}")
    lines.append(f"- Warnings: {summary.warnings}")
    lines.append(f"- Critical errors: {summary.errors}")
    return "\n".join(lines)


def _report_skipped_validation(result: ExtractionResult) -> None:
    for ref in result.citations:
        if ref.status == "skipped" and ref.reason and ref.reason.startswith("Link failed validation"):
            click.echo(f"Line {ref.line}: {ref.source_link} - {ref.reason}", err=True)


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=MDCITE_VERSION, prog_name="mdcite")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option("-v", "--verbose", is_flag=True, help="Log cache and resolution decisions to stderr")
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, verbose: bool):
    """mdcite: validate markdown citations and extract cited content.

    \b
    Quick start:
      mdcite validate notes.md               # Report broken links and anchors
      mdcite extract links notes.md          # Cited sections as deduplicated JSON
      mdcite extract links notes.md --full-files

    \b
    Single targets:
      mdcite extract header guide.md "Setup"
      mdcite extract file guide.md

    \b
    Exit codes:
      0  no validation errors / content extracted
      1  validation errors / nothing extracted
      2  file missing or unreadable, bad .mdcite, usage error
    """
    if verbose:
        from ._logging import configure_logging

        configure_logging("DEBUG")

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors


@cli.command()
@click.argument("file", type=click.Path())
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["cli", "json"]),
    default="cli",
    show_default=True,
    help="Report format",
)
@click.option("--lines", "line_range", help="Only report citations on line N or lines N-M")
@click.option("--scope", type=click.Path(file_okay=False), help="Folder searched for misplaced files")
@click.option("--fix", is_flag=True, help="Rewrite fixable paths and anchors in FILE, then report the changes")
@click.pass_context
def validate(
    ctx: click.Context, file: str, output_format: str, line_range: str | None, scope: str | None, fix: bool
):
    """Validate every citation in FILE.

    With --fix, paths found in another directory and kebab-case anchors of
    existing headings are rewritten in place; the command then exits 1 only
    if errors remain.

    \b
    Examples:
      mdcite validate docs/guide.md
      mdcite validate docs/guide.md --lines 40-80 --format json
      mdcite validate docs/guide.md --scope docs/
      mdcite validate docs/guide.md --scope docs/ --fix
    """
    from .factory import create_pipeline
    from .fixer import fix_file, format_fix_report

    try:
        lines = parse_line_range(line_range) if line_range else None
        pipeline = create_pipeline(_resolve_scope(scope, file))
        result = run_async(pipeline.validator.validate_file(file))
        if lines is not None:
            result = filter_by_lines(result, lines)
        report = run_async(fix_file(result, pipeline.parse_cache)) if fix else None
    except Exception as e:
        _handle_error(ctx, e)

    if report is not None:
        if output_format == "json":
            click.echo(_json_dumps(report.model_dump(mode="json")))
        else:
            click.echo(format_fix_report(report))
        sys.exit(1 if report.remaining_errors else 0)

    if output_format == "json":
        click.echo(_json_dumps(result.model_dump(mode="json")))
    else:
        click.echo(format_validation_report(result))

    sys.exit(1 if result.summary.errors else 0)


@cli.command()
@click.argument("file", type=click.Path())
@click.pass_context
def ast(ctx: click.Context, file: str):
    """Dump the citations, anchors, headings and frontmatter of FILE as JSON."""
    from .parser import MarkdownParser

    try:
        parsed = run_async(MarkdownParser().parse_file(file))
    except Exception as e:
        _handle_error(ctx, e)

    data = {
        "path": parsed.path,
        "metadata": parsed.metadata,
        "headings": [h.model_dump() for h in parsed.headings],
        "anchors": [a.model_dump() for a in parsed.anchors],
        "citations": [c.model_dump(mode="json", exclude={"validation"}) for c in parsed.citations],
        "tokens": len(parsed.tokens),
    }
    click.echo(_json_dumps(data))


# ─────────────────────────────────────────────────────────────────────────────
# Extraction Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.group(cls=SuggestingGroup)
def extract():
    """Extract cited content as JSON."""


@extract.command("links")
@click.argument("file", type=click.Path())
@click.option("--scope", type=click.Path(file_okay=False), help="Folder searched for misplaced files")
@click.option("--full-files", is_flag=True, help="Also extract whole files for links without an anchor")
@click.option("--session", "session_id", help="Skip files already extracted in this session")
@click.pass_context
def extract_links(ctx: click.Context, file: str, scope: str | None, full_files: bool, session_id: str | None):
    """Extract the content of every eligible citation in FILE.

    Links with a heading or block anchor are extracted by default. Add
    %%stop-extract-link%% after a link to skip it, %%force-extract%% to
    always include it.

    \b
    Examples:
      mdcite extract links notes.md
      mdcite extract links notes.md --full-files
      mdcite extract links notes.md --session "$SESSION_ID"
    """
    from .config import get_cache_dir
    from .extract_cache import check_extract_cache, write_extract_cache
    from .factory import create_pipeline

    if not os.path.isfile(file):
        _handle_error(ctx, FileNotFoundError(f"File not found: {file}"))

    if session_id and check_extract_cache(session_id, file, get_cache_dir()):
        sys.exit(0)

    try:
        pipeline = create_pipeline(_resolve_scope(scope, file))
        result = run_async(pipeline.extractor.extract_links_content(file, ExtractionFlags(full_files=full_files)))
    except Exception as e:
        _handle_error(ctx, e)

    _report_skipped_validation(result)
    click.echo(_json_dumps(result.model_dump(mode="json")))

    if result.stats.unique_content == 0:
        sys.exit(1)
    if session_id:
        write_extract_cache(session_id, file, get_cache_dir())
    sys.exit(0)


async def _extract_single(pipeline, citation: Citation, flags: ExtractionFlags) -> ExtractionResult | None:
    await pipeline.validator.validate_single_citation(citation)
    if citation.validation is None or citation.validation.status == "error":
        return None
    return await pipeline.extractor.extract_content([citation], flags)


def _synthetic_citation(file: str, anchor: str | None) -> Citation:
    from .parser import determine_anchor_type

    absolute = os.path.abspath(file)
    full_match = f"[{anchor or Path(file).name}]({file}{'#' + anchor if anchor else ''})"
    return Citation(
        scope="cross-document",
        anchor_type=determine_anchor_type(anchor),
        source_path=absolute,
        target=CitationTarget(path=TargetPath(raw=absolute), anchor=anchor),
        text=anchor,
        full_match=full_match,
        line=1,
    )


def _run_single(ctx: click.Context, file: str, anchor: str | None, scope: str | None, flags: ExtractionFlags):
    from .factory import create_pipeline

    citation = _synthetic_citation(file, anchor)
    try:
        pipeline = create_pipeline(_resolve_scope(scope, file))
        result = run_async(_extract_single(pipeline, citation, flags))
    except Exception as e:
        _handle_error(ctx, e)

    validation = citation.validation
    if result is None and validation is not None and validation.status == "error":
        click.echo(f"Validation failed: {validation.error}", err=True)
        if validation.suggestion:
            click.echo(f"Suggestion: {validation.suggestion}", err=True)
        sys.exit(1)

    click.echo(_json_dumps(result.model_dump(mode="json")))
    sys.exit(0 if result.stats.unique_content else 1)


@extract.command("header")
@click.argument("file", type=click.Path())
@click.argument("header")
@click.option("--scope", type=click.Path(file_okay=False), help="Folder searched for misplaced files")
@click.pass_context
def extract_header(ctx: click.Context, file: str, header: str, scope: str | None):
    """Extract the section under HEADER in FILE.

    \b
    Example:
      mdcite extract header docs/guide.md "Installation"
    """
    _run_single(ctx, file, header, scope, ExtractionFlags())


@extract.command("file")
@click.argument("file", type=click.Path())
@click.option("--scope", type=click.Path(file_okay=False), help="Folder searched for misplaced files")
@click.pass_context
def extract_file(ctx: click.Context, file: str, scope: str | None):
    """Extract the whole of FILE."""
    _run_single(ctx, file, None, scope, ExtractionFlags(full_files=True))


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for mdcite CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
