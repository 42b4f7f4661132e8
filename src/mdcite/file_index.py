"""Filename-to-path index for resolving citations whose relative path is wrong.

Used as the last path-resolution strategy: a citation to ``guide.md`` that does
not exist next to the citing file can still be found elsewhere in the scope,
as long as the filename is unique there.
"""

from __future__ import annotations

import difflib
import logging
import os
from pathlib import Path
from typing import Literal, NamedTuple

from .config import FUZZY_FILENAME_CUTOFF

log = logging.getLogger(__name__)


class FileIndexStats(NamedTuple):
    """Summary of one index build."""

    total_files: int
    duplicates: int
    scope_folder: str


class FileLookup(NamedTuple):
    """Outcome of resolving a filename against the index."""

    found: bool
    path: str | None = None
    reason: Literal["duplicate", "not_found"] | None = None
    message: str | None = None
    fuzzy_match: bool = False
    corrected_filename: str | None = None


class FileIndex:
    """Maps markdown filenames in a scope folder to their absolute paths."""

    def __init__(self) -> None:
        self._paths: dict[str, str] = {}
        self._duplicates: dict[str, list[str]] = {}
        self.scope_folder: str | None = None

    def __len__(self) -> int:
        return len(self._paths) + len(self._duplicates)

    def build(self, scope_folder: str | Path) -> FileIndexStats:
        """Scan ``scope_folder`` recursively for markdown files.

        The folder is symlink-resolved first. Rebuilding replaces the previous
        contents.
        """
        root = os.path.realpath(scope_folder)
        self._paths.clear()
        self._duplicates.clear()
        self.scope_folder = root

        if not os.path.isdir(root):
            log.warning("Scope folder does not exist: %s", root)
            return FileIndexStats(total_files=0, duplicates=0, scope_folder=root)

        total = 0
        for dirpath, dirnames, filenames in os.walk(root, onerror=self._walk_error):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                if not filename.endswith(".md"):
                    continue
                total += 1
                full_path = os.path.join(dirpath, filename)
                if filename in self._duplicates:
                    self._duplicates[filename].append(full_path)
                elif filename in self._paths:
                    self._duplicates[filename] = [self._paths.pop(filename), full_path]
                else:
                    self._paths[filename] = full_path

        for filename, paths in self._duplicates.items():
            log.warning("Duplicate filename %s in scope: %s", filename, ", ".join(sorted(paths)))

        log.debug("Indexed %d markdown files under %s", total, root)
        return FileIndexStats(total_files=total, duplicates=len(self._duplicates), scope_folder=root)

    @staticmethod
    def _walk_error(error: OSError) -> None:
        log.warning("Skipping unreadable directory: %s", error)

    def resolve(self, filename: str) -> FileLookup:
        """Find the unique file named ``filename`` (or ``filename.md``)."""
        name = os.path.basename(filename)
        if not name:
            return FileLookup(found=False, reason="not_found", message="Empty filename")

        for candidate in (name, f"{name}.md"):
            lookup = self._exact(candidate)
            if lookup is not None:
                return lookup

        corrected = self._fuzzy(name)
        if corrected is not None:
            return FileLookup(
                found=True,
                path=self._paths[corrected],
                fuzzy_match=True,
                corrected_filename=corrected,
                message=f"Found '{corrected}' instead of '{name}'",
            )

        return FileLookup(found=False, reason="not_found", message=f"File not found in scope: {name}")

    def _exact(self, name: str) -> FileLookup | None:
        if name in self._paths:
            return FileLookup(found=True, path=self._paths[name])
        if name in self._duplicates:
            locations = ", ".join(sorted(self._duplicates[name]))
            return FileLookup(
                found=False,
                reason="duplicate",
                message=f"Multiple files named {name} in scope: {locations}",
            )
        return None

    def _fuzzy(self, name: str) -> str | None:
        if name.endswith(".md.md") and name[:-3] in self._paths:
            return name[:-3]

        target = name if name.endswith(".md") else f"{name}.md"
        matches = difflib.get_close_matches(target, list(self._paths), n=2, cutoff=FUZZY_FILENAME_CUTOFF)
        if len(matches) == 1:
            return matches[0]
        return None
