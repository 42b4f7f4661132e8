"""Read-through cache of parsed markdown documents.

One parse per absolute path per run. The pending task is stored before the
first await, so concurrent requests for the same file share a single parse.
Failed parses are evicted so the next request retries.
"""

from __future__ import annotations

import asyncio
import logging
import os
from functools import partial
from pathlib import Path

from .document import ParsedDocument
from .parser import MarkdownParser

log = logging.getLogger(__name__)


class ParseCache:
    """Maps absolute file paths to (pending or finished) ParsedDocument tasks."""

    def __init__(self, parser: MarkdownParser | None = None) -> None:
        self._parser = parser or MarkdownParser()
        self._entries: dict[str, asyncio.Task[ParsedDocument]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)) or not str(path):
            return False
        return os.path.abspath(path) in self._entries

    def clear(self) -> None:
        self._entries.clear()

    async def resolve_parsed_file(self, path: str | Path) -> ParsedDocument:
        """Return the ParsedDocument for ``path``, parsing it at most once.

        Raises:
            ValueError: If ``path`` is empty.
            ParseError: If the parser fails. The entry is evicted first.
        """
        if not path or not str(path).strip():
            raise ValueError("path must be a non-empty string")

        key = os.path.abspath(path)
        task = self._entries.get(key)
        if task is None:
            log.debug("Parse cache miss: %s", key)
            task = asyncio.ensure_future(self._load(key))
            self._entries[key] = task
            task.add_done_callback(partial(self._evict_failed, key))
        else:
            log.debug("Parse cache hit: %s", key)

        # Shielded so one cancelled caller does not cancel the shared parse
        return await asyncio.shield(task)

    async def _load(self, key: str) -> ParsedDocument:
        result = await self._parser.parse_file(key)
        return ParsedDocument(result)

    def _evict_failed(self, key: str, task: asyncio.Task[ParsedDocument]) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._entries.get(key) is task:
                del self._entries[key]
                log.debug("Evicted failed parse: %s", key)
