"""Per-session markers recording which files were already extracted.

A marker is an empty file named ``{session_id}_{md5 of file content}``, so an
edited file no longer matches its old marker.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

log = logging.getLogger(__name__)


def _marker_path(session_id: str, path: Path, cache_dir: Path) -> Path:
    digest = hashlib.md5(path.read_bytes()).hexdigest()
    return cache_dir / f"{session_id}_{digest}"


def check_extract_cache(session_id: str, path: str | Path, cache_dir: str | Path) -> bool:
    """Return True if ``path`` (in its current content) was extracted this session."""
    if not session_id:
        raise ValueError("session_id must be a non-empty string")
    marker = _marker_path(session_id, Path(path), Path(cache_dir))
    hit = marker.exists()
    log.debug("Extract cache %s for %s", "hit" if hit else "miss", path)
    return hit


def write_extract_cache(session_id: str, path: str | Path, cache_dir: str | Path) -> Path:
    """Record that ``path`` was extracted in ``session_id``."""
    if not session_id:
        raise ValueError("session_id must be a non-empty string")
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)
    marker = _marker_path(session_id, Path(path), cache_path)
    marker.touch()
    return marker
