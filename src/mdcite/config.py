"""Configuration management for mdcite.

This module contains all configurable constants for citation validation and
content extraction. Magic numbers are documented here rather than scattered
throughout the codebase.

A project may hold a ``.mdcite`` YAML file naming the folder searched for
misplaced files, relative to the file itself::

    scope: docs
"""

import os
from pathlib import Path

from .errors import ErrorCode, MdciteError

CONFIG_FILENAME = ".mdcite"

# How many directories find_config_file climbs before giving up
CONFIG_SEARCH_DEPTH = 10


def get_scope_root(start_dir: Path | None = None) -> Path | None:
    """Get the folder used for filename fallback lookups.

    Discovery order:
    1. MDCITE_SCOPE environment variable (explicit override)
    2. The nearest .mdcite at or above start_dir (default cwd)
    3. None (filename fallback disabled)

    Raises:
        MdciteError: CONFIG_ERROR if the nearest .mdcite is malformed.
    """
    root = os.environ.get("MDCITE_SCOPE")
    if root:
        return Path(root)

    config_file = find_config_file(start_dir)
    if config_file is None:
        return None
    return load_scope(config_file)


def get_cache_dir() -> Path:
    """Get the directory holding session extraction markers.

    Discovery order:
    1. MDCITE_CACHE_DIR environment variable
    2. ~/.cache/mdcite/extract
    """
    cache_dir = os.environ.get("MDCITE_CACHE_DIR")
    if cache_dir:
        return Path(cache_dir)
    return Path.home() / ".cache" / "mdcite" / "extract"


def find_config_file(start_dir: Path | None = None, max_depth: int = CONFIG_SEARCH_DEPTH) -> Path | None:
    """Return the nearest .mdcite at or above start_dir, if any."""
    current = Path(start_dir or os.getcwd()).resolve()
    for _ in range(max_depth):
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            break
        current = current.parent
    return None


def load_scope(config_file: Path) -> Path | None:
    """Read the scope folder from a .mdcite file.

    A file without a ``scope`` key disables the filename fallback for its
    project and yields None.

    Raises:
        MdciteError: CONFIG_ERROR if the file is unreadable, is not a YAML
            mapping, or names a scope folder that does not exist.
    """
    import yaml

    details = {"path": str(config_file)}
    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise MdciteError(ErrorCode.CONFIG_ERROR, f"Cannot read {config_file}: {e}", details) from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise MdciteError(ErrorCode.CONFIG_ERROR, f"{config_file} must be a YAML mapping", details)
    if data.get("scope") is None:
        return None

    scope_path = (config_file.parent / str(data["scope"])).resolve()
    if not scope_path.is_dir():
        raise MdciteError(
            ErrorCode.CONFIG_ERROR,
            f"Scope folder in {config_file} does not exist: {scope_path}",
            {**details, "suggestion": "Point 'scope' at a folder, relative to the .mdcite file"},
        )
    return scope_path


# =============================================================================
# Anchor Suggestions
# =============================================================================

# Minimum normalized edit-distance similarity for an anchor to be suggested.
# Kept low so partially typed anchors ("Instal") still surface their heading.
ANCHOR_SIMILARITY_THRESHOLD = 0.3

# Maximum number of similar anchors returned by find_similar_anchors
MAX_SIMILAR_ANCHORS = 5

# How many similar anchors are quoted in a validation error suggestion
SUGGESTED_ANCHORS_IN_ERROR = 3

# How many available headers / block refs are listed in an error suggestion
AVAILABLE_ANCHORS_IN_ERROR = 5


# =============================================================================
# Filename Fallback Lookup
# =============================================================================

# Minimum difflib ratio for a fuzzy filename correction ("instalation.md" ->
# "installation.md"). 0.85 tolerates a one or two character typo in a typical
# filename while refusing to jump to an unrelated file.
FUZZY_FILENAME_CUTOFF = 0.85


# =============================================================================
# Content Extraction
# =============================================================================

# Length of the hex content fingerprint (truncated SHA-256).
# 16 hex chars = 64 bits, far beyond collision risk for one extraction run.
CONTENT_ID_LENGTH = 16

# Marker texts recognised after a citation (%%text%% or <!-- text -->)
FORCE_EXTRACT_MARKER = "force-extract"
STOP_EXTRACT_MARKER = "stop-extract-link"


# =============================================================================
# Path Resolution
# =============================================================================

# Entries marking the top of a vault. Vault-relative paths ("docs/guide.md")
# are never resolved above the first directory that holds one of them.
VAULT_MARKERS = (".obsidian", ".git", CONFIG_FILENAME)
