"""Logging setup for mdcite.

Modules log through ``logging.getLogger(__name__)``; everything lands under the
``mdcite`` logger, which writes to stderr so JSON on stdout stays clean.

Level resolution, first match wins:
    1. the ``level`` argument (``mdcite --verbose`` passes DEBUG)
    2. the MDCITE_LOG_LEVEL environment variable
    3. WARNING

At DEBUG the log shows parse cache hits and misses, the path strategy that
resolved each target and the anchor strategy that matched.
"""

import logging
import os
import sys

DEFAULT_LEVEL = "WARNING"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach the stderr handler to the ``mdcite`` logger and set its level.

    Repeated calls never add a second handler; they only change the level.
    """
    logger = logging.getLogger("mdcite")

    level_name = (level or os.environ.get("MDCITE_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    resolved = logging.getLevelName(level_name)
    logger.setLevel(resolved if isinstance(resolved, int) else logging.WARNING)

    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
