"""
Store file discovery.

The store is a single file found by walking up from the working directory,
the same way version control tools find their repository root. When found,
the process moves into the directory holding it so that file paths recorded
in the store are relative to that directory.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_STORE_FILENAME = ".ftagdb"

# Filename sentinel for a non-persistent store
MEMORY_STORE = ":memory:"


def find_store_dir(filename: str, start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from start (default cwd) looking for a readable store file.

    Returns the directory containing it, or None once the root is reached.
    Never changes the working directory.
    """
    current = Path(start) if start is not None else Path(os.getcwd())
    while True:
        candidate = current / filename
        logger.debug("Probing %s", candidate)
        if candidate.is_file() and os.access(candidate, os.R_OK):
            return current
        # The root is its own parent
        if current.parent == current:
            return None
        current = current.parent


def chdir_to_store(filename: Optional[str]) -> bool:
    """Move into the nearest ancestor directory holding the store file.

    Returns True after changing directory, False when no store exists in
    the ancestor chain (the working directory is then left untouched, and
    the caller creates a new store in it).
    """
    if not filename:
        return False

    found = find_store_dir(filename)
    if found is None:
        logger.debug("No %s found above %s", filename, os.getcwd())
        return False

    os.chdir(found)
    logger.debug("Found %s in %s", filename, found)
    return True
