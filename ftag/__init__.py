"""
ftag: tag your files and filter them by tag.

Tags live in a small SQLite store (.ftagdb) found by searching upward from
the working directory, so a store covers a whole directory tree:

    from ftag import open_store

    with open_store() as store:
        store.tag_file("notes/todo.txt", "work")
        for path in store.filter_files(["work"]):
            print(path)
"""

from ftag.errors import (
    AlreadyOpen,
    FtagError,
    InvalidArgument,
    QueryFailure,
    StoreClosed,
    StoreUnavailable,
    WriteFailure,
)
from ftag.paths import DEFAULT_STORE_FILENAME, MEMORY_STORE
from ftag.store import StoreCounts, TagStore, open_store
from ftag.stream import ResultStream

__all__ = [
    "AlreadyOpen",
    "DEFAULT_STORE_FILENAME",
    "FtagError",
    "InvalidArgument",
    "MEMORY_STORE",
    "QueryFailure",
    "ResultStream",
    "StoreClosed",
    "StoreCounts",
    "StoreUnavailable",
    "TagStore",
    "WriteFailure",
    "open_store",
]
