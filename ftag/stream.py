"""
Lazy result streams over query cursors.

A stream yields one string per row and skips hidden entries (names starting
with a dot) unless asked to show them. Streams are forward-only: to iterate
again, run the query again.
"""

import heapq
import sqlite3
from typing import Callable, Iterable, Iterator, Optional

from .errors import QueryFailure

HIDDEN_PREFIX = "."

# Undecodable bytes in stored text map to lone surrogates, as os.fsdecode does
TEXT_ERRORS = "surrogateescape"


def decode_text(raw: bytes) -> str:
    """Decode a stored TEXT value; bytes that aren't UTF-8 survive as surrogates."""
    return raw.decode("utf-8", TEXT_ERRORS)


def encode_text(value: str) -> bytes:
    """Inverse of decode_text(). Raises UnicodeEncodeError for other surrogates."""
    return value.encode("utf-8", TEXT_ERRORS)


def is_hidden(value: str) -> bool:
    """Dot-prefixed file paths and tag names are hidden by default."""
    return value.startswith(HIDDEN_PREFIX)


def _first_column(cursor: sqlite3.Cursor) -> Iterator[str]:
    for row in cursor:
        yield row[0]


def _unique_sorted(values: Iterable[str]) -> Iterator[str]:
    """Drop adjacent duplicates from an already sorted sequence."""
    previous = None
    for value in values:
        if value != previous:
            yield value
        previous = value


class ResultStream:
    """
    Forward-only iterator of strings backed by one or more cursors.

    With several cursors (a query split into chunks), each must already be
    sorted ascending; they are merged lazily in stored byte order and
    duplicates removed, so the stream reads as if it came from one ordered
    DISTINCT query.

    The stream releases its cursors when exhausted, when close() is called,
    or when the owning store closes, whichever comes first.
    """

    def __init__(
        self,
        cursors: list[sqlite3.Cursor],
        show_hidden: bool = False,
        on_close: Optional[Callable[["ResultStream"], None]] = None,
    ):
        self._cursors = list(cursors)
        self._show_hidden = show_hidden
        self._on_close = on_close
        self._closed = False

        if len(self._cursors) == 1:
            self._values = _first_column(self._cursors[0])
        else:
            self._values = _unique_sorted(
                heapq.merge(*(_first_column(c) for c in self._cursors), key=encode_text)
            )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def show_hidden(self) -> bool:
        return self._show_hidden

    def __iter__(self) -> "ResultStream":
        return self

    def __next__(self) -> str:
        if self._closed:
            raise StopIteration
        while True:
            try:
                value = next(self._values)
            except StopIteration:
                self.close()
                raise
            except sqlite3.Error as exc:
                self.close()
                raise QueryFailure(f"Failed reading query results: {exc}") from exc
            if self._show_hidden or not is_hidden(value):
                return value

    def fetch(self) -> Optional[str]:
        """Pull one value; None marks the end of the stream."""
        return next(self, None)

    def close(self) -> None:
        """Release the underlying cursors. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for cursor in self._cursors:
            try:
                cursor.close()
            except sqlite3.ProgrammingError:
                pass  # Connection already closed, cursor is gone with it
        self._cursors = []
        if self._on_close is not None:
            self._on_close(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
