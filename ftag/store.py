"""
Tag store using SQLite.

Files and tags are kept in their own tables with surrogate ids and linked
through an association table:

    File(id, path)                 unique path
    Tag(id, name)                  unique name
    Association(file_id, tag_id)   unique pair

A process holds at most one open TagStore. The handle owns every cursor
handed out through result streams and closes them before the connection.
"""

import atexit
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from . import query
from .errors import (
    AlreadyOpen,
    InvalidArgument,
    QueryFailure,
    StoreClosed,
    StoreUnavailable,
    WriteFailure,
)
from .paths import DEFAULT_STORE_FILENAME, MEMORY_STORE, chdir_to_store
from .stream import ResultStream, decode_text

logger = logging.getLogger(__name__)

# Version 0 is an empty file or the old single-table layout
SCHEMA_VERSION = 1

# Prepared statements kept per connection
STATEMENT_CACHE_SIZE = 32

SCHEMA_SQL = (
    """
    CREATE TABLE IF NOT EXISTS File (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        path TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Tag (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Association (
        file_id INTEGER NOT NULL REFERENCES File(id),
        tag_id INTEGER NOT NULL REFERENCES Tag(id)
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_File_path ON File (path)",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_Tag_name ON Tag (name)",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_Association ON Association (file_id, tag_id)",
)

INSERT_TAG_SQL = "INSERT OR IGNORE INTO Tag (name) VALUES (CAST(? AS TEXT))"
INSERT_FILE_SQL = "INSERT OR IGNORE INTO File (path) VALUES (CAST(? AS TEXT))"
INSERT_ASSOCIATION_SQL = """
    INSERT OR IGNORE INTO Association (file_id, tag_id)
    SELECT File.id, Tag.id FROM File, Tag
    WHERE File.path = CAST(? AS TEXT) AND Tag.name = CAST(? AS TEXT)
"""
DELETE_ASSOCIATION_SQL = """
    DELETE FROM Association
    WHERE file_id = (SELECT id FROM File WHERE path = CAST(? AS TEXT))
      AND tag_id = (SELECT id FROM Tag WHERE name = CAST(? AS TEXT))
"""

# The handle currently open in this process, if any
_live_store: Optional["TagStore"] = None


@dataclass
class StoreCounts:
    """Row counts, orphaned files and tags included."""
    files: int
    tags: int
    associations: int


def current_store() -> Optional["TagStore"]:
    """The open store handle, or None."""
    return _live_store


def _require_path(path: str) -> Union[str, bytes]:
    return query.text_param(path, "File path")


def _require_tag(tag: str) -> Union[str, bytes]:
    return query.text_param(tag, "Tag name")


class TagStore:
    """
    Open handle on a tag store.

    Construction locates (or creates) the store file, connects, and brings
    the schema up to date. Use as a context manager or call close(); an
    atexit hook closes a handle that is still open at interpreter exit.
    """

    def __init__(
        self,
        filename: Optional[str] = None,
        directory: Optional[Union[str, Path]] = None,
        show_hidden: bool = False,
    ):
        """
        Args:
            filename: Store filename (default .ftagdb), or ":memory:" for a
                store that lives only as long as the handle
            directory: Use the store in this directory instead of searching
                upward from the working directory
            show_hidden: Include dot-prefixed names in result streams

        Raises:
            AlreadyOpen: Another handle is open in this process
            StoreUnavailable: The directory does not exist or the store
                cannot be opened, created, or migrated
        """
        if _live_store is not None:
            raise AlreadyOpen(f"A tag store is already open: {_live_store.describe()}")

        self.show_hidden = show_hidden
        self._conn: Optional[sqlite3.Connection] = None
        self._path: Optional[Path] = None
        self._streams: set[ResultStream] = set()

        filename = filename or DEFAULT_STORE_FILENAME
        start_dir = os.getcwd()
        try:
            if filename != MEMORY_STORE:
                self._path = self._locate(filename, directory)
            self._conn = self._connect()
            self._init_schema()
        except BaseException:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            if os.getcwd() != start_dir:
                os.chdir(start_dir)
            raise

        self._register()
        logger.info("Using store %s", self.describe())

    # -------------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------------

    @staticmethod
    def _locate(filename: str, directory: Optional[Union[str, Path]]) -> Path:
        """Move into the store's directory and return the store file path."""
        if directory is not None:
            directory = Path(directory)
            if not directory.is_dir():
                raise StoreUnavailable(f"Directory does not exist: {directory}")
            os.chdir(directory)
        elif not chdir_to_store(filename):
            logger.debug("No existing %s, using %s", filename, os.getcwd())
        return Path(os.getcwd()) / filename

    def _connect(self) -> sqlite3.Connection:
        target = MEMORY_STORE if self._path is None else str(self._path)
        if self._path is not None and not self._path.exists():
            logger.info("Creating new store %s", self._path)
        try:
            # Autocommit mode; transactions are explicit in _transaction()
            conn = sqlite3.connect(
                target,
                isolation_level=None,
                cached_statements=STATEMENT_CACHE_SIZE,
            )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open store {target}: {exc}") from exc
        conn.text_factory = decode_text
        try:
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            conn.close()
            raise StoreUnavailable(f"Cannot open store {target}: {exc}") from exc
        return conn

    def _init_schema(self) -> None:
        """Create the schema, or migrate an old single-table store."""
        conn = self._conn
        try:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version > SCHEMA_VERSION:
                raise StoreUnavailable(
                    f"Store schema version {version} is newer than supported ({SCHEMA_VERSION})"
                )
            if version == SCHEMA_VERSION:
                return
            with self._transaction():
                if self._has_flat_schema():
                    self._migrate_flat_schema()
                else:
                    for statement in SCHEMA_SQL:
                        conn.execute(statement)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot initialize store {self.describe()}: {exc}") from exc

    def _has_flat_schema(self) -> bool:
        """True for the old layout: a single Tag(file, tag) table."""
        columns = {row[1] for row in self._conn.execute("PRAGMA table_info(Tag)")}
        return "file" in columns and "tag" in columns

    def _migrate_flat_schema(self) -> None:
        """Move (file, tag) rows into File/Tag/Association. Runs inside a transaction."""
        conn = self._conn
        conn.execute("DROP INDEX IF EXISTS uq_Tag")
        conn.execute("ALTER TABLE Tag RENAME TO FlatTag")
        for statement in SCHEMA_SQL:
            conn.execute(statement)
        conn.execute("""
            INSERT OR IGNORE INTO Tag (name)
            SELECT DISTINCT tag FROM FlatTag WHERE tag != '' ORDER BY tag
        """)
        conn.execute("""
            INSERT OR IGNORE INTO File (path)
            SELECT DISTINCT file FROM FlatTag WHERE file != '' ORDER BY file
        """)
        cursor = conn.execute("""
            INSERT OR IGNORE INTO Association (file_id, tag_id)
            SELECT File.id, Tag.id FROM FlatTag
            JOIN File ON File.path = FlatTag.file
            JOIN Tag ON Tag.name = FlatTag.tag
        """)
        conn.execute("DROP TABLE FlatTag")
        logger.info("Migrated %d associations from single-table store", cursor.rowcount)

    def _register(self) -> None:
        global _live_store
        _live_store = self
        atexit.register(self.close)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def path(self) -> Optional[Path]:
        """Store file path; None for an in-memory store."""
        return self._path

    @property
    def directory(self) -> Optional[Path]:
        """Directory that file paths in this store are relative to."""
        return self._path.parent if self._path is not None else None

    def describe(self) -> str:
        return str(self._path) if self._path is not None else MEMORY_STORE

    def close(self) -> None:
        """Close open result streams, then the connection. Idempotent."""
        global _live_store
        if self._conn is None:
            return
        for stream in list(self._streams):
            stream.close()
        self._conn.close()
        self._conn = None
        if _live_store is self:
            _live_store = None
        atexit.unregister(self.close)
        logger.debug("Closed store %s", self.describe())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosed(f"Store {self.describe()} is closed")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """All-or-nothing unit of work; rolls back on any exception."""
        conn = self._require_open()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def _associate(self, conn: sqlite3.Connection, path: Union[str, bytes], tag: Union[str, bytes]) -> int:
        conn.execute(INSERT_TAG_SQL, (tag,))
        conn.execute(INSERT_FILE_SQL, (path,))
        return conn.execute(INSERT_ASSOCIATION_SQL, (path, tag)).rowcount

    def tag_file(self, path: str, tag: str) -> bool:
        """
        Tag a file, creating the File and Tag rows on first use.

        Tagging a file with a tag it already carries changes nothing.

        Returns:
            True if a new association was recorded

        Raises:
            InvalidArgument: path or tag is empty or not valid text
            WriteFailure: the transaction failed; nothing was written
        """
        return self.tag_file_many(path, [tag]) == 1

    def tag_file_many(self, path: str, tags: Iterable[str]) -> int:
        """
        Tag a file with several tags in one transaction.

        Returns:
            Number of new associations recorded
        """
        tags = list(tags)
        bound_path = _require_path(path)
        if not tags:
            raise InvalidArgument("At least one tag is required")
        bound_tags = [_require_tag(tag) for tag in tags]

        try:
            with self._transaction() as conn:
                added = sum(self._associate(conn, bound_path, tag) for tag in bound_tags)
        except sqlite3.Error as exc:
            raise WriteFailure(f"Failed to tag {path!r}: {exc}") from exc

        logger.debug("Tagged %r with %s (%d new)", path, tags, added)
        return added

    def untag_file(self, path: str, tag: str) -> bool:
        """
        Remove a tag from a file.

        The File and Tag rows stay behind even when this was their last
        association; see collect_orphans().

        Returns:
            True if the file carried the tag
        """
        params = (_require_path(path), _require_tag(tag))
        try:
            with self._transaction() as conn:
                removed = conn.execute(DELETE_ASSOCIATION_SQL, params).rowcount
        except sqlite3.Error as exc:
            raise WriteFailure(f"Failed to untag {path!r}: {exc}") from exc
        return removed > 0

    def collect_orphans(self) -> tuple[int, int]:
        """
        Delete File and Tag rows that no association refers to.

        Ids are never handed out again after collection.

        Returns:
            (files removed, tags removed)
        """
        try:
            with self._transaction() as conn:
                files = conn.execute(
                    "DELETE FROM File WHERE id NOT IN (SELECT file_id FROM Association)"
                ).rowcount
                tags = conn.execute(
                    "DELETE FROM Tag WHERE id NOT IN (SELECT tag_id FROM Association)"
                ).rowcount
        except sqlite3.Error as exc:
            raise WriteFailure(f"Failed to collect orphans: {exc}") from exc
        if files or tags:
            logger.info("Removed %d orphaned files and %d orphaned tags", files, tags)
        return files, tags

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def fetch_one(self, sql: str, params: Sequence = ()) -> Optional[tuple]:
        """Run a query and return its first row."""
        conn = self._require_open()
        try:
            cursor = conn.execute(sql, params)
            try:
                return cursor.fetchone()
            finally:
                cursor.close()
        except sqlite3.Error as exc:
            raise QueryFailure(f"Query failed: {exc}") from exc

    def open_stream(
        self,
        statements: Sequence[tuple[str, Sequence]],
        show_hidden: Optional[bool] = None,
    ) -> ResultStream:
        """
        Execute statements and return a stream over their first column.

        Each statement must produce rows sorted ascending. The stream is
        tracked by this handle until it is closed or exhausted.
        """
        conn = self._require_open()
        if show_hidden is None:
            show_hidden = self.show_hidden

        cursors = []
        try:
            for sql, params in statements:
                logger.debug("Executing %s %r", " ".join(sql.split()), params)
                cursors.append(conn.execute(sql, params))
        except sqlite3.Error as exc:
            for cursor in cursors:
                cursor.close()
            raise QueryFailure(f"Query failed: {exc}") from exc

        stream = ResultStream(cursors, show_hidden=show_hidden, on_close=self._streams.discard)
        self._streams.add(stream)
        return stream

    def filter_files(self, tags: Sequence[str] = (), show_hidden: Optional[bool] = None) -> ResultStream:
        """Files carrying any of tags; all files when tags is empty."""
        return query.filter_files(self, tags, show_hidden)

    def list_tags(self, path: Optional[str] = None, show_hidden: Optional[bool] = None) -> ResultStream:
        """Tags on path; all tags when path is None."""
        return query.tags_of_file(self, path, show_hidden)

    def counts(self) -> StoreCounts:
        """Count rows in each table."""
        return StoreCounts(
            files=self.fetch_one("SELECT COUNT(*) FROM File")[0],
            tags=self.fetch_one("SELECT COUNT(*) FROM Tag")[0],
            associations=self.fetch_one("SELECT COUNT(*) FROM Association")[0],
        )


def open_store(
    filename: Optional[str] = None,
    directory: Optional[Union[str, Path]] = None,
    show_hidden: bool = False,
) -> TagStore:
    """Open (or create) the tag store. See TagStore."""
    return TagStore(filename, directory, show_hidden=show_hidden)
