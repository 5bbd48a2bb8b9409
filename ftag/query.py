"""
Query engine: turns tag and file filters into result streams.

Four retrieval modes:
- files carrying one tag
- files carrying any of several tags (set union)
- all tagged files
- tags of one file, or all tags

Multi-tag filters run in two steps. Tag names are first resolved to ids,
then one generic "column IN (?, ?, ...)" query is built for however many
ids were found. Very wide filters are split into several statements whose
sorted results the stream merges.
"""

import logging
from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Union

from .errors import InvalidArgument
from .stream import ResultStream, encode_text

if TYPE_CHECKING:
    from .store import TagStore

logger = logging.getLogger(__name__)

# SQLite limits host parameters per statement (999 on older builds)
MAX_PARAMS_PER_STATEMENT = 500

Statement = tuple[str, tuple]


FILES_BY_TAG_SQL = """
    SELECT DISTINCT File.path FROM File
    JOIN Association ON Association.file_id = File.id
    JOIN Tag ON Tag.id = Association.tag_id
    WHERE Tag.name = CAST(? AS TEXT)
    ORDER BY File.path
"""

FILES_BY_TAG_ID_SELECT = """
    SELECT DISTINCT File.path FROM File
    JOIN Association ON Association.file_id = File.id
"""

ALL_FILES_SQL = """
    SELECT DISTINCT File.path FROM File
    JOIN Association ON Association.file_id = File.id
    ORDER BY File.path
"""

TAGS_BY_FILE_SQL = """
    SELECT DISTINCT Tag.name FROM Tag
    JOIN Association ON Association.tag_id = Tag.id
    JOIN File ON File.id = Association.file_id
    WHERE File.path = CAST(? AS TEXT)
    ORDER BY Tag.name
"""

ALL_TAGS_SQL = """
    SELECT DISTINCT Tag.name FROM Tag
    JOIN Association ON Association.tag_id = Tag.id
    ORDER BY Tag.name
"""

TAG_ID_SQL = "SELECT id FROM Tag WHERE name = CAST(? AS TEXT)"


# -----------------------------------------------------------------------------
# Text parameters
# -----------------------------------------------------------------------------

def text_param(value: str, what: str = "Tag name") -> Union[str, bytes]:
    """
    Validate a path or tag name and convert it for binding.

    Names that are valid UTF-8 bind as str. Names holding undecodable bytes
    (as os.fsdecode produces them) bind as their raw bytes, which the
    CAST(? AS TEXT) in every statement stores and compares as text.
    """
    if not value:
        raise InvalidArgument(f"{what} must not be empty")
    try:
        value.encode("utf-8")
        return value
    except UnicodeEncodeError:
        pass
    try:
        return encode_text(value)
    except UnicodeEncodeError as exc:
        raise InvalidArgument(f"{what} is not valid text: {value!r}") from exc


# -----------------------------------------------------------------------------
# Statement building
# -----------------------------------------------------------------------------

def placeholders(count: int) -> str:
    """Comma-separated "?" markers, one per bound value."""
    return ", ".join("?" * count)


def in_clause(column: str, values: Sequence) -> tuple[str, tuple]:
    """
    Build "column IN (?, ...)" with one placeholder per value.

    An empty value list yields a clause that matches nothing.
    """
    if not values:
        return "0", ()
    return f"{column} IN ({placeholders(len(values))})", tuple(values)


def _chunks(values: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def build_any_of(
    select: str,
    column: str,
    values: Sequence,
    order_by: str,
    chunk_size: int = MAX_PARAMS_PER_STATEMENT,
) -> list[Statement]:
    """
    Build statements selecting rows whose column matches any of values.

    Returns one ordered statement per chunk of at most chunk_size values,
    and no statements at all for an empty value list.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    statements = []
    for chunk in _chunks(list(values), chunk_size):
        clause, params = in_clause(column, chunk)
        statements.append((f"{select} WHERE {clause} ORDER BY {order_by}", params))
    return statements


# -----------------------------------------------------------------------------
# Retrieval modes
# -----------------------------------------------------------------------------

def _require_names(names: Iterable[str]) -> list[str]:
    """Validate tag names and drop repeats, keeping first-seen order."""
    result = []
    seen = set()
    for name in names:
        text_param(name)
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


def files_with_tag(store: "TagStore", tag: str, show_hidden: Optional[bool] = None) -> ResultStream:
    """All files carrying tag, ascending. An unknown tag gives an empty stream."""
    return store.open_stream([(FILES_BY_TAG_SQL, (text_param(tag),))], show_hidden)


def resolve_tag_ids(store: "TagStore", names: Iterable[str]) -> list[int]:
    """Look up tag ids by name. Unknown names are skipped."""
    ids = []
    for name in _require_names(names):
        row = store.fetch_one(TAG_ID_SQL, (text_param(name),))
        if row is None:
            logger.debug("Tag %r not in store", name)
            continue
        ids.append(row[0])
    return ids


def files_with_any_tag(
    store: "TagStore",
    tags: Iterable[str],
    show_hidden: Optional[bool] = None,
    chunk_size: int = MAX_PARAMS_PER_STATEMENT,
) -> ResultStream:
    """Union of files carrying any of tags, ascending and without repeats."""
    tag_ids = resolve_tag_ids(store, tags)
    statements = build_any_of(
        FILES_BY_TAG_ID_SELECT,
        "Association.tag_id",
        tag_ids,
        order_by="File.path",
        chunk_size=chunk_size,
    )
    logger.debug("Union over %d tag ids in %d statement(s)", len(tag_ids), len(statements))
    return store.open_stream(statements, show_hidden)


def all_files(store: "TagStore", show_hidden: Optional[bool] = None) -> ResultStream:
    """Every tagged file in the store, ascending."""
    return store.open_stream([(ALL_FILES_SQL, ())], show_hidden)


def filter_files(store: "TagStore", tags: Sequence[str] = (), show_hidden: Optional[bool] = None) -> ResultStream:
    """
    Files matching a tag filter.

    No tags means all files; one tag uses the single-tag query; more than
    one gives the union of files carrying any of them.
    """
    names = _require_names(tags)
    if not names:
        return all_files(store, show_hidden)
    if len(names) == 1:
        return files_with_tag(store, names[0], show_hidden)
    return files_with_any_tag(store, names, show_hidden)


def tags_of_file(store: "TagStore", path: Optional[str] = None, show_hidden: Optional[bool] = None) -> ResultStream:
    """Tags on path, ascending; every tag in the store when path is None."""
    if path is None:
        return store.open_stream([(ALL_TAGS_SQL, ())], show_hidden)
    return store.open_stream([(TAGS_BY_FILE_SQL, (text_param(path, "File path"),))], show_hidden)
