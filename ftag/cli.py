"""
CLI interface for ftag.

Usage:
    ftag file notes/todo.txt work urgent
    ftag filter work
    ftag list notes/todo.txt
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from .config import ConfigError, FtagConfig, get_config_path, load_config, resolve_config, save_config
from .errors import FtagError
from .logging_config import configure_quiet_mode, enable_debug_mode, verbosity_to_level
from .store import TagStore, open_store
from .stream import ResultStream

PROGRAM_NAME = "ftag"


# Configure quiet mode by default
# Set FTAG_VERBOSE=1 to enable debug mode via environment
if os.environ.get("FTAG_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"{PROGRAM_NAME} {version('ftag')}")
        raise typer.Exit()


# Global state for CLI options, set by main_callback
_database: Optional[str] = None
_directory: Optional[Path] = None
_show_all: Optional[bool] = None


app = typer.Typer(
    name=PROGRAM_NAME,
    help="Tag your files and filter them by tag.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    database: Annotated[Optional[str], typer.Option(
        "--database", "-d",
        help="Store filename to search for (default: .ftagdb)",
    )] = None,
    directory: Annotated[Optional[Path], typer.Option(
        "--directory", "-C",
        help="Use the store in this directory instead of searching upward",
    )] = None,
    show_all: Annotated[bool, typer.Option(
        "--all", "-a",
        help="Include hidden (dot-prefixed) files and tags",
    )] = False,
    verbose: Annotated[int, typer.Option(
        "--verbose", "-v",
        count=True,
        help="Increase output verbosity (can be used multiple times)",
    )] = 0,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Tag your files and filter them by tag."""
    global _database, _directory, _show_all
    _database = database
    _directory = directory
    _show_all = True if show_all else None
    if verbose:
        enable_debug_mode(verbosity_to_level(verbose))


def _fail(message: str) -> typer.Exit:
    typer.echo(f"{PROGRAM_NAME}: error: {message}", err=True)
    return typer.Exit(1)


def _get_config() -> FtagConfig:
    """Config file + environment, with command line options on top."""
    try:
        config = resolve_config()
    except ConfigError as e:
        raise _fail(str(e))
    if _database:
        config.store_filename = _database
    if _directory is not None:
        config.store_directory = _directory
    if _show_all is not None:
        config.show_hidden = _show_all
    return config


@contextmanager
def _store_session() -> Iterator[TagStore]:
    """Open the store for one command, reporting store errors cleanly."""
    config = _get_config()
    try:
        with open_store(
            config.store_filename,
            config.store_directory,
            show_hidden=config.show_hidden,
        ) as store:
            yield store
    except FtagError as e:
        raise _fail(str(e))


def _echo_stream(stream: ResultStream) -> None:
    with stream:
        for value in stream:
            typer.echo(value)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("file")
def tag_file(
    file: Annotated[str, typer.Argument(help="File to tag, relative to the store directory")],
    tags: Annotated[list[str], typer.Argument(help="Tags to add")],
):
    """Tag FILE with one or more TAGs."""
    with _store_session() as store:
        store.tag_file_many(file, tags)


@app.command("filter")
def filter_files(
    tags: Annotated[Optional[list[str]], typer.Argument(
        help="Show files carrying any of these tags (all files if none)"
    )] = None,
):
    """List files carrying any of TAGs."""
    with _store_session() as store:
        _echo_stream(store.filter_files(tags or []))


@app.command("list")
def list_tags(
    file: Annotated[Optional[str], typer.Argument(
        help="File whose tags to list (all tags if omitted)"
    )] = None,
):
    """List the tags of FILE."""
    with _store_session() as store:
        _echo_stream(store.list_tags(file))


@app.command("untag")
def untag_file(
    file: Annotated[str, typer.Argument(help="File to untag")],
    tags: Annotated[list[str], typer.Argument(help="Tags to remove")],
):
    """Remove TAGs from FILE."""
    missing = []
    with _store_session() as store:
        for tag in tags:
            if not store.untag_file(file, tag):
                missing.append(tag)
    if missing:
        raise _fail(f"{file} is not tagged {', '.join(missing)}")


@app.command("gc")
def collect_orphans():
    """Remove files and tags that are no longer tagged."""
    with _store_session() as store:
        files, tags = store.collect_orphans()
    typer.echo(f"Removed {files} files and {tags} tags")


@app.command("info")
def info():
    """Show the store location and row counts."""
    with _store_session() as store:
        counts = store.counts()
        typer.echo(f"Store: {store.describe()}")
        typer.echo(f"Files: {counts.files}")
        typer.echo(f"Tags: {counts.tags}")
        typer.echo(f"Associations: {counts.associations}")


@app.command("config")
def config(
    init: Annotated[bool, typer.Option(
        "--init",
        help="Write a config file with the default settings",
    )] = False,
):
    """Show the effective configuration."""
    if init:
        path = get_config_path()
        if path.exists():
            raise _fail(f"Config already exists: {path}")
        try:
            save_config(load_config(path))
        except OSError as e:
            raise _fail(f"Cannot write {path}: {e}")
        typer.echo(f"Wrote {path}")
        return

    cfg = _get_config()
    typer.echo(f"config: {cfg.path}{'' if cfg.exists() else ' (not found, using defaults)'}")
    typer.echo(f"store.filename: {cfg.store_filename}")
    typer.echo(f"store.directory: {cfg.store_directory or ''}")
    typer.echo(f"display.show_hidden: {str(cfg.show_hidden).lower()}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e)
        typer.echo(f"Error: {e}", err=True)
        if log_path is not None:
            typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
