"""
Error types and error logging for ftag.

Store-layer failures are raised as subclasses of FtagError; the CLI turns
them into messages and exit codes. Unexpected exceptions get their full
traceback written to a log file while the user sees a short message.
"""

import logging
import os
from pathlib import Path
from typing import Optional


class FtagError(Exception):
    """Base class for all tag store failures."""


class InvalidArgument(FtagError, ValueError):
    """An empty or missing file path or tag name."""


class StoreUnavailable(FtagError):
    """The store could not be opened or created."""


class AlreadyOpen(FtagError):
    """A store handle is already live in this process."""


class StoreClosed(FtagError):
    """An operation was attempted on a closed store handle."""


class QueryFailure(FtagError):
    """A query could not be prepared or executed."""


class WriteFailure(FtagError):
    """A write transaction could not commit. The store is unchanged."""


ERROR_LOG_NAME = "ftag-errors.log"


def error_log_path() -> Path:
    """$FTAG_HOME/ftag-errors.log, else ~/.ftag/ftag-errors.log."""
    home = os.environ.get("FTAG_HOME")
    return (Path(home) if home else Path.home() / ".ftag") / ERROR_LOG_NAME


def log_exception(exc: BaseException) -> Optional[Path]:
    """Append the traceback of exc to the error log; None if it can't be written."""
    path = error_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    crash_logger = logging.getLogger("ftag.crash")
    crash_logger.propagate = False
    crash_logger.addHandler(handler)
    try:
        crash_logger.error("Unhandled error", exc_info=exc)
    finally:
        crash_logger.removeHandler(handler)
        handler.close()
    return path
