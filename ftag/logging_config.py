"""
Logging configuration for ftag.

Library modules only create loggers; handlers are attached here, by the CLI.
"""

import logging
import sys
import warnings


def configure_quiet_mode(quiet: bool = True):
    """
    Keep ftag output limited to warnings and errors.

    Args:
        quiet: If True, suppress info/debug output and Python warnings.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("ftag").setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        logging.getLogger("ftag").setLevel(logging.NOTSET)


def enable_debug_mode(level: int = logging.DEBUG):
    """Enable logging to stderr at the given level (DEBUG by default)."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream == sys.stderr:
            handler.setLevel(level)

    logging.getLogger("ftag").setLevel(level)


def verbosity_to_level(verbosity: int) -> int:
    """Map a -v count to a logging level: 0 warning, 1 info, 2+ debug."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG
