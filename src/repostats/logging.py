"""Logging configuration for repostats."""

import logging
import sys

# Package logger, shared by every module through logging.getLogger("repostats")
logger = logging.getLogger("repostats")

# Progress lines are plain messages; verbose mode adds the level and origin
DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(levelname)s [%(module)s]: %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: If True, show DEBUG level messages (skipped log lines,
            cache decisions) with level prefix.
        quiet: If True, suppress INFO messages such as per-chunk progress
            (only show WARNING+).
    """
    logger.handlers.clear()

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level)
