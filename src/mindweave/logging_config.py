"""Logging configuration for mindweave."""

import sys

from loguru import logger

_FORMAT = "{level.icon} {message}"
# Layout and store debug lines come from several modules; say which one.
_VERBOSE_FORMAT = "{time:HH:mm:ss.SSS} {level.icon} {name}:{function} {message}"


def configure_logging(*, verbose: bool = False) -> None:
    """Send mindweave's log output to stderr.

    Verbose mode logs at DEBUG with timestamps and the emitting module, which
    is what following a declutter or settle run needs.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format=_VERBOSE_FORMAT)
    else:
        logger.add(sys.stderr, level="INFO", format=_FORMAT)
