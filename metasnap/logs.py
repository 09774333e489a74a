from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


PACKAGE_LOGGER = "metasnap"


def level_for_verbosity(verbosity: int) -> int:
    if verbosity >= 1:
        return logging.DEBUG
    if verbosity == 0:
        return logging.INFO
    if verbosity == -1:
        return logging.WARNING
    if verbosity == -2:
        return logging.ERROR
    return logging.CRITICAL


def configure_logging(verbosity: int = 0) -> logging.Logger:
    """Routes the package's log records to stderr through rich."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level_for_verbosity(verbosity))
    return logger
