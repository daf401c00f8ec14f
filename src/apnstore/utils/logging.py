"""Logging helpers shared across the package."""

from __future__ import annotations

import logging
from typing import Optional

LOGGER_NAME = "apnstore"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger, or a child of it when *name* is given."""

    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


def configure_logging(level: int = logging.INFO, *, rich_output: bool = True) -> None:
    """Attach a single handler to the package logger.

    The CLI uses a ``RichHandler``; library callers keep whatever handlers
    their application installs and never need to call this.
    """

    logger = get_logger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if rich_output:
        from rich.logging import RichHandler

        handler: logging.Handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)
    logger.setLevel(level)


__all__ = ["LOGGER_NAME", "configure_logging", "get_logger"]
