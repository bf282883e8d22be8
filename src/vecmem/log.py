"""Logging setup: a single RichHandler on the ``vecmem`` logger.

Logs go to stderr so that stdout carries only the JSON result object.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "vecmem"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Attach a stderr RichHandler to the package logger (idempotent).

    Args:
        verbose: DEBUG when True, WARNING otherwise.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
    return logger
