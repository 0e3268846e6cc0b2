"""Logging setup for the Bookly command line."""

import logging

from rich.console import Console
from rich.logging import RichHandler

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def coerce_level(value: str | int | None) -> int:
    """Map a level name (or number) to a logging level, defaulting to INFO."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    return logging.INFO


def configure_logging(level: str | int | None = "INFO") -> logging.Logger:
    """
    Attach a Rich console handler to the ``bookly`` logger.

    Library modules only create loggers via ``logging.getLogger(__name__)``;
    handlers are installed here, once, by the CLI entry point. Calling this
    again only updates the level.

    Args:
        level: Level name such as "DEBUG" or a numeric logging level

    Returns:
        The configured ``bookly`` logger
    """
    logger = logging.getLogger("bookly")
    resolved = coerce_level(level)
    logger.setLevel(resolved)

    if getattr(logger, "_bookly_configured", False):
        for handler in logger.handlers:
            handler.setLevel(resolved)
        return logger

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)

    setattr(logger, "_bookly_configured", True)
    return logger
