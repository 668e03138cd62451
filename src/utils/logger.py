"""Logging utilities for the marketplace search service.

Every module obtains its logger through ``get_logger`` so that output shares
one stdout handler format and the level configured under ``app.log_level``.
"""

import logging
import sys

from src.utils.config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_level(level: int | str) -> int:
    """Translate a level name such as ``"debug"`` into its numeric value.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def configured_level() -> int:
    """The level set by ``app.log_level`` in the YAML config."""
    return resolve_level(config.get("app", {}).get("log_level", "INFO"))


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """Create or retrieve a named logger with standard formatting.

    Args:
        name: The logger name, typically __name__ of the calling module.
        level: Numeric level or level name. Defaults to ``app.log_level``.

    Returns:
        A configured Logger instance.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(configured_level() if level is None else resolve_level(level))
    return logger
