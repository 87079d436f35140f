"""Logging setup for the CLI and the worker process.

The library itself only creates module loggers; handlers are installed by
:func:`setup_logging`, which entry points call once.
"""

import logging
import sys

LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure the ``device_matrix`` logger hierarchy.

    Args:
        level: Log level name (``"DEBUG"``, ``"INFO"``, ...).  Unknown names
            fall back to ``INFO``.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("device_matrix")
    logger.setLevel(log_level)
    if not any(getattr(h, "_device_matrix", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._device_matrix = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.debug("Logging configured at %s level", logging.getLevelName(log_level))
