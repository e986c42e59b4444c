"""Logging setup for exledger.

Modules obtain loggers through ``get_logger`` so that everything lives under
the ``exledger`` namespace. Nothing is emitted until ``configure_logging`` is
called (the CLI does this) or the host application configures logging itself.
"""

__all__ = [
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import logging
import sys
import threading
from typing import Any, Optional

_LOGGER_PREFIX = "exledger"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False
_lock = threading.Lock()

logging.getLogger(_LOGGER_PREFIX).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the exledger namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Configure the exledger logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(logging.Formatter(_FORMAT))
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    for h in list(logger.handlers):
        if not isinstance(h, logging.NullHandler):
            logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
