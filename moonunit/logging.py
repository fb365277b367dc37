"""Logging configuration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Libraries whose INFO output drowns out the gauger traffic.
_NOISY_LOGGERS = ("aiohttp.access", "serial", "asyncio")


def resolve_level(level: str, *, quiet: bool = False) -> int:
    """Map a level name to its numeric value; ``quiet`` floors it at WARNING."""
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    if quiet:
        resolved = max(resolved, logging.WARNING)
    return resolved


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, quiet: bool = False
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional file that receives the same records as the console.
    quiet:
        Suppress routine gauger chatter; warnings and errors still print.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(resolve_level(level, quiet=quiet))

    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
