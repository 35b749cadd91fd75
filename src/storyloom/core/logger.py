"""Logging helpers shared by the interpreter and the console player.

Library modules only ask for a logger::

    from storyloom.core.logger import get_logger

    logger = get_logger(__name__)

Handlers are installed once, by the application, via ``setup_logging``.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: LogLevel = "WARNING", log_file: str | Path | None = None) -> None:
    """Configure the root logger with a console handler and an optional file handler."""
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.debug("Logging initialized at %s level", level)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (typically ``__name__``)."""
    return logging.getLogger(name)
