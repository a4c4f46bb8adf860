"""Logging setup shared by the HTTP bridge, the stdio worker and the scraper."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

ROOT_LOGGER = "webdna_docs"

_DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"
_SIMPLE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(
    name: str,
    *,
    level: str = "INFO",
    log_dir: str | Path | None = "logs",
    stream: TextIO | None = None,
    console: bool = True,
) -> logging.Logger:
    """Configure the package logger with a console and a rotating file handler.

    Args:
        name: Base name of the log file (`<log_dir>/<name>.log`).
        level: Console log level. The file handler always records DEBUG.
        log_dir: Directory for the log file, or None to skip file logging.
        stream: Console stream. Defaults to stderr, which keeps stdout free
            for the worker's protocol traffic.
        console: Whether to attach the console handler at all.

    Returns:
        The configured `webdna_docs` logger.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers on repeated setup
    for handler in list(logger.handlers):
        if getattr(handler, "_webdna_managed", False):
            logger.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(stream or sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(_SIMPLE_FORMAT, datefmt="%H:%M:%S"))
        console_handler._webdna_managed = True  # type: ignore[attr-defined]
        logger.addHandler(console_handler)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / f"{name}.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(_DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        file_handler._webdna_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
