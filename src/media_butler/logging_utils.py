"""Logging utilities for Media Butler."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


_LOGGER_SETUP = False
_ROOT_LOGGER_NAME = "media_butler"
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _formatter() -> logging.Formatter:
    return logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``media_butler`` logger tree.

    Console output goes to stderr so the CLI's per-item status lines on
    stdout stay readable. A file handler, when requested, always records
    DEBUG so a failed sync can be diagnosed after the fact.

    Parameters
    ----------
    verbose: bool
        If True, console level is DEBUG; otherwise WARNING.
    log_file: Optional[Path]
        If provided, add a file handler writing to this path.

    Returns
    -------
    logging.Logger
        Root logger of the package.
    """
    global _LOGGER_SETUP

    root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(_formatter())
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_formatter())
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    _LOGGER_SETUP = True
    return root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger inside the ``media_butler`` namespace.

    Module names such as ``media_butler.pipeline`` are used as-is; any other
    name becomes a child of the package logger. Before :func:`setup_logging`
    runs, the package logger gets a basic stderr handler so library use
    outside the CLI still surfaces warnings.
    """
    if name is None or name == _ROOT_LOGGER_NAME:
        logger_name = _ROOT_LOGGER_NAME
    elif name.startswith(_ROOT_LOGGER_NAME + "."):
        logger_name = name
    else:
        logger_name = f"{_ROOT_LOGGER_NAME}.{name}"

    if not _LOGGER_SETUP:
        root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
        if not root_logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(_formatter())
            root_logger.addHandler(handler)
            root_logger.setLevel(logging.INFO)
            root_logger.propagate = False

    return logging.getLogger(logger_name)
