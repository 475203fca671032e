# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "arbor"
INTEGRITY_LOGGER_NAME = "arbor.integrity"

_FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``arbor`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def get_integrity_logger() -> logging.Logger:
    """Logger reserved for corruption reports, kept apart from user-error noise."""
    return logging.getLogger(INTEGRITY_LOGGER_NAME)


def configure_logging(
    debug: bool = False,
    console_output: bool = True,
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """Install handlers on the package root logger.

    Args:
        debug: Force DEBUG level
        console_output: Attach a rich console handler
        log_dir: Directory for the rotating ``arbor.log`` file (skipped when None)
        level: Level name used when ``debug`` is False (default INFO)

    Returns:
        The configured root package logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    resolved = logging.DEBUG if debug else getattr(logging, (level or "INFO").upper(), logging.INFO)
    root.setLevel(resolved)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if console_output:
        console_handler = RichHandler(console=Console(stderr=True), show_path=debug, rich_tracebacks=debug)
        console_handler.setLevel(resolved)
        root.addHandler(console_handler)

    if log_dir:
        log_dir = os.path.expanduser(log_dir)
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "arbor.log"), maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        file_handler.setLevel(resolved)
        root.addHandler(file_handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())

    root.propagate = False
    return root
