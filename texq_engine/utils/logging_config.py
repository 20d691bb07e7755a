"""Logging setup for the engine.

Modules log through ``logging.getLogger(__name__)``, so every record lands
under the ``texq_engine`` logger configured here.  The wgpu library logs
under ``wgpu``; its level follows ours but never drops below WARNING, since
its INFO output is adapter chatter.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "texq_engine"
WGPU_LOGGER = "wgpu"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO,
                  log_file: Optional[Path] = None,
                  format_string: Optional[str] = None) -> logging.Logger:
    """Attach console (stdout) and optional file handlers to the package logger.

    Calling it again replaces the handlers from the previous call.
    """
    if isinstance(level, str):
        name, level = level, logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown logging level {name!r}")
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logging.getLogger(WGPU_LOGGER).setLevel(max(level, logging.WARNING))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the package root, for scripts living outside the package."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
