"""Logger factory used by every module of the service."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import Config

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def get_logger(name: str, log_dir: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """Return a logger whose top-level parent writes to console and file.

    Handlers live on the top-level logger (`screen_capture` for
    `screen_capture.capture`), so every module shares one console handler and
    one rotating file (`<log_dir>/<top>.log`, 5MB x 5 files). The file is only
    written when `log_dir` or `SC_LOG_DIR` is set. Idempotent: calling twice
    returns the same configured logger.
    """
    top = name.split(".", 1)[0]
    base = logging.getLogger(top)
    if base.handlers:  # already configured
        return logging.getLogger(name)

    log_level = _LEVELS.get((level or Config.LOG_LEVEL).upper(), logging.INFO)
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(log_level)
    base.addHandler(ch)

    # File (rotating)
    log_dir = log_dir if log_dir is not None else Config.LOG_DIR
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            filename=os.path.join(log_dir, f"{top}.log"),
            maxBytes=5_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        fh.setLevel(log_level)
        base.addHandler(fh)

    base.setLevel(log_level)
    base.propagate = False
    return logging.getLogger(name)
