"""Logger factory used by every module of the proxy."""

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
    """
    Creates a logger that writes to:
      - stderr (console)
      - <log_dir>/<name>.log (rotating: 5MB x 5 files) when a log dir is configured
    Idempotent: calling twice returns the same configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:  # already configured
        return logger

    log_dir = log_dir if log_dir is not None else Config.LOG_DIR
    log_level = _LEVELS.get((level or Config.LOG_LEVEL).upper(), logging.INFO)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            filename=os.path.join(log_dir, f"{name}.log"),
            maxBytes=5_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        fh.setLevel(log_level)
        logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(log_level)
    logger.addHandler(ch)

    logger.setLevel(log_level)
    logger.propagate = False
    return logger
