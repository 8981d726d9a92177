# hims_ledger/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import IO, Optional

from hims_ledger.core.config import settings

CONSOLE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: Optional[str] = None,
                  log_file: Optional[str] = None,
                  stream: Optional[IO[str]] = None) -> logging.Logger:
    """
    Configure the "hims_ledger" logger tree.

    Console handler always; file handler only when LOG_FILE (or log_file) is set.
    Calling twice does not stack handlers.
    """
    lvl = getattr(logging, (level or settings.LOG_LEVEL or "INFO").upper(),
                  logging.INFO)
    log_file = log_file if log_file is not None else settings.LOG_FILE

    logger = logging.getLogger("hims_ledger")
    logger.setLevel(lvl)

    for h in list(logger.handlers):
        if getattr(h, "_hims_ledger", False):
            logger.removeHandler(h)
            h.close()

    # Console handler
    ch = logging.StreamHandler(stream or sys.stdout)
    ch.setLevel(lvl)
    ch.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    ch._hims_ledger = True  # type: ignore[attr-defined]
    logger.addHandler(ch)

    # File handler
    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        fh._hims_ledger = True  # type: ignore[attr-defined]
        logger.addHandler(fh)

    return logger
