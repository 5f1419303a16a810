"""
utils.py
--------
Logging, timing decorators, and shared formatting helpers.
"""

import os
import logging
import time
import functools
from datetime import datetime
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def get_logger(name: str, log_dir: Optional[str] = None,
               level: str = "INFO") -> logging.Logger:
    """
    Return a named logger writing to stdout and, optionally, a daily file.

    Core modules never call this; they use ``logging.getLogger(__name__)``
    and leave handler setup to the entry point.

    Parameters
    ----------
    name    : Logger name (typically the module __name__ or "garch_evt").
    log_dir : Directory for log files. None keeps logging console-only.
    level   : Logging level string ("DEBUG", "INFO", "WARNING", "ERROR").

    Returns
    -------
    logging.Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if logger.handlers:          # avoid duplicate handlers on re-import
        return logger

    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # Console handler
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # File handler
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_file = os.path.join(
            log_dir, f"risk_engine_{datetime.now().strftime('%Y%m%d')}.log"
        )
        fh = logging.FileHandler(log_file)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def timeit(func):
    """Log at DEBUG how long a fit or pipeline stage took, including failed runs."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        status = "failed"
        try:
            result = func(*args, **kwargs)
            status = "done"
            return result
        finally:
            logging.getLogger(func.__module__).debug(
                "%s %s in %.3f s", func.__qualname__, status, time.perf_counter() - t0)
    return wrapper


def format_pct(value: float, decimals: int = 4) -> str:
    """Format a decimal fraction as a percentage string (0.0123 -> '1.2300%')."""
    return f"{value * 100:.{decimals}f}%"
