"""
Package logging for elicit.

Every module asks for a named child, e.g. ``get_logger("canonicalization.matching")``
logs as ``elicit.canonicalization.matching``. One stdout handler sits on the
``elicit`` logger; LOG_LEVEL sets its threshold.
"""
import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("elicit")
logger.setLevel(LOG_LEVEL)

if not logger.handlers:
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(LOG_LEVEL)
    stdout_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(stdout_handler)

# uvicorn configures the root logger too
logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """Child of the elicit logger for a dotted module suffix; the package logger if none."""
    if name:
        return logging.getLogger(f"elicit.{name}")
    return logger
