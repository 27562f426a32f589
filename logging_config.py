"""
logging_config.py - per-module stream loggers shared by the watermark tool.

Every module logs through `get_logger(__name__)`, which attaches a single
StreamHandler in the "[module] LEVEL message" format and stops propagation so
messages are not printed twice when the root logger is configured elsewhere.
"""

import logging
from typing import Dict

_FORMAT = "[%(name)s] %(levelname)s %(message)s"
_LOGGERS: Dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    short = name.rsplit(".", 1)[-1]
    logger = logging.getLogger(short)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    if not logger.level or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    _LOGGERS[short] = logger
    return logger


def set_verbose(verbose: bool) -> None:
    """Switch every project logger between INFO and DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO
    for logger in _LOGGERS.values():
        logger.setLevel(level)
