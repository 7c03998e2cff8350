"""Logging setup for the CLI and long-running processes."""
from __future__ import annotations
import sys
from typing import Optional
from loguru import logger

from .config import PosConfig


def configure_logging(config: Optional[PosConfig] = None, verbose: bool = False, quiet: bool = False):
    """
    Replace loguru's default sink.

    stderr gets the configured level (DEBUG with ``verbose``, ERROR with
    ``quiet``). When POS_LOG_FILE is set, a rotating file sink records
    everything from DEBUG up.
    """
    config = config or PosConfig.from_env()
    logger.remove()
    if quiet:
        level = "ERROR"
    elif verbose:
        level = "DEBUG"
    else:
        level = config.log_level.upper()
    logger.add(sys.stderr, level=level)
    if config.log_file:
        logger.add(
            config.log_file,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )
    return level
