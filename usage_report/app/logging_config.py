"""Logging setup shared by the API process and scripts."""

import logging
import sys


def configure_logging(level: int | str = logging.INFO) -> None:
    """Attach a stdout handler with the report's log format to the root logger.

    Args:
        level: Logging level, as an int or a level name such as ``"DEBUG"``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
