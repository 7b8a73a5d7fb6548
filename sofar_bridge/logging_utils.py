from __future__ import annotations

import logging

from colorlog import ColoredFormatter

TRACE_LEVEL = 5
LOG_FORMAT = "%(log_color)s%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: int) -> None:
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    formatter = ColoredFormatter(
        LOG_FORMAT,
        log_colors={
            "TRACE": "cyan",
            "DEBUG": "blue",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red,bg_white",
        },
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # pymodbus logs every failed read at ERROR; the retry loop reports those itself.
    if level > logging.DEBUG:
        logging.getLogger("pymodbus").setLevel(logging.CRITICAL)


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    level = logging.getLevelName(fallback.upper())
    return level if isinstance(level, int) else logging.INFO
