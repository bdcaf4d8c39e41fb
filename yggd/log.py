"""Logging setup: stdlib logging with a TRACE level, structlog on top."""

from __future__ import annotations

import logging
import sys

import structlog

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_FORMAT = "%(asctime)s - %(levelname)-7s - [%(name)s] - %(message)s"


def parse_level(name: str) -> int:
    """Map a level name such as ``"trace"`` or ``"INFO"`` to its number."""
    try:
        return _LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {name!r}") from None


def setup_logging(level: str | int = logging.INFO) -> None:
    """Configure the root logger and route structlog through it.

    Clears previously installed handlers so repeated calls do not
    duplicate output.
    """
    if isinstance(level, str):
        level = parse_level(level)

    root = logging.getLogger()
    root.setLevel(level)
    if root.hasHandlers():
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    logging.getLogger("yggd").setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def current_level_name() -> str:
    """Lower-cased effective level of the ``yggd`` logger, as told to workers."""
    level = logging.getLogger("yggd").getEffectiveLevel()
    for name, value in _LEVELS.items():
        if value == level:
            return name
    return logging.getLevelName(level).lower()
