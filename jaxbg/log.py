"""Logging setup for jaxbg.

The library logs through loguru's global ``logger`` and is disabled on
import, so applications see nothing unless they opt in:

    from jaxbg.log import init_logging
    init_logging()          # INFO to stderr
    init_logging("DEBUG")   # per-stage timings and quadrature/ODE details

Log level priority:
  1) ``level`` argument
  2) env JAXBG_LOG_LEVEL
  3) env JAXBG_DEBUG -> DEBUG
  4) default INFO
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from loguru import logger

_PACKAGE = "jaxbg"
_SINK_ID: Optional[int] = None


def resolve_level(level: Optional[str] = None) -> str:
    """Return the effective log level name following the priority above."""
    env_level = os.getenv("JAXBG_LOG_LEVEL")
    if level:
        return str(level).upper()
    if env_level:
        return env_level.upper()
    if os.getenv("JAXBG_DEBUG"):
        return "DEBUG"
    return "INFO"


def init_logging(
    level: Optional[str] = None,
    *,
    sink=sys.stderr,
    colorize: bool = True,
) -> logger.__class__:
    """Install a single loguru sink for jaxbg messages and enable the package.

    Calling it again replaces the previously installed sink, so it is safe to
    use for changing the level.
    """
    global _SINK_ID

    level_final = resolve_level(level)
    if _SINK_ID is not None:
        logger.remove(_SINK_ID)

    _SINK_ID = logger.add(
        sink,
        level=level_final,
        colorize=colorize,
        filter=_PACKAGE,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <7}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )
    logger.enable(_PACKAGE)
    logger.debug("Logging initialized at level {}", level_final)
    return logger


def disable_logging() -> None:
    """Remove the jaxbg sink and silence the package again."""
    global _SINK_ID
    if _SINK_ID is not None:
        logger.remove(_SINK_ID)
        _SINK_ID = None
    logger.disable(_PACKAGE)
