"""Loguru-based logging for repokit.

Library modules log through the shared loguru ``logger`` and bind context
(entity type, transaction id) with ``logger.bind``. Nothing is configured on
import; applications call :func:`configure_logging` once at start-up to install
the repokit sink, and may route the standard library ``logging`` records of
their storage engine (SQLAlchemy) through :class:`InterceptHandler`.
"""

import logging
import sys
from inspect import currentframe

import typing as t
from loguru import logger

from .config import DataAccessSettings, get_settings

LOG_FORMAT: dict[str, str] = {
    "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
    "level": " <level>{level:>8}</level>",
    "sep": " <b><w>in</w></b> ",
    "name": "<b>{extra[mod_name]:>20}</b>",
    "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
    "message": "  <level>{message}</level>",
}


def _extract_module_name(record: dict[str, t.Any]) -> str:
    parts = record["name"].split(".")
    if len(parts) > 1 and parts[-1].startswith("_"):
        return parts[-2]
    return parts[-1]


def _patch(record: dict[str, t.Any]) -> None:
    """Ensure the extra fields used by :data:`LOG_FORMAT` exist."""
    record["extra"].setdefault("mod_name", _extract_module_name(record))


def configure_logging(
    settings: DataAccessSettings | None = None,
    sink: t.Any = sys.stderr,
) -> int:
    """Replace loguru's default handler with the repokit sink.

    Returns:
        The loguru handler id of the installed sink.
    """
    settings = settings or get_settings()
    logger.remove()
    logger.configure(patcher=_patch)  # type: ignore[arg-type]
    return logger.add(
        sink,
        level=settings.log_level,
        format="".join(LOG_FORMAT.values()),
        backtrace=False,
        diagnose=False,
        colorize=sink in (sys.stderr, sys.stdout),
    )


class InterceptHandler(logging.Handler):
    """Handler to intercept standard library logging and route to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = (currentframe(), 0)
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level,
            record.getMessage(),
        )


def intercept_stdlib_logging(*names: str, level: int = logging.INFO) -> None:
    """Send records of the named stdlib loggers to loguru."""
    for name in names or ("sqlalchemy",):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(level)
        std_logger.propagate = False


__all__ = [
    "LOG_FORMAT",
    "InterceptHandler",
    "configure_logging",
    "intercept_stdlib_logging",
    "logger",
]
