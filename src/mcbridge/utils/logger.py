"""
Logging setup for mcbridge.

Every module gets its logger the same way:

    from mcbridge.utils.logger import get_logger

    logger = get_logger(__name__)

Log output goes through loguru. Call configure_logging() once at process
start, before any servers are started.
"""

import sys

from loguru import logger as _logger

from mcbridge.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> - <level>{message}</level>"
)

_LOGURU_LEVELS = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

# Records logged through a logger not obtained from get_logger() still need
# the "component" key the format refers to.
_logger.configure(extra={"component": "mcbridge"})


def get_logger(name: str):
    """Get a logger bound to the given component (usually ``__name__``)."""
    return _logger.bind(component=name)


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Install the console sink and, optionally, a rotating file sink.

    Args:
        level: Verbosity level. FULL also enables loguru's extended
            backtraces with variable values.
        log_file: Path of a log file to write in addition to stderr
            (empty = console only).
    """
    loguru_level = _LOGURU_LEVELS[LogLevel(level)]
    full_trace = LogLevel(level) == LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full_trace,
        diagnose=full_trace,
    )

    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            backtrace=full_trace,
            diagnose=full_trace,
        )
