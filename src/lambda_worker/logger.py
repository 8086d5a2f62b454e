"""
Logging configuration for lambda-worker.

The root logger follows LOG_LEVEL. The ``lambda_worker`` namespace can be
turned up or down on its own with LAMBDA_WORKER_LOG_LEVEL, so the runtime's
lifecycle can be traced at DEBUG without the HTTP stack flooding the output.
"""

import logging
import os
import sys
from typing import Optional, Union

from .constants import NAMESPACE

NAMESPACE_LOG_LEVEL_ENV = "LAMBDA_WORKER_LOG_LEVEL"

# One line per request, and the long poll makes one request per invocation
CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _parse_level(value: Union[int, str], default: int) -> int:
    if isinstance(value, int):
        return value
    return getattr(logging, value.upper(), default)


def get_log_level() -> int:
    """Get log level from environment variable, defaulting to INFO."""
    return _parse_level(os.environ.get("LOG_LEVEL", "INFO"), logging.INFO)


def get_namespace_log_level(default: int) -> int:
    """Level for the lambda_worker loggers, ``default`` unless overridden."""
    value = os.environ.get(NAMESPACE_LOG_LEVEL_ENV)
    if not value:
        return default
    return _parse_level(value, default)


def get_log_format(level: int) -> str:
    """Get appropriate log format based on level."""
    if level == logging.DEBUG:
        return "%(asctime)s | %(levelname)-5s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
    else:
        return "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


def setup_logging(
    level: Optional[Union[int, str]] = None,
    stream=sys.stdout,
    fmt: Optional[str] = None,
    namespace_level: Optional[Union[int, str]] = None,
) -> None:
    """
    Setup logging configuration for lambda-worker.

    Args:
        level: Root log level (defaults to LOG_LEVEL env var or INFO)
        stream: Output stream for logs
        fmt: Custom format string (auto-selected from the most verbose level if None)
        namespace_level: Level for the lambda_worker loggers (defaults to
            LAMBDA_WORKER_LOG_LEVEL, then to ``level``)
    """
    if level is None:
        level = get_log_level()
    else:
        level = _parse_level(level, logging.INFO)

    if namespace_level is None:
        namespace_level = get_namespace_log_level(level)
    else:
        namespace_level = _parse_level(namespace_level, level)

    if fmt is None:
        fmt = get_log_format(min(level, namespace_level))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.hasHandlers():
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt))
        root_logger.addHandler(handler)

    logging.getLogger(NAMESPACE).setLevel(namespace_level)

    # httpx request lines show at DEBUG only; httpcore wire traces never do
    chatty_level = logging.INFO if level == logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
