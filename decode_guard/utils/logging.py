"""
Logging configuration for decode-guard.

Every module logs through ``logging.getLogger(__name__)``, so the whole
package hangs off the ``decode_guard`` logger. configure_logging() attaches a
single handler there.

Default level is WARNING, or DEBUG when DECODE_GUARD_VERBOSE is set.

Formatters:
    - simple: message only
    - detailed: timestamp, level and logger name
    - json: one JSON object per line

Example:
    ```python
    from decode_guard.utils import configure_logging

    configure_logging()                                   # warnings to stderr
    configure_logging(level="debug", formatter="json")    # structured output
    configure_logging(level="info", output="decode.log")  # to a file
    ```
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Union

PACKAGE_LOGGER = "decode_guard"
VERBOSE_ENV_VAR = "DECODE_GUARD_VERBOSE"

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
    'critical': logging.CRITICAL,
}


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload)


def default_level() -> int:
    """DEBUG when DECODE_GUARD_VERBOSE is set, WARNING otherwise."""
    if os.environ.get(VERBOSE_ENV_VAR):
        return logging.DEBUG
    return logging.WARNING


def normalize_level(level: Union[str, int, None]) -> int:
    """Convert a level name or number to a logging constant (WARNING if unknown)."""
    if level is None:
        return default_level()
    if isinstance(level, int):
        return level
    return _LEVELS.get(str(level).lower(), logging.WARNING)


def build_formatter(name: str) -> logging.Formatter:
    if name == 'json':
        return JsonFormatter()
    if name == 'detailed':
        return logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return logging.Formatter("%(message)s")


def configure_logging(
    level: Union[str, int, None] = None,
    output: Union[str, Path, IO[str], None] = None,
    formatter: str = "simple",
    disable: bool = False,
) -> logging.Logger:
    """
    Configure the ``decode_guard`` logger.

    Args:
        level: Level name ("debug", "info", ...) or constant; None for default
        output: Stream or file path; None for stderr
        formatter: "simple", "detailed" or "json"
        disable: Drop all records

    Returns:
        logging.Logger: The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if disable:
        logger.addHandler(logging.NullHandler())
        logger.propagate = False
        logger.setLevel(logging.CRITICAL + 1)
        return logger

    handler: logging.Handler
    if output is None:
        handler = logging.StreamHandler(sys.stderr)
    elif isinstance(output, (str, Path)):
        handler = logging.FileHandler(str(output))
    else:
        handler = logging.StreamHandler(output)

    handler.setFormatter(build_formatter(formatter))
    logger.addHandler(handler)
    logger.setLevel(normalize_level(level))
    logger.propagate = False

    return logger
