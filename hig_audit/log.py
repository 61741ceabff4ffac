"""Logging setup for the command line.

Log records go to stderr so stdout stays reserved for the rendered report.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

PACKAGE_LOGGER = "hig_audit"
TEXT_FORMAT = "%(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(verbose: bool = False, json_format: bool = False) -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    Default level is WARNING; ``verbose`` lowers it to DEBUG. Calling this
    again replaces the previous handler.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logger
