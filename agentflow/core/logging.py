# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Structured logging for agentflow.

Records carry workflow fields (workflow_id, node_id, status, ...) through
`extra`. The JSON formatter emits them as top-level keys; the text formatter
appends them as key=value pairs.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from agentflow.core.errors import ConfigurationError

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to a record through `extra`"""
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local runs"""

    def __init__(self):
        super().__init__(fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


FORMATTERS = {"json": JSONFormatter, "text": TextFormatter}


def get_logger(name: str, log_level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Logger writing to stdout in the configured format.

    Calling it again for the same name reconfigures the logger instead of
    stacking handlers.
    """
    formatter_cls = FORMATTERS.get(log_format)
    if formatter_cls is None:
        raise ConfigurationError(
            f"Unknown log format: {log_format}",
            details={"supported": sorted(FORMATTERS)},
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter_cls())

    logger = logging.getLogger(name)
    logger.setLevel(log_level.upper())
    logger.handlers = [handler]
    return logger


def log_event(logger: logging.Logger, event: str, level: str = "INFO", **fields: Any) -> None:
    """Log `event` with `fields` attached to the record."""
    logger.log(logging.getLevelName(level.upper()), event, extra=fields)
