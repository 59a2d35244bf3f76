"""JSON logging for the programme services.

Services log an event name as the message and pass structured fields as
``ctx_*`` extras; :func:`ctx` builds that mapping.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

CONTEXT_PREFIX = "ctx_"
QUIET_LOGGERS = ("sqlalchemy.engine", "alembic")


def ctx(**fields: Any) -> dict[str, Any]:
    """``extra=`` mapping for a log call: ``logger.info("x", extra=ctx(assignment_id=1))``."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with ``ctx_*`` extras under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        context = {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in vars(record).items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the root logger once."""
    root = logging.getLogger()
    if any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
