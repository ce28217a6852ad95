"""
Structured logging configuration.

- Development / testing: one readable line per record, entity ids appended
- Production: one JSON object per record
- Log level: LOG_LEVEL env variable

Services attach entity ids through ``extra={...}``; the timing middleware
attaches the request fields.  Both formatters pick them up from
``REQUEST_FIELDS`` and ``ENTITY_FIELDS``.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

ENTITY_FIELDS = (
    "user_id",
    "document_id",
    "version_number",
    "workflow_id",
    "approval_request_id",
    "step_order",
    "profile_id",
    "schedule_id",
    "availability_id",
    "time_slot_id",
    "appointment_id",
)


def _present(record, keys):
    return {key: getattr(record, key) for key in keys if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_present(record, REQUEST_FIELDS))
        entry.update(_present(record, ENTITY_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line format for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        ids = _present(record, ENTITY_FIELDS)
        if ids:
            line += " (" + " ".join(f"{k}={v}" for k, v in ids.items()) + ")"
        if getattr(record, "request_id", None):
            line += f" [req {record.request_id}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Production (neither DEBUG nor TESTING) logs JSON; everything else logs
    readable lines.  Default level is INFO in production and DEBUG
    otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter(use_color=sys.stderr.isatty()))
    handler.setLevel(level)

    # cleared first so repeated create_app() calls do not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
