"""
Content Portal
Structured logging configuration.

Services log with ``extra={"project_id": ..., "job_id": ..., "event_type": ...}``.
Both formatters surface those keys:

- Development: one coloured line, context as ``[project=12 job=40 event=job-claimed]``
- Production: one JSON object per line
- Level: ``LOG_LEVEL`` (config or env)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request-level keys set by the timing middleware
REQUEST_KEYS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Domain keys passed by services via ``extra=``
CONTEXT_KEYS = ("user_id", "project_id", "job_id", "department", "event_type")

_SHORT_NAMES = {"project_id": "project", "job_id": "job", "user_id": "user",
                "department": "dept", "event_type": "event"}


def _context(record: logging.LogRecord, keys) -> dict:
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_context(record, REQUEST_KEYS))
        entry.update(_context(record, CONTEXT_KEYS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color, reset = (self.COLORS.get(record.levelname, ""), self.RESET) if self.use_color else ("", "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{reset} {record.name}: {record.getMessage()}"

        ctx = _context(record, CONTEXT_KEYS)
        if ctx:
            line += " [" + " ".join(f"{_SHORT_NAMES[k]}={v}" for k, v in ctx.items()) + "]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    JSON in production, readable lines in development and testing. Level
    comes from ``LOG_LEVEL`` (INFO in production, DEBUG otherwise).
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL")
                  or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter(use_color=sys.stderr.isatty()))
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "flask_limiter", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")
