"""
Structured logging for the alert engine.

Provides:
    • JSON log lines in production, one object per record
    • Coloured console lines in development
    • The request ID of the current HTTP call on every line it produces
    • Decision-trace fields copied from ``extra=`` (area, alert, score...)

Usage:
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Cluster rejected", extra={"area_name": "Zoo Road", "confidence": 2})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Optional

from floodwatch.core.config import settings

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# extra= keys the engine and the HTTP layer attach to records
TRACE_FIELDS = (
    "area_name", "alert_id", "confidence", "report_count", "severity",
    "road_state", "duration_ms", "status_code",
)


def bind_request_id(request_id: str) -> Token:
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id.get()


class JSONFormatter(logging.Formatter):
    """One JSON object per record, trace fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = current_request_id()
        if request_id:
            entry["request_id"] = request_id

        for key in TRACE_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [req] logger: <area> message`` with level colours."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        request_id = current_request_id()
        req = f" [{request_id[:8]}]" if request_id else ""

        area = getattr(record, "area_name", None)
        where = f" <{area}>" if area else ""

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{req} {record.name}:{where} {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, name, logging.INFO))

    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
