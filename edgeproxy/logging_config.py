"""Structured JSON logging configuration.

Configures Python logging to emit one JSON object per line with the fields
request_id, level, timestamp, logger and message. Request fields are added
contextually (client_ip, route, status_code, duration_ms for access lines;
target_url, error_reason for upstream failures; cache_status for the
recursive cache).

SECURITY: The shared secret travels in request paths, so it is scrubbed from
every message along with ``password=``/``token=`` style pairs.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from datetime import datetime, timezone

# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(secret|password|token|authorization)[\s]*[=:]\s*\S+",
    re.IGNORECASE,
)

_CONTEXT_FIELDS = (
    "client_ip",
    "route",
    "method",
    "target_url",
    "status_code",
    "duration_ms",
    "cache_status",
)

_REDACTED = "[REDACTED]"


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Parameters
    ----------
    redact:
        Literal values (e.g. the shared secret) replaced wherever they appear.
    """

    def __init__(self, redact: Iterable[str] = ()) -> None:
        super().__init__()
        literals = sorted({value for value in redact if value}, key=len, reverse=True)
        self._literals = (
            re.compile("|".join(re.escape(value) for value in literals)) if literals else None
        )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None),
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                entry[name] = self._sanitize(value) if isinstance(value, str) else value
        if hasattr(record, "error_reason"):
            entry["error_reason"] = self._sanitize(str(getattr(record, "error_reason")))

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)

    def _sanitize(self, text: str) -> str:
        """Remove sensitive values from log text."""
        text = _SENSITIVE_PATTERNS.sub(_REDACTED, text)
        if self._literals is not None:
            text = self._literals.sub(_REDACTED, text)
        return text


def configure_logging(level: str = "INFO", redact: Iterable[str] = ()) -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    redact:
        Literal values to scrub from every entry.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(redact))
    root.addHandler(handler)
