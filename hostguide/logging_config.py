"""
JSON logging shared by the hostguide API and the get-image function.

One JSON object per line on stdout. Request context attached by the access log
middleware (``extra={...}``) is copied into the object; access tokens never
reach a record because the middleware redacts paths first.
"""

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any, Dict

_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")

# record attribute -> JSON key, for context passed through `extra`
_CONTEXT_FIELDS = {
    "client": "client",
    "method": "method",
    "path": "path",
    "status": "status",
}

# Loggers that talk too much below WARNING (botocore echoes request signing).
_NOISY_LOGGERS = ("botocore", "boto3", "urllib3")


def _resolve_level() -> int:
    # Env only; importing hostguide.config here would validate API_ENV too early.
    override = os.environ.get("HOSTGUIDE_LOG_LEVEL", "").upper()
    if override in _LEVEL_NAMES:
        return getattr(logging, override)
    if os.environ.get("API_ENV", "prod") in ("dev", "stg"):
        return logging.DEBUG
    return logging.INFO


LOG_LEVEL = _resolve_level()


class JSONLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr, key in _CONTEXT_FIELDS.items():
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if hasattr(record, "duration"):
            entry["duration_ms"] = round(record.duration * 1000, 2)  # type: ignore
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: int = LOG_LEVEL) -> None:
    """Route root, uvicorn and hostguide loggers through one JSON stdout handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uv = logging.getLogger(name)
        for existing in list(uv.handlers):
            uv.removeHandler(existing)
        uv.propagate = True

    logging.getLogger("hostguide").setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
