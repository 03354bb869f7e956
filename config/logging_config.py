"""
Central logging configuration for the portfolio API.

Log lines are written as `event key=value ...` (see services/ and
middleware/). In JSON mode (LOG_JSON=1 or APP_ENV=production) those pairs
become top-level fields, so shippers can index them without a grok step.

Never log PII: no emails, passwords or bearer tokens. User ids and ticker
symbols are fine.
"""
import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _json_serial(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def split_event(message: str) -> Dict[str, str]:
    """'login_failed user_id=3' -> {'event': 'login_failed', 'user_id': '3'}"""
    head, _, rest = message.partition(" ")
    if "=" in head:
        return {}
    fields = {"event": head}
    for token in rest.split():
        key, sep, value = token.partition("=")
        if not sep or not key.isidentifier():
            return {}
        fields[key] = value
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line, UTC timestamps."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        for key, value in split_event(message).items():
            payload.setdefault(key, value)
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_serial)


def _use_json() -> bool:
    if os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes"):
        return True
    return os.getenv("APP_ENV", "").lower() == "production"


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure the root logger once at startup; arguments override the env."""
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = getattr(logging, level_name, logging.INFO)
    if json_output is None:
        json_output = _use_json()

    root = logging.getLogger()
    root.setLevel(resolved)
    # uvicorn --reload re-imports main; drop handlers from the previous import
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
