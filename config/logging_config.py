"""
Central logging configuration for the backend.

- JSON logs when LOG_JSON=1 or RAILWAY_ENVIRONMENT is set, plain text otherwise.
- LOG_LEVEL from env (default INFO).
- Background analysis logs carry analysis_id / provider via `extra=`; those
  fields are lifted into the JSON payload.
- Never log PII: no emails, tokens, prompts or API keys in messages.
"""
import json
import logging
import os
import sys
from typing import Any

# Attributes set through logger.*(..., extra={...}) that we surface in JSON output.
CONTEXT_FIELDS = ("request_id", "user_id", "analysis_id", "provider", "attempt")


def _json_serial(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_serial)


def _use_json() -> bool:
    return (
        os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")
        or bool(os.getenv("RAILWAY_ENVIRONMENT"))
    )


def configure_logging() -> None:
    """Configure root logger: level from LOG_LEVEL, JSON format in production."""
    level_name = (os.getenv("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers when uvicorn reloads
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if _use_json():
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(handler)

    # Vendor HTTP calls are logged by the providers themselves
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
