"""Structured logging helpers for the realtime client."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import IO, Any, Dict, Optional

import orjson

from .env import env_name, get_str

_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_HANDLER_MARK = "_orderfeed_json_handler"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents.

    Anything passed through ``extra=`` (topic, event, attempt, ...) is
    merged into the top-level object so log shippers can index it.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=repr).decode()


def configure_logging(
    level: Optional[str] = None,
    *,
    name: str = "orderfeed",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Send log records to ``stream`` (stderr by default) as JSON lines.

    ``level`` falls back to ``ORDERFEED_LOG_LEVEL``, then INFO. Calling this
    again replaces the handler it installed earlier; handlers added by
    anything else stay attached.
    """

    resolved = (level or get_str(env_name("log_level"), None) or "INFO").upper()
    root = logging.getLogger()
    for existing in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
        root.removeHandler(existing)
        existing.close()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    setattr(handler, _HANDLER_MARK, True)
    root.addHandler(handler)
    root.setLevel(resolved)
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging"]
