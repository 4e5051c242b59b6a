"""
Structured logging for the API process and the worker.

Every record emitted while a request is in flight carries that request's ID,
set by RequestIDMiddleware through `request_id_var`.
"""
import json
import logging
import time
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes passed through `extra=` that are copied into the JSON line
CONTEXT_FIELDS = (
    "request_id",
    "job_id",
    "job_type",
    "user_id",
    "webhook_id",
    "event",
    "attempt",
    "status",
    "duration_ms",
)

TEXT_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            request_id = request_id_var.get()
            if request_id:
                record.request_id = request_id
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({f: getattr(record, f) for f in CONTEXT_FIELDS if hasattr(record, f)})
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_lines: bool = True) -> None:
    """Replace root handlers with one stderr handler."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JsonFormatter() if json_lines else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level.upper()) if isinstance(level, str) else level)
    root.handlers = [handler]

    # uvicorn's access log duplicates the request line RequestIDMiddleware writes
    logging.getLogger("uvicorn.access").disabled = True
