"""
Request correlation: every request gets an ID (the caller's `X-Request-ID` if
sent), exposed on `request.state`, on log records and on the response.
"""
import time
import uuid
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health", "/ready"})
MAX_INBOUND_ID_LENGTH = 128


def _inbound_id(request: Request) -> str:
    supplied = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if supplied and len(supplied) <= MAX_INBOUND_ID_LENGTH:
        return supplied
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = _inbound_id(request)
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s raised", request.method, request.url.path,
                extra={"duration_ms": round((time.perf_counter() - started) * 1000)},
            )
            raise
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path not in QUIET_PATHS:
            logger.info(
                "%s %s -> %s", request.method, request.url.path, response.status_code,
                extra={
                    "request_id": request_id,
                    "status": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000),
                },
            )
        return response


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get() or "unknown"
