"""
Application errors and the handlers that render every failure as

    {"error_code": ..., "message": ..., "details": {...}}
"""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)


class AppException(Exception):
    error_code = "APP_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code


class ValidationError(AppException):
    error_code = "VALIDATION_ERROR"


class ConflictError(AppException):
    """Unique value already taken (email addresses)."""
    error_code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class TrialExpiredError(AppException):
    error_code = "TRIAL_EXPIRED"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, account_status: str, days_remaining: int = 0):
        super().__init__(message, details={
            "trialExpired": True,
            "accountStatus": account_status,
            "daysRemaining": days_remaining,
        })


class ExternalServiceError(AppException):
    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, service: str, message: str):
        super().__init__(message, details={"service": service})


def error_response(
    status_code: int,
    error_code: str,
    message: Any,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"error_code": error_code, "message": message, "details": details or {}}),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: {exc.error_code} {exc.message}")
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """400 with one {field, message, type} entry per failed field."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    logger.info(f"{request.method} {request.url.path}: invalid input on {[e['field'] for e in errors]}")
    return error_response(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Invalid input", {"errors": errors})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.status_code} {exc.detail}")
    elif exc.status_code != status.HTTP_404_NOT_FOUND:
        logger.warning(f"{request.method} {request.url.path}: {exc.status_code} {exc.detail}")
    return error_response(
        exc.status_code, "HTTP_ERROR", exc.detail, headers=getattr(exc, "headers", None)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal detail stays in the log; the client only gets the request id
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
        {"request_id": get_request_id(request)},
    )
