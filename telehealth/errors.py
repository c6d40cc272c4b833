"""
Error taxonomy shared by services and routes.

Services raise ApiError subclasses; the handlers registered in app.py turn them
(and plain HTTPExceptions) into the JSON envelope the clients expect:

    {"success": false, "message": "...", "errors": [...], "error_type": "validation"}
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base error carrying an HTTP status and optional field errors"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code


class ValidationFailedError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class RateLimitExceededError(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


def classify_status(status_code: Optional[int]) -> str:
    """Bucket an HTTP status into the error types shown to users"""
    if status_code is None:
        return "network"
    if status_code in (400, 422):
        return "validation"
    if status_code in (401, 403):
        return "auth"
    if status_code == 404:
        return "not_found"
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "server"
    return "validation" if 400 <= status_code < 500 else "server"


def error_body(status_code: int, message: str, errors: Optional[list] = None, **extra) -> Dict[str, Any]:
    body = {
        "success": False,
        "message": message,
        "errors": errors or [],
        "error_type": classify_status(status_code),
    }
    body.update(extra)
    return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = None
    extra = {}
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after)}
        extra["retry_after"] = exc.retry_after
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.message, exc.errors, **extra),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        message = detail.get("message", "Request failed")
        errors = detail.get("errors", [])
    else:
        message = str(detail)
        errors = []
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message, errors),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", [])[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, "Invalid request", errors),
    )
