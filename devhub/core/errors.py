from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from devhub.core.config import DEBUG_ERRORS


# ------------------------------------------------------------
# Error taxonomy
# ------------------------------------------------------------
class DevHubError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class InvalidArgument(DevHubError):
    status_code = 400


class NotFound(DevHubError):
    status_code = 404


class Forbidden(DevHubError):
    status_code = 403


class Conflict(DevHubError):
    # duplicate relationships are reported as plain bad requests
    status_code = 400


class Internal(DevHubError):
    status_code = 500


# ------------------------------------------------------------
# Envelope
# ------------------------------------------------------------
def envelope(
    success: bool,
    data: Any = None,
    message: Optional[str] = None,
    error: Optional[str] = None,
) -> dict:
    body: dict = {"success": success}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    if error and DEBUG_ERRORS:
        body["error"] = error
    return body


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return envelope(True, data=data, message=message)


def _error_response(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(False, message=message, error=error),
    )


# ------------------------------------------------------------
# Handlers
# ------------------------------------------------------------
async def _devhub_error_handler(request: Request, exc: DevHubError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.message}")
    return _error_response(exc.status_code, exc.message, exc.error)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.method} {request.url.path} -> 400 validation failed")
    return _error_response(400, "Invalid request", str(exc.errors()))


async def _http_error_handler(request: Request, exc: HTTPException):
    return _error_response(exc.status_code, str(exc.detail))


async def _store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Store failure on {request.method} {request.url.path}")
    err = Internal("Internal server error", str(exc))
    return _error_response(err.status_code, err.message, err.error)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    err = Internal("Internal server error", str(exc))
    return _error_response(err.status_code, err.message, err.error)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DevHubError, _devhub_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
