"""Exception handlers rendering the JSON error envelope"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import clear_session_cookies
from app.core.exceptions import BaseAPIException

logger = logging.getLogger(__name__)


def error_response(request: Request, status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    """``{success, error, details?, path, timestamp}``"""
    body = {
        "success": False,
        "error": message,
        "path": request.url.path,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


async def handle_api_exception(request: Request, exc: BaseAPIException):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)

    response = error_response(request, exc.status_code, exc.message, exc.details)
    if exc.clear_cookies:
        clear_session_cookies(response)
    return response


async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Request body/query validation failures are plain bad requests"""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.info("Validation failed for %s %s: %s", request.method, request.url.path, errors)
    return error_response(request, status.HTTP_400_BAD_REQUEST, "Validation failed", errors)


async def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "A database error occurred. Please try again later.",
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.critical("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_api_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
