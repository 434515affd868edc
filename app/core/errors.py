"""
JSON error envelope for the whole API.

Every error leaves the service as {"success": false, "message": ...}:
- HTTPException          -> its status, detail as message
- request validation     -> 400 (not FastAPI's default 422)
- unknown /api/* route   -> 404 with the requested path
- anything unhandled     -> 500 "Internal server error"; the exception text
                            is only included outside production
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings

logger = logging.getLogger(__name__)

# Detail Starlette uses when no route matched
ROUTE_NOT_FOUND_DETAIL = "Not Found"


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if (
        exc.status_code == status.HTTP_404_NOT_FOUND
        and exc.detail == ROUTE_NOT_FOUND_DETAIL
        and request.url.path.startswith("/api")
    ):
        return error_response(
            status.HTTP_404_NOT_FOUND,
            "API endpoint not found",
            path=request.url.path,
        )

    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    response = error_response(exc.status_code, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    logger.info(f"Rejected invalid request to {request.url.path}", extra={"errors": errors})
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", errors=errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
        extra={"path": request.url.path},
    )
    if settings.is_production:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", error=str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
