import logging
import traceback
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from forum_api.schemas.common import error_response
from forum_api.utils.exceptions import AppException, ErrorCode

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render an AppException in the error envelope.
    Keys under detail["extra"] (e.g. shouldRefresh) go to the top level.
    """
    detail = exc.detail
    if exc.status_code >= 500:
        logger.warning(f"{exc.status_code} on {request.method} {request.url.path}: {detail.get('message')}")
    content = {
        "success": False,
        "message": detail.get("message", "An error occurred"),
        "error":   detail.get("error", {"code": ErrorCode.INTERNAL_SERVER_ERROR, "details": None, "field": None}),
        **detail.get("extra", {}),
    }
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one {field, message} entry per failed body/query field."""
    details = [
        {
            "field":   ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "unknown",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    first_field = details[0]["field"] if len(details) == 1 else None
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(
            "Validation error. Please check your input.",
            ErrorCode.VALIDATION_ERROR,
            details=details,
            field=first_field,
        ),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # Reached only when a unique/FK violation escapes the service layer
    logger.warning(f"IntegrityError on {request.method} {request.url.path}: {exc.orig.__class__.__name__}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_response("A record with this data already exists.", ErrorCode.DUPLICATE_ENTRY),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback; the client only ever sees a generic 500."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(
            "An unexpected error occurred. Please try again later.",
            ErrorCode.INTERNAL_SERVER_ERROR,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
