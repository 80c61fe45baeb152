"""
Exception handlers registered on the FastAPI application.

Route handlers already turn expected failures into their own response
envelopes. These handlers cover what reaches the framework: application
exceptions raised outside a route body (for example from a dependency) and
FastAPI's request validation errors, which this API reports as 400.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.exceptions import VanityAPIException
from core.logging_config import get_logger
from core.middleware import create_error_response, exception_response

logger = get_logger(__name__)


async def vanity_exception_handler(
    request: Request, exc: VanityAPIException
) -> JSONResponse:
    logger.warning(
        f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.error_code, "status_code": exc.status_code},
    )
    return exception_response(exc, getattr(request.state, "correlation_id", None))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.warning(
        f"Request validation failed on {request.url.path}: {message}",
        extra={"error_count": len(errors)},
    )
    return create_error_response(
        message=message,
        error_code="VALIDATION_ERROR",
        status_code=400,
        correlation_id=getattr(request.state, "correlation_id", None),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VanityAPIException, vanity_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
