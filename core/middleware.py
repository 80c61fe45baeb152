"""
Application Middleware for the Vanity & User Lookup API.

Cross-cutting request handling that every route shares. Route handlers render
their own error envelopes for expected failures; the middleware here only
deals with correlation, timing, headers and whatever escapes a handler.

Key Middleware Components:
- `CorrelationMiddleware`: Assigns a correlation ID to every request (reusing
  `X-Correlation-ID` or `X-Request-ID` when the caller sends one) and echoes it
  back in the response headers.
- `ErrorHandlingMiddleware`: Last line of defence. Converts any exception that
  escapes the routing layer into a JSON error body instead of a bare 500.
- `PerformanceMiddleware`: Logs request start and completion, adds an
  `X-Process-Time` header (milliseconds) and warns about slow requests.
- `SecurityHeadersMiddleware`: Adds standard security headers to every
  response.

Ordering: `main.create_app` adds these so that correlation runs outermost
(after CORS), which makes the correlation ID available to every log line the
inner layers write.
"""

import time
import uuid
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .exceptions import RateLimitedError, VanityAPIException
from .logging_config import get_logger, mask_secret, set_correlation_id

logger = get_logger("core.middleware")

TURNSTILE_HEADER = "X-Turnstile-Token"
SLOW_REQUEST_SECONDS = 1.0


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for centralized error handling"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except VanityAPIException as e:
            log = logger.warning if e.status_code < 500 else logger.error
            log(
                f"Application error: {e.message}",
                extra={
                    "error_type": type(e).__name__,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return exception_response(e, getattr(request.state, "correlation_id", None))

        except HTTPException as e:
            logger.warning(
                f"HTTP exception: {e.status_code} - {e.detail}",
                extra={
                    "status_code": e.status_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return create_error_response(
                message=str(e.detail),
                error_code=f"HTTP_{e.status_code}",
                status_code=e.status_code,
                correlation_id=getattr(request.state, "correlation_id", None),
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )
            return create_error_response(
                message="Internal server error",
                error_code="INTERNAL_ERROR",
                status_code=500,
                correlation_id=getattr(request.state, "correlation_id", None),
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for performance monitoring and logging"""

    def __init__(self, app: ASGIApp, slow_threshold: float = SLOW_REQUEST_SECONDS):
        super().__init__(app)
        self.slow_threshold = slow_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        request_context = {
            "method": request.method,
            "path": request.url.path,
            "user_agent": request.headers.get("user-agent"),
            "client_ip": request.client.host if request.client else None,
        }
        # The bot-verification token is only recorded, never checked here
        turnstile_token = request.headers.get(TURNSTILE_HEADER)
        if turnstile_token:
            request_context["turnstile_token"] = mask_secret(turnstile_token)

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra=request_context,
        )

        response = await call_next(request)

        process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Process-Time"] = str(process_time_ms)

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": process_time_ms,
            },
        )

        if process_time_ms > self.slow_threshold * 1000:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": process_time_ms,
                    "threshold_exceeded": True,
                },
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers to every response"""

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in self.SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


def create_error_response(
    message: str,
    error_code: str,
    status_code: int = 400,
    correlation_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Create a standardized error response"""

    content: Dict[str, Any] = {"error": message, "code": error_code}
    if extra:
        content.update(extra)
    if correlation_id:
        content["correlation_id"] = correlation_id

    return JSONResponse(status_code=status_code, content=content, headers=headers)


def exception_response(
    exc: VanityAPIException, correlation_id: Optional[str] = None
) -> JSONResponse:
    """Render an application exception outside of any route envelope"""
    headers = None
    extra = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
        extra = {"retryAfter": exc.retry_after}

    return create_error_response(
        message=exc.message,
        error_code=exc.error_code,
        status_code=exc.status_code,
        correlation_id=correlation_id,
        headers=headers,
        extra=extra,
    )
