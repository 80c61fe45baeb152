"""
API Endpoints for Vanity & User Lookup.

This module defines the public REST endpoints the browser application calls.
Each endpoint validates and dispatches to `LookupService`, then renders the
result (or the failure) in that route's stable response envelope.

Endpoints Provided:
- `/api/vanity/{code}` (GET, POST): Checks whether a vanity invite code is
  free. A taken code comes back with a summary of the guild that holds it.
- `/api/users/{user_id}`: Looks up a user's public profile.
- `/api/stats`: Process-local lookup counters.

Architectural Design:
- Dependency Injection: The lookup service and the caller's client key are
  injected with `Depends`, so tests can run the full stack against a fake
  upstream session.
- Error Envelopes: Expected failures never leave a route as exceptions. A
  vanity failure is rendered as `{available: false, error, guild: null}` and a
  user failure as `{error, user: null}`, with the exception's status code and
  a `Retry-After` header on 429. Anything unexpected is left to
  `ErrorHandlingMiddleware`.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.exceptions import RateLimitedError, VanityAPIException
from core.logging_config import get_logger
from core.models import UserLookupResult, VanityCheckResult
from services.lookup_service import LookupService

from .dependencies import get_client_id, get_lookup_service

logger = get_logger(__name__)


router = APIRouter(prefix="/api", tags=["Lookup"])


def render(
    result: BaseModel, status_code: int = 200, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    content: Dict[str, Any] = result.model_dump(by_alias=True)
    if content.get("retryAfter") is None:
        content.pop("retryAfter", None)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _log_failure(route: str, subject: str, exc: VanityAPIException) -> None:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{route} failed for {subject}: {exc.message}",
        extra={
            "error_type": type(exc).__name__,
            "error_code": exc.error_code,
            "status_code": exc.status_code,
        },
    )


def _retry_headers(exc: VanityAPIException) -> Optional[Dict[str, str]]:
    if isinstance(exc, RateLimitedError):
        return {"Retry-After": str(exc.retry_after)}
    return None


@router.api_route("/vanity/{code}", methods=["GET", "POST"])
async def check_vanity(
    code: str,
    service: LookupService = Depends(get_lookup_service),
    client_id: str = Depends(get_client_id),
):
    """Report whether a vanity invite code is available"""
    try:
        result = await service.check_vanity(code, client_id)
    except VanityAPIException as e:
        _log_failure("Vanity check", code, e)
        return render(
            VanityCheckResult(
                available=False,
                error=e.message,
                guild=None,
                retry_after=getattr(e, "retry_after", None),
            ),
            status_code=e.status_code,
            headers=_retry_headers(e),
        )

    return render(result)


@router.get("/users/{user_id}")
async def lookup_user(
    user_id: str,
    service: LookupService = Depends(get_lookup_service),
    client_id: str = Depends(get_client_id),
):
    """Look up a user's public profile"""
    try:
        result = await service.lookup_user(user_id, client_id)
    except VanityAPIException as e:
        _log_failure("User lookup", user_id, e)
        return render(
            UserLookupResult(
                error=e.message,
                user=None,
                retry_after=getattr(e, "retry_after", None),
            ),
            status_code=e.status_code,
            headers=_retry_headers(e),
        )

    return render(result)


@router.get("/stats")
async def get_stats(service: LookupService = Depends(get_lookup_service)):
    return service.stats.to_dict()
