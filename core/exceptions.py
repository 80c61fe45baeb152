"""
Custom Exception Classes for the Vanity & User Lookup API.

Every failure the proxy can report is a `VanityAPIException` subclass carrying
a message, a stable `error_code`, an HTTP `status_code` and an optional
`details` dictionary. Route handlers translate these into the JSON envelope of
the route that raised them; anything that escapes is rendered by the global
error handlers.

Key Components:
- `VanityAPIException`: The root of the hierarchy.
- Client-caused errors: `ValidationError` (400), `RateLimitedError` (429).
- Upstream outcomes: `NotFoundError` (404), `UpstreamAuthError` (401),
  `UpstreamContractError` (500), `UpstreamHTTPError` (pass-through status).
- Transient failures: `UpstreamTimeoutError` (408) and `UpstreamNetworkError`
  (500). Only these are marked `retryable`.
- Server misconfiguration: `ConfigurationError` (500).
"""

from typing import Optional, Dict, Any


class VanityAPIException(Exception):
    """Base exception class for the lookup API"""

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str = "VANITY_API_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(VanityAPIException):
    """Raised when a route parameter fails validation"""

    status_code = 400

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            reason,
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class RateLimitedError(VanityAPIException):
    """Raised when either our own limiter or the upstream API rejects a call"""

    status_code = 429

    def __init__(
        self,
        retry_after: int,
        message: Optional[str] = None,
        source: str = "local",
    ):
        self.retry_after = max(1, int(retry_after))
        super().__init__(
            message
            or f"Rate limited. Retry after {self.retry_after} seconds",
            "RATE_LIMIT_EXCEEDED",
            {"retry_after": self.retry_after, "source": source},
        )


class NotFoundError(VanityAPIException):
    """Raised when the upstream resource does not exist"""

    status_code = 404

    def __init__(self, message: str, resource: str, identifier: str):
        super().__init__(
            message,
            "NOT_FOUND",
            {"resource": resource, "identifier": identifier},
        )


class UpstreamAuthError(VanityAPIException):
    """Raised when the upstream API rejects our credential"""

    status_code = 401

    def __init__(self, message: str = "Discord API authentication failed"):
        super().__init__(message, "UPSTREAM_AUTH_ERROR", {"upstream_status": 401})


class UpstreamContractError(VanityAPIException):
    """Raised when a 2xx upstream payload lacks required fields"""

    status_code = 500

    def __init__(
        self, message: str = "Invalid response from Discord API", missing: str = ""
    ):
        super().__init__(message, "UPSTREAM_CONTRACT_ERROR", {"missing": missing})


class UpstreamHTTPError(VanityAPIException):
    """Raised for any other non-2xx upstream response"""

    def __init__(self, upstream_status: int, message: str):
        self.status_code = (
            upstream_status if 400 <= upstream_status <= 599 else 500
        )
        super().__init__(
            message, "UPSTREAM_HTTP_ERROR", {"upstream_status": upstream_status}
        )


class UpstreamTimeoutError(VanityAPIException):
    """Raised when the upstream call exceeds its deadline"""

    status_code = 408
    retryable = True

    def __init__(self, timeout: float, message: str = "Request timeout"):
        super().__init__(message, "UPSTREAM_TIMEOUT", {"timeout_seconds": timeout})


class UpstreamNetworkError(VanityAPIException):
    """Raised when the upstream call fails at the transport level"""

    status_code = 500
    retryable = True

    def __init__(self, reason: str):
        super().__init__(
            "Failed to reach Discord API", "UPSTREAM_NETWORK_ERROR", {"reason": reason}
        )


class ConfigurationError(VanityAPIException):
    """Raised when the server is missing required configuration"""

    status_code = 500

    def __init__(self, setting: str, message: str = "Bot token not configured"):
        super().__init__(message, "CONFIGURATION_ERROR", {"setting": setting})

