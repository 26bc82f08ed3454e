"""
OGFrame Errors

Every failure the request pipeline can surface is an ``OGFrameError`` carrying
a machine-readable ``code``, an HTTP status and optional structured details.
The HTTP layer turns these into ``{"error", "code", "details"}`` bodies.
"""

from typing import Any, Dict, Optional


class OGFrameError(Exception):
    """Base class for all pipeline errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInputError(OGFrameError):
    """Malformed, missing or oversized input."""

    code = "INVALID_URL"
    status_code = 400


class UnauthorizedError(OGFrameError):
    """Key missing, unknown or expired."""

    code = "INVALID_KEY"
    status_code = 401


class ForbiddenError(OGFrameError):
    """Authenticated, but not allowed to use this operation."""

    code = "FORBIDDEN"
    status_code = 403


class DomainNotAllowedError(OGFrameError):
    code = "DOMAIN_NOT_ALLOWED"
    status_code = 403

    def __init__(self, domain: str, allowed_domains: list):
        super().__init__(
            f"Domain {domain} not allowed for this key",
            details={"domain": domain, "allowed_domains": list(allowed_domains)},
        )
        self.domain = domain


class NotFoundError(OGFrameError):
    code = "NOT_FOUND"
    status_code = 404


class RateLimitExceeded(OGFrameError):
    """A rate counter went over its limit within the live window."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, scope: str, limit: int, window_seconds: int, retry_after: int):
        super().__init__(
            f"Rate limit exceeded for {scope}",
            details={
                "limit": limit,
                "window": f"{window_seconds} seconds",
                "retry_after": retry_after,
            },
        )
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after


class CaptureError(OGFrameError):
    """The screenshot engine failed to produce an image."""

    code = "SCREENSHOT_FAILED"
    status_code = 500


class CaptureTimeout(CaptureError):
    code = "SCREENSHOT_TIMEOUT"
    status_code = 504


class CaptureNetworkError(CaptureError):
    """Target unreachable: DNS, TLS or connection failure."""

    code = "SCREENSHOT_NETWORK"
    status_code = 502


class CaptureEngineError(CaptureError):
    code = "SCREENSHOT_FAILED"
    status_code = 500


class InternalError(OGFrameError):
    code = "INTERNAL_ERROR"
    status_code = 500
