"""Error taxonomy for the API surface.

Every exception carries the HTTP status and a client-safe message; the app
renders them through one exception handler.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, List, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.headers = dict(headers or {})
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class AuthenticationRequired(ApiError):
    status_code = 401
    default_message = "Authentication required"


class InsufficientPermissions(ApiError):
    status_code = 403
    default_message = "Insufficient permissions"


class InvalidRequest(ApiError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class MethodNotAllowed(ApiError):
    status_code = 405
    default_message = "Method not allowed"


class InternalError(ApiError):
    status_code = 500


class RateLimitExceeded(ApiError):
    """Raised by the limiter; carries the absolute reset time (unix seconds)."""

    status_code = 429

    def __init__(self, limit: int, reset_time: int, endpoint: str, *, now: Optional[float] = None):
        self.limit = limit
        self.reset_time = int(reset_time)
        self.endpoint = endpoint
        self.retry_after = self.seconds_until_reset(now)
        super().__init__(
            f"Rate limit exceeded. Try again in {self.retry_after} seconds.",
            headers={
                "Retry-After": str(self.retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(self.reset_time),
            },
        )

    def seconds_until_reset(self, now: Optional[float] = None) -> int:
        current = time.time() if now is None else now
        return max(0, int(self.reset_time - int(current)))

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": "rate_limit_exceeded",
            "message": self.message,
            "limit": self.limit,
            "reset_time": self.reset_time,
            "retry_after": self.retry_after,
        }


class AnalyticsPrivacyViolation(ApiError):
    """An analytics payload tried to leave the service carrying PII."""

    status_code = 403

    def __init__(self, violations: List[str], endpoint: str, *, production: bool = True):
        self.violations = list(violations)
        self.endpoint = endpoint
        self.production = production
        if production:
            message = "Analytics response blocked: privacy policy violation"
        else:
            message = "PII detected in analytics response: " + " | ".join(self.violations)
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": "privacy_violation",
            "message": self.message,
        }
        if not self.production:
            body["violations"] = self.violations
            body["endpoint"] = self.endpoint
            body["timestamp"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return body
