"""
errors.py

Error kinds surfaced by the caching and persistence layers.
Each carries the HTTP status the API layer answers with.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500
    kind = "AppError"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


class UpstreamUnavailable(AppError):
    """External catalog or generator unreachable, timed out, or answered non-2xx."""
    status_code = 503
    kind = "UpstreamUnavailable"

    def __init__(self, message: str = "", status: Optional[int] = None, **context: Any):
        super().__init__(message, **context)
        self.status = status


class NotConfigured(AppError):
    status_code = 500
    kind = "NotConfigured"


class ValidationFailed(AppError):
    status_code = 400
    kind = "ValidationFailed"


class Unauthorized(AppError):
    status_code = 401
    kind = "Unauthorized"


class NotFound(AppError):
    status_code = 404
    kind = "NotFound"


class PersistenceFailed(AppError):
    status_code = 500
    kind = "PersistenceFailed"


class RateLimitExceeded(UpstreamUnavailable):
    """Raised when the local quota for an upstream service is used up."""
    kind = "RateLimitExceeded"

    def __init__(self, message: str, service: str = None, user_id: str = None, status: Dict = None):
        super().__init__(message)
        self.service = service
        self.user_id = user_id
        self.quota = status or {}
