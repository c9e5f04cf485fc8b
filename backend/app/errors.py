"""
SkillBridge Session Integrity - Error Taxonomy

Every failure the subsystem reports to a caller is one of these.
The HTTP status code travels with the exception; app.main maps it to a
JSON response.
"""
from typing import Any, Dict, Optional


class SessionIntegrityError(Exception):
    """Base class for all domain errors."""
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequestError(SessionIntegrityError):
    """Input outside accepted bounds (e.g. too many evidence files)."""
    status_code = 400
    code = "INVALID_REQUEST"


class NotFoundError(SessionIntegrityError):
    """Class, session or report does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(SessionIntegrityError):
    """Actor is not allowed: non-member, non-owner, or terminal report."""
    status_code = 403
    code = "FORBIDDEN"


class ReportTerminalError(ForbiddenError):
    """Mutation attempted on a RESOLVED or DISMISSED report."""
    code = "REPORT_TERMINAL"


class ConflictError(SessionIntegrityError):
    """Duplicate report for the same class/session/reporter."""
    status_code = 409
    code = "CONFLICT"


class WindowViolationError(SessionIntegrityError):
    """Report filed before the session started or after the window closed."""
    status_code = 422
    code = "WINDOW_VIOLATION"


class UpstreamFailureError(SessionIntegrityError):
    """Blob store (or another collaborator) failed; the operation was aborted."""
    status_code = 502
    code = "UPSTREAM_FAILURE"


class MalformedEventError(SessionIntegrityError):
    """
    Presence event that cannot be interpreted.
    Logged and dropped by the webhook path, never returned to the provider.
    """
    status_code = 400
    code = "MALFORMED_EVENT"


class SignatureError(SessionIntegrityError):
    """Webhook signature missing or wrong. The only webhook rejection."""
    status_code = 401
    code = "INVALID_SIGNATURE"
