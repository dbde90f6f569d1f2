from typing import Any, Dict, Optional


# -----------------------------------------------------------------------------
# ERRORS MODULE
# Purpose: typed application errors that the HTTP layer maps to status codes.
# Why: messages on these errors are safe to show to the store owner; the
# underlying cause is chained with `raise ... from err` and only reaches logs.
# -----------------------------------------------------------------------------


class AppError(Exception):
    """Base class for errors that carry an HTTP status and a public code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {"code": self.code, "message": self.message},
        }


class ValidationError(AppError):
    """Bad caller input (store id format, empty or too long question)."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(AppError):
    status_code = 401
    code = "AUTH_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class AIError(AppError):
    """Anything that goes wrong downstream of the text generation call."""

    status_code = 502
    code = "AI_ERROR"


class QueryExecutionError(AIError):
    """
    A classified failure while running generated SQL.

    kind is one of: timeout, permission, syntax, unknown.
    """

    def __init__(self, message: str, kind: str = "unknown"):
        super().__init__(message)
        self.kind = kind
