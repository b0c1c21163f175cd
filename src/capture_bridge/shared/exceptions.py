"""
Custom exception classes for the application.
"""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            details: Additional error details.
            status_code: HTTP status to report to the caller.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class UpstreamError(AppException):
    """Raised when a collaborator API answers with an error status, or not at all."""

    def __init__(
        self,
        status_code: int,
        url: str,
        body: Any = None,
        message: str | None = None,
        code: str = "UPSTREAM_ERROR",
    ) -> None:
        self.url = url
        self.body = body
        super().__init__(
            message or f"Upstream request failed with status {status_code}",
            code,
            {"upstream": {"status": status_code, "url": url, "body": body}},
            status_code=status_code,
        )


class AuthError(AppException):
    """Raised when no credential can be resolved or a grant call fails."""

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "AUTH_ERROR",
        *,
        status_code: int = 500,
        upstream: dict[str, Any] | None = None,
    ) -> None:
        details = {"upstream": upstream} if upstream else None
        super().__init__(message, code, details, status_code=status_code)


class NotAuthorizedError(AppException):
    """Raised when the delegated OAuth flow has not been completed (or has lapsed)."""

    def __init__(
        self,
        message: str = "Not authorized; visit the login endpoint to (re-)authorize",
        authorize_path: str = "/oauth/login",
    ) -> None:
        super().__init__(
            message,
            "NOT_AUTHORIZED",
            {"authorize": authorize_path},
            status_code=401,
        )


class ValidationError(AppException):
    """Raised when a required request parameter is missing or malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "VALIDATION_ERROR", details, status_code=400)


class MissingOrgIdError(AppException):
    """Raised when an operation needs an org id that is neither configured nor derivable."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            "Missing org id: configure CAPTURE_BRIDGE_ORG_ID",
            "MISSING_ORG_ID",
            {"operation": operation},
            status_code=500,
        )
