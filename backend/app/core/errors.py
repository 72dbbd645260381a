from __future__ import annotations

from fastapi import HTTPException


class DashboardError(Exception):
    """Base error for callable operations; carries a stable code and HTTP status."""

    code = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(DashboardError):
    """Raised when no caller identity accompanies a request."""

    code = "unauthenticated"
    status_code = 401


class InvalidArgument(DashboardError):
    """Raised for malformed or missing request fields."""

    code = "invalid-argument"
    status_code = 400


class NotFound(DashboardError):
    """Raised when a referenced document does not exist."""

    code = "not-found"
    status_code = 404


class PermissionDenied(DashboardError):
    """Raised when the caller lacks the required role or ownership."""

    code = "permission-denied"
    status_code = 403


class FailedPrecondition(DashboardError):
    """Raised when a state transition is not allowed from the current state."""

    code = "failed-precondition"
    status_code = 409


def to_http_exception(exc: DashboardError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message})
