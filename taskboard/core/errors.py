# taskboard/core/errors.py
from __future__ import annotations

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base for errors raised by the service layer."""

    code = "DOMAIN_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFound(DomainError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class PermissionDenied(DomainError):
    """Raised when the actor lacks a permission in the given context."""

    code = "PERMISSION_DENIED"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str,
        code: str | None = None,
        *,
        permission: str | None = None,
        role: str | None = None,
    ):
        super().__init__(message, code)
        self.permission = permission
        self.role = role


class Conflict(DomainError):
    code = "CONFLICT"
    http_status = status.HTTP_409_CONFLICT


class LastOwnerError(Conflict):
    code = "LAST_OWNER"


class VersionConflict(Conflict):
    code = "VERSION_CONFLICT"


class InvalidOperation(DomainError):
    code = "INVALID_OPERATION"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvitationError(InvalidOperation):
    code = "INVALID_TOKEN"


def to_http(e: DomainError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.message, headers={"X-Error-Code": e.code})
