"""
Error taxonomy for the authorization core.

Every error carries a machine-readable kind and a human-readable message.
Callers (and the HTTP binding) branch on the kind, never on the message.
"""

from __future__ import annotations

from warden_shared.schemas.common import ErrorKind


class WardenError(Exception):
    kind: ErrorKind = ErrorKind.NOT_FOUND
    status_code: int = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.kind.value,
            "message": self.message,
            "status": self.status_code,
        }


# ---------------------------------------------------------------------------
# Business-rule violations (never retried)
# ---------------------------------------------------------------------------

class NotFound(WardenError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Not found"


class DuplicateName(WardenError):
    kind = ErrorKind.DUPLICATE_NAME
    status_code = 409
    default_message = "Name already taken"


class InvalidPermission(WardenError):
    kind = ErrorKind.INVALID_PERMISSION
    status_code = 422
    default_message = "Unknown permission"


class RoleNotInProject(WardenError):
    kind = ErrorKind.ROLE_NOT_IN_PROJECT
    status_code = 422
    default_message = "Role does not belong to this project"


class RoleInUse(WardenError):
    kind = ErrorKind.ROLE_IN_USE
    status_code = 409
    default_message = "Role is still assigned to members or pending invitations"


class AlreadyMember(WardenError):
    kind = ErrorKind.ALREADY_MEMBER
    status_code = 409
    default_message = "User is already a member of this project"


class LastOwner(WardenError):
    kind = ErrorKind.LAST_OWNER
    status_code = 409
    default_message = "Organization must keep at least one owner"


class OrganizationNotEmpty(WardenError):
    kind = ErrorKind.ORGANIZATION_NOT_EMPTY
    status_code = 409
    default_message = "Organization still has projects"


class Expired(WardenError):
    kind = ErrorKind.EXPIRED
    status_code = 410
    default_message = "Invitation has expired"


class AlreadyResolved(WardenError):
    kind = ErrorKind.ALREADY_RESOLVED
    status_code = 409
    default_message = "Invitation is no longer pending"


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------

class AccessDenied(WardenError):
    """Always terminal. The message never says which permission was missing."""

    kind = ErrorKind.ACCESS_DENIED
    status_code = 403
    default_message = "Insufficient permission"

    def __init__(self, message: str | None = None):
        super().__init__(self.default_message)


class Unauthenticated(WardenError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    default_message = "Authentication required"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class StorageTimeout(WardenError):
    """The store did not answer in time.

    For writes the outcome is unknown: ``indeterminate`` is True and the
    caller must re-read before assuming success or failure.
    """

    kind = ErrorKind.STORAGE_TIMEOUT
    status_code = 504
    default_message = "Storage operation timed out"

    def __init__(self, message: str | None = None, *, indeterminate: bool = True):
        self.indeterminate = indeterminate
        if message is None and indeterminate:
            message = "Storage operation timed out; the write may or may not have been applied"
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["indeterminate"] = self.indeterminate
        return data


class StorageConflict(WardenError):
    """Optimistic-concurrency signal; safe to retry with fresh reads."""

    kind = ErrorKind.STORAGE_CONFLICT
    status_code = 503
    default_message = "Concurrent modification detected, please retry"
