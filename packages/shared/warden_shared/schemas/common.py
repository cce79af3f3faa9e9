from enum import Enum
from typing import Optional

from pydantic import BaseModel


class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


# Roles allowed to act on the whole organization (create projects, manage members)
ORG_MANAGER_ROLES: frozenset[OrgRole] = frozenset({OrgRole.OWNER, OrgRole.ADMIN})


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


# Valid state transitions for invitations; every non-pending status is terminal
INVITATION_TRANSITIONS: dict[InvitationStatus, list[InvitationStatus]] = {
    InvitationStatus.PENDING: [
        InvitationStatus.ACCEPTED,
        InvitationStatus.REVOKED,
        InvitationStatus.EXPIRED,
    ],
    InvitationStatus.ACCEPTED: [],
    InvitationStatus.REVOKED: [],
    InvitationStatus.EXPIRED: [],
}


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    DUPLICATE_NAME = "DuplicateName"
    INVALID_PERMISSION = "InvalidPermission"
    ROLE_NOT_IN_PROJECT = "RoleNotInProject"
    ROLE_IN_USE = "RoleInUse"
    ALREADY_MEMBER = "AlreadyMember"
    LAST_OWNER = "LastOwner"
    ORGANIZATION_NOT_EMPTY = "OrganizationNotEmpty"
    ACCESS_DENIED = "AccessDenied"
    UNAUTHENTICATED = "Unauthenticated"
    EXPIRED = "Expired"
    ALREADY_RESOLVED = "AlreadyResolved"
    STORAGE_TIMEOUT = "StorageTimeout"
    STORAGE_CONFLICT = "StorageConflict"


class ErrorDetail(BaseModel):
    code: ErrorKind
    message: str
    status: int
    indeterminate: Optional[bool] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
