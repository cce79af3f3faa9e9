"""
Permission catalog.

The closed set of grantable permissions. Anything outside this enum is
rejected at every boundary (request schemas, role writes, stored rows and
cache entries) instead of being carried around as free text.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

CATALOG_VERSION = "2024.1"


class Permission(str, Enum):
    DATABASE_READ = "database.read"
    DATABASE_WRITE = "database.write"
    STORAGE_READ = "storage.read"
    STORAGE_WRITE = "storage.write"
    FUNCTIONS_READ = "functions.read"
    FUNCTIONS_DEPLOY = "functions.deploy"
    AUTH_READ = "auth.read"
    AUTH_MANAGE = "auth.manage"
    TEAM_READ = "team.read"
    TEAM_MANAGE = "team.manage"
    SETTINGS_READ = "settings.read"
    SETTINGS_MANAGE = "settings.manage"
    BILLING_MANAGE = "billing.manage"
    LOGS_READ = "logs.read"


_CATALOG: frozenset[Permission] = frozenset(Permission)
_VALUES: frozenset[str] = frozenset(p.value for p in Permission)


class UnknownPermissionError(ValueError):
    """Raised when a value is not part of the catalog."""

    def __init__(self, values: Iterable[str]):
        self.values = sorted(values)
        super().__init__(f"Unknown permission(s): {', '.join(self.values)}")


def all_permissions() -> frozenset[Permission]:
    return _CATALOG


def is_valid(value: object) -> bool:
    if isinstance(value, Permission):
        return True
    return isinstance(value, str) and value in _VALUES


def parse_permissions(values: Iterable[str | Permission]) -> frozenset[Permission]:
    """Convert raw values into catalog members.

    Raises UnknownPermissionError listing every rejected value; nothing is
    silently dropped.
    """
    items = list(values)
    bad = {str(v) for v in items if not is_valid(v)}
    if bad:
        raise UnknownPermissionError(bad)
    return frozenset(Permission(v) for v in items)


def sorted_permissions(values: Iterable[Permission]) -> list[Permission]:
    """Stable ordering for storage and responses."""
    return sorted(set(values), key=lambda p: p.value)
