"""
Permission catalog tests (no DB needed).
"""

from __future__ import annotations

import pytest

from warden_shared.schemas.permissions import (
    CATALOG_VERSION,
    Permission,
    UnknownPermissionError,
    all_permissions,
    is_valid,
    parse_permissions,
    sorted_permissions,
)


class TestCatalog:
    def test_catalog_is_closed_set(self):
        catalog = all_permissions()
        assert len(catalog) == 14
        assert Permission.TEAM_MANAGE in catalog
        assert CATALOG_VERSION == "2024.1"

    def test_is_valid(self):
        assert is_valid("database.read")
        assert is_valid(Permission.LOGS_READ)
        assert not is_valid("database.drop")
        assert not is_valid(42)

    def test_parse_returns_members(self):
        parsed = parse_permissions(["team.read", "team.read", Permission.LOGS_READ])
        assert parsed == frozenset({Permission.TEAM_READ, Permission.LOGS_READ})

    def test_parse_rejects_every_unknown_value(self):
        with pytest.raises(UnknownPermissionError) as exc_info:
            parse_permissions(["team.read", "root", "sudo"])
        assert exc_info.value.values == ["root", "sudo"]

    def test_parse_empty(self):
        assert parse_permissions([]) == frozenset()

    def test_sorted_is_stable_by_value(self):
        ordered = sorted_permissions({Permission.TEAM_READ, Permission.AUTH_READ, Permission.LOGS_READ})
        assert [p.value for p in ordered] == ["auth.read", "logs.read", "team.read"]
