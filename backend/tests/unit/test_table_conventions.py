"""Test database table conventions and constraints.

Verifies the engine tables follow the store conventions:
- UUID primary key named id
- Creation timestamp on every table, updated_at on mutable tables
- Tenant and principal lookups backed by indexes
- Uniqueness rules enforced by the store, not only in code

These tests inspect the declared metadata and need no database.
"""

import pytest
from sqlalchemy import UniqueConstraint, Uuid

import models  # noqa: F401
from models.base import Base

ENGINE_TABLES = [
    "role",
    "permission",
    "role_permission",
    "role_assignment",
    "user_profile",
    "access_control_cache",
    "audit_log",
    "tenant_key",
]

# Tables whose rows are edited in place
MUTABLE_TABLES = ["role", "permission"]

# Creation timestamp column per table
CREATED_COLUMN = {
    "role_assignment": "assigned_at",
    "access_control_cache": "cached_at",
}


def table(name):
    return Base.metadata.tables[name]


def indexed_columns(name):
    indexed = set()
    for index in table(name).indexes:
        indexed.add(tuple(column.name for column in index.columns))
    return indexed


class TestTableConventions:

    def test_every_engine_table_is_registered(self):
        assert set(ENGINE_TABLES) <= set(Base.metadata.tables)

    @pytest.mark.parametrize("name", ENGINE_TABLES)
    def test_uuid_primary_key(self, name):
        [pk] = table(name).primary_key.columns
        assert pk.name == "id"
        assert isinstance(pk.type, Uuid)

    @pytest.mark.parametrize("name", ENGINE_TABLES)
    def test_creation_timestamp(self, name):
        column = table(name).columns[CREATED_COLUMN.get(name, "created_at")]
        assert column.nullable is False

    @pytest.mark.parametrize("name", MUTABLE_TABLES)
    def test_mutable_tables_track_updates(self, name):
        assert "updated_at" in table(name).columns

    def test_audit_log_is_append_only(self):
        assert "updated_at" not in table("audit_log").columns


class TestIndexes:

    def test_audit_log_tenant_time_index(self):
        assert ("tenant_id", "created_at") in indexed_columns("audit_log")

    def test_assignment_lookups(self):
        assert ("user_id",) in indexed_columns("role_assignment")
        assert ("user_id", "role_id", "organization_id") in indexed_columns("role_assignment")

    def test_cache_lookups(self):
        assert ("user_id",) in indexed_columns("access_control_cache")
        assert table("access_control_cache").columns["context_hash"].unique is True


class TestUniqueness:

    @staticmethod
    def unique_sets(name):
        return {
            tuple(column.name for column in constraint.columns)
            for constraint in table(name).constraints
            if isinstance(constraint, UniqueConstraint)
        }

    def test_role_name_per_profession_and_organization(self):
        assert ("name", "profession", "organization_id") in self.unique_sets("role")

    def test_permission_dedup_key(self):
        assert ("resource", "scope", "actions_key") in self.unique_sets("permission")

    def test_one_link_per_role_and_permission(self):
        assert ("role_id", "permission_id") in self.unique_sets("role_permission")

    def test_one_active_assignment(self):
        [index] = [i for i in table("role_assignment").indexes if i.name == "uq_role_assignment_active"]
        assert index.unique is True

    def test_tenant_key_versions(self):
        assert ("tenant_id", "version") in self.unique_sets("tenant_key")
