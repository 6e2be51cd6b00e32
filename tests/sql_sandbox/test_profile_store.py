"""Tests for connection profile storage and schema introspection."""

import pytest

from docsql.core.db import DatabaseManager
from docsql.core.exceptions import NotFoundError, ValidationError
from docsql.core.sql_sandbox import ProfileStore, SchemaIntrospector


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'meta.db'}")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def store(db_manager, vault, registry):
    return ProfileStore(db_manager, vault, pool_registry=registry)


class TestProfileStore:
    """Tests for ProfileStore."""

    def test_create_encrypts_dsn(self, store, vault, sales_db):
        dsn = f"sqlite:///{sales_db}"
        profile = store.create_profile("owner-1", "  Sales  ", dsn)
        assert profile.display_name == "Sales"
        assert profile.db_type == "sqlite"
        assert profile.encrypted_dsn != dsn
        assert vault.decrypt(profile.encrypted_dsn) == dsn

    def test_repr_hides_credentials(self, store):
        profile = store.create_profile("owner-1", "Prod", "postgresql://u:topsecret@db:5432/x")
        assert "topsecret" not in repr(profile)
        assert profile.encrypted_dsn not in repr(profile)

    def test_invalid_dsn_not_stored(self, store):
        with pytest.raises(ValidationError):
            store.create_profile("owner-1", "Bad", "redis://localhost")
        assert store.list_profiles("owner-1") == []

    def test_blank_name_rejected(self, store, sales_db):
        with pytest.raises(ValidationError):
            store.create_profile("owner-1", " ", f"sqlite:///{sales_db}")

    def test_owner_isolation(self, store, sales_db):
        """Test that another owner can neither see nor delete a profile."""
        profile = store.create_profile("owner-1", "Sales", f"sqlite:///{sales_db}")
        assert store.get_profile("owner-2", profile.id) is None
        assert store.list_profiles("owner-2") == []
        assert not store.delete_profile("owner-2", profile.id)
        with pytest.raises(NotFoundError):
            store.require_profile("owner-2", profile.id)

    def test_list_oldest_first(self, store, sales_db):
        first = store.create_profile("owner-1", "A", f"sqlite:///{sales_db}")
        second = store.create_profile("owner-1", "B", f"sqlite:///{sales_db}")
        ids = [p.id for p in store.list_profiles("owner-1")]
        assert set(ids) == {first.id, second.id}
        assert len(ids) == 2

    def test_delete_closes_pool(self, store, registry, sales_db):
        profile = store.create_profile("owner-1", "Sales", f"sqlite:///{sales_db}")
        registry.get_pool(profile)
        assert store.delete_profile("owner-1", profile.id)
        assert registry.get_stats()["total_pools"] == 0
        assert store.get_profile("owner-1", profile.id) is None


class TestSchemaIntrospector:
    """Tests for SchemaIntrospector."""

    def test_reads_tables_and_columns(self, registry, sales_profile):
        schema = SchemaIntrospector(registry, cache_ttl_seconds=300).get_schema_context(sales_profile)
        assert schema.table_names == ["orders"]
        columns = {c.name: c for c in schema.tables[0].columns}
        assert set(columns) == {"id", "customer", "region", "amount"}
        assert columns["id"].primary_key
        assert not columns["customer"].nullable

    def test_cached(self, registry, sales_profile):
        introspector = SchemaIntrospector(registry, cache_ttl_seconds=300)
        assert introspector.get_schema_context(sales_profile) is introspector.get_schema_context(sales_profile)

    def test_force_refresh(self, registry, sales_profile):
        introspector = SchemaIntrospector(registry, cache_ttl_seconds=300)
        first = introspector.get_schema_context(sales_profile)
        assert introspector.get_schema_context(sales_profile, force_refresh=True) is not first

    def test_prompt_format_mentions_columns(self, registry, sales_profile):
        schema = SchemaIntrospector(registry).get_schema_context(sales_profile)
        rendered = schema.format_for_prompt()
        assert "orders" in rendered
        assert "amount" in rendered
