"""Shared fixtures: a credential vault and throwaway SQLite databases."""

import sqlite3
import uuid

import pytest

from docsql.core.sql_sandbox import CredentialVault, ConnectionProfile, PoolRegistry


@pytest.fixture
def vault():
    return CredentialVault(CredentialVault.generate_key())


@pytest.fixture
def sales_db(tmp_path):
    """SQLite file with an orders table of five rows."""
    path = tmp_path / "sales.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE orders (id INTEGER PRIMARY KEY, customer TEXT NOT NULL, region TEXT, amount REAL)")
    conn.executemany(
        "INSERT INTO orders (customer, region, amount) VALUES (?, ?, ?)",
        [
            ("alice", "north", 120.0),
            ("bob", "south", 80.5),
            ("carol", "north", 42.0),
            ("dave", "east", 300.0),
            ("erin", "north", 15.25),
        ],
    )
    conn.commit()
    conn.close()
    return path


def make_profile(vault, dsn, owner_id="owner-1", db_type="sqlite", profile_id=None):
    """Build an in-memory ConnectionProfile with an encrypted DSN."""
    return ConnectionProfile(
        id=profile_id or str(uuid.uuid4()),
        owner_id=owner_id,
        display_name="Sales",
        encrypted_dsn=vault.encrypt(dsn),
        db_type=db_type,
    )


@pytest.fixture
def profile_factory(vault):
    """Returns make_profile bound to the test vault."""
    def factory(dsn, **kwargs):
        return make_profile(vault, dsn, **kwargs)
    return factory


@pytest.fixture
def sales_profile(vault, sales_db):
    return make_profile(vault, f"sqlite:///{sales_db}")


@pytest.fixture
def registry(vault):
    pools = PoolRegistry(vault, pool_size=2, connect_timeout=5, pool_queue_timeout=2)
    yield pools
    pools.close_all()
