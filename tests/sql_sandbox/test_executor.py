"""End-to-end tests for the sandbox executor against SQLite."""

import sqlite3
import time
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from docsql.core.exceptions import DecryptionError
from docsql.core.sql_sandbox import ConnectionProfile, PoolRegistry, SandboxExecutor
from docsql.core.sql_sandbox.executor import _StatementHandle


class SlowCheckoutRegistry(PoolRegistry):
    """Registry whose checkouts wait before handing out a connection."""

    def __init__(self, *args, delay=0.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    @contextmanager
    def connection(self, profile):
        time.sleep(self.delay)
        with super().connection(profile) as conn:
            yield conn


@pytest.fixture
def executor(registry):
    sandbox = SandboxExecutor(registry, row_limit=3, statement_timeout_ms=2000, max_workers=2)
    yield sandbox
    sandbox.close()


class TestExecuteQuery:
    """Tests for execute_query."""

    def test_select_returns_rows(self, executor, sales_profile):
        result = executor.execute_query(sales_profile, "SELECT customer, amount FROM orders WHERE region = 'east'")
        assert result.success
        assert result.rows == [{"customer": "dave", "amount": 300.0}]
        assert result.row_count == 1
        assert [c.name for c in result.columns] == ["customer", "amount"]
        assert not result.limited

    def test_count(self, executor, sales_profile):
        result = executor.execute_query(sales_profile, "SELECT COUNT(*) AS n FROM orders WHERE region = 'north'")
        assert result.success
        assert result.rows[0]["n"] == 3

    def test_row_cap_applied(self, executor, sales_profile):
        """Test that a query without LIMIT is capped and flagged."""
        result = executor.execute_query(sales_profile, "SELECT * FROM orders ORDER BY id")
        assert result.success
        assert result.row_count == 3
        assert result.limited
        assert result.query.endswith("LIMIT 3")

    def test_per_call_row_limit(self, executor, sales_profile):
        result = executor.execute_query(sales_profile, "SELECT * FROM orders", row_limit=5)
        assert result.row_count == 5

    def test_rejected_query_never_runs(self, executor, sales_profile, sales_db):
        """Test that a write is rejected before touching the database."""
        result = executor.execute_query(sales_profile, "DELETE FROM orders")
        assert not result.success
        assert result.error.startswith("Query validation failed")
        assert "Forbidden keyword: DELETE" in result.error

        conn = sqlite3.connect(sales_db)
        assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 5
        conn.close()

    def test_database_error_is_a_failed_result(self, executor, sales_profile):
        result = executor.execute_query(sales_profile, "SELECT * FROM missing_table")
        assert not result.success
        assert "no such table" in result.error

    def test_percent_sign_in_literal(self, executor, sales_profile):
        """Test that % is not treated as a parameter placeholder."""
        result = executor.execute_query(sales_profile, "SELECT customer FROM orders WHERE customer LIKE 'a%'")
        assert result.success
        assert result.rows == [{"customer": "alice"}]

    def test_timeout(self, executor, sales_profile):
        """Test that a runaway statement is stopped and reported as a timeout."""
        sql = (
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
            "SELECT COUNT(*) FROM c"
        )
        result = executor.execute_query(sales_profile, sql, timeout_ms=100)
        assert not result.success
        assert result.error == "Query timed out after 100ms"

    def test_connection_released_after_failures(self, executor, sales_profile, registry):
        """Test that failing statements do not leak checked-out connections."""
        for _ in range(4):
            executor.execute_query(sales_profile, "SELECT * FROM missing_table")
        assert executor.execute_query(sales_profile, "SELECT 1 AS one").success
        assert registry.get_stats()["pools"][0]["checked_out"] == 0

    def test_undecryptable_profile_raises(self, executor, sales_profile):
        broken = ConnectionProfile(
            id=sales_profile.id + "-x",
            owner_id=sales_profile.owner_id,
            display_name="Broken",
            encrypted_dsn="AAAA",
            db_type="sqlite",
        )
        with pytest.raises(DecryptionError):
            executor.execute_query(broken, "SELECT 1")


class TestHelpers:
    """Tests for connection test, preview and row count."""

    def test_test_connection(self, executor, sales_profile):
        result = executor.test_connection(sales_profile)
        assert result.success
        assert result.rows == [{"test": 1}]

    def test_preview_table(self, executor, sales_profile):
        result = executor.preview_table(sales_profile, "orders", limit=2)
        assert result.success
        assert result.row_count == 2

    def test_preview_rejects_bad_identifier(self, executor, sales_profile):
        result = executor.preview_table(sales_profile, "orders; DROP TABLE orders")
        assert not result.success
        assert "Invalid table name" in result.error

    def test_row_count(self, executor, sales_profile):
        assert executor.get_table_row_count(sales_profile, "orders") == 5

    def test_row_count_invalid_table(self, executor, sales_profile):
        assert executor.get_table_row_count(sales_profile, "1bad") is None


class TestClientBackstop:
    """Tests for the client-side timeout around pooled execution."""

    def test_checkout_wait_not_counted_as_statement_time(self, vault, sales_profile):
        """Test that waiting for a pooled connection does not count toward the statement timeout."""
        registry = SlowCheckoutRegistry(vault, delay=0.5, pool_size=1, connect_timeout=5, pool_queue_timeout=5)
        sandbox = SandboxExecutor(registry, statement_timeout_ms=100, client_timeout_grace_ms=100, max_workers=1)
        try:
            result = sandbox.execute_query(sales_profile, "SELECT COUNT(*) AS n FROM orders")
        finally:
            sandbox.close()
            registry.close_all()
        assert result.success
        assert result.rows == [{"n": 5}]

    def test_checkout_that_never_arrives_fails(self, vault, sales_profile):
        """Test that a caller gives up on checkout and the late worker skips the statement."""
        registry = SlowCheckoutRegistry(vault, delay=0.8, pool_size=1, connect_timeout=0.1, pool_queue_timeout=0.1)
        sandbox = SandboxExecutor(registry, statement_timeout_ms=100, client_timeout_grace_ms=100, max_workers=1)
        try:
            result = sandbox.execute_query(sales_profile, "SELECT COUNT(*) AS n FROM orders")
            assert not result.success
            assert result.error.startswith("No free connection")
            time.sleep(1.0)
            assert registry.get_stats()["pools"][0]["checked_out"] == 0
        finally:
            sandbox.close()
            registry.close_all()

    def test_invalid_stored_dsn_is_a_failed_result(self, executor, profile_factory):
        profile = profile_factory("ftp://files.example.com/sales")
        result = executor.execute_query(profile, "SELECT 1")
        assert not result.success
        assert "no longer valid" in result.error


class TestStatementHandle:
    """Tests for _StatementHandle."""

    def test_cancel_runs_while_holding_lock(self):
        """Test that the interrupt is issued before the connection can be detached."""
        handle = _StatementHandle()
        held = []
        dbapi = MagicMock(spec=["interrupt"])
        dbapi.interrupt.side_effect = lambda: held.append(handle.lock.locked())
        assert handle.attach(dbapi)
        handle.cancel()
        assert held == [True]

    def test_cancel_after_detach_does_nothing(self):
        handle = _StatementHandle()
        dbapi = MagicMock(spec=["cancel"])
        handle.attach(dbapi)
        handle.detach()
        handle.cancel()
        dbapi.cancel.assert_not_called()

    def test_attach_refused_after_abandon(self):
        handle = _StatementHandle()
        handle.abandon()
        assert not handle.attach(MagicMock())
        assert not handle.started.is_set()
