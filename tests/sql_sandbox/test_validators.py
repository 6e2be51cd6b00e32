"""Tests for read-only SQL validation."""

import pytest

from docsql.core.sql_sandbox.validators import QueryValidator


@pytest.fixture
def validator():
    return QueryValidator(dialect="sqlite")


class TestAllowedStatements:
    """Statements that must pass."""

    def test_simple_select(self, validator):
        result = validator.validate("SELECT id, customer FROM orders WHERE amount > 10")
        assert result.is_valid
        assert result.statement_kind == "select"
        assert result.referenced_tables == ["orders"]

    def test_terminal_semicolon_allowed(self, validator):
        assert validator.validate("SELECT * FROM orders;").is_valid

    def test_cte_names_not_reported_as_tables(self, validator):
        """Test that CTE aliases are excluded from referenced tables."""
        result = validator.validate(
            "WITH big AS (SELECT * FROM orders WHERE amount > 100) SELECT COUNT(*) FROM big"
        )
        assert result.is_valid
        assert result.referenced_tables == ["orders"]

    def test_union_is_select(self, validator):
        result = validator.validate("SELECT customer FROM orders UNION SELECT name FROM customers")
        assert result.is_valid
        assert result.statement_kind == "select"
        assert set(result.referenced_tables) == {"orders", "customers"}

    def test_multi_clause_select(self, validator):
        """Test a JOIN / GROUP BY / ORDER BY query with no terminator ambiguity."""
        result = validator.validate(
            "SELECT c.name, SUM(o.amount) AS total FROM orders o "
            "JOIN customers c ON c.id = o.customer_id "
            "WHERE o.amount > 0 GROUP BY c.name HAVING SUM(o.amount) > 100 "
            "ORDER BY total DESC LIMIT 10"
        )
        assert result.is_valid
        assert set(result.referenced_tables) == {"orders", "customers"}

    def test_identifiers_containing_keywords(self, validator):
        """Test that the denylist matches whole words only."""
        result = validator.validate("SELECT created_at, updated_by, inserted FROM events")
        assert result.is_valid

    def test_show_tables_mysql(self):
        result = QueryValidator().validate("SHOW TABLES", dialect="mysql")
        assert result.is_valid
        assert result.statement_kind == "show"

    def test_comment_warns_but_passes(self, validator):
        result = validator.validate("SELECT * FROM orders -- every order")
        assert result.is_valid
        assert "Query contains SQL comments" in result.warnings


class TestRejectedStatements:
    """Statements that must be rejected."""

    def test_empty(self, validator):
        result = validator.validate("   ")
        assert not result.is_valid
        assert result.errors == ["Query is empty"]

    @pytest.mark.parametrize("sql,keyword", [
        ("DROP TABLE orders", "DROP"),
        ("DELETE FROM orders", "DELETE"),
        ("INSERT INTO orders (customer) VALUES ('x')", "INSERT"),
        ("TRUNCATE TABLE orders", "TRUNCATE"),
        ("ALTER TABLE orders ADD COLUMN x INT", "ALTER"),
        ("CREATE TABLE x (id INT)", "CREATE"),
        ("GRANT SELECT ON orders TO bob", "GRANT"),
    ])
    def test_write_statements(self, validator, sql, keyword):
        result = validator.validate(sql)
        assert not result.is_valid
        assert f"Forbidden keyword: {keyword}" in result.errors

    def test_denylist_is_case_insensitive(self, validator):
        result = validator.validate("dRoP table orders")
        assert "Forbidden keyword: DROP" in result.errors

    def test_update_reports_update_and_set(self, validator):
        result = validator.validate("UPDATE orders SET amount = 0")
        assert not result.is_valid
        assert "Forbidden keyword: UPDATE" in result.errors
        assert "Forbidden keyword: SET" in result.errors

    def test_stacked_statements(self, validator):
        """Test that a second statement after a semicolon is rejected."""
        result = validator.validate("SELECT * FROM orders; DROP TABLE orders")
        assert not result.is_valid
        assert "Multiple statements are not allowed" in result.errors
        assert "Forbidden keyword: DROP" in result.errors

    def test_two_selects(self, validator):
        result = validator.validate("SELECT 1; SELECT 2")
        assert not result.is_valid
        assert "Multiple statements are not allowed" in result.errors

    def test_keyword_in_string_literal_still_rejected(self, validator):
        """Test that the denylist applies to the raw text regardless of the parse."""
        result = validator.validate("SELECT * FROM orders WHERE customer = 'drop'")
        assert not result.is_valid

    def test_select_into(self, validator):
        result = validator.validate("SELECT * INTO backup FROM orders")
        assert not result.is_valid
        assert "SELECT ... INTO is not allowed" in result.errors

    def test_unparseable(self, validator):
        result = validator.validate("SELECT * FROM orders WHERE (amount > 1")
        assert not result.is_valid
        assert any(e.startswith("Failed to parse query") for e in result.errors)

    def test_nested_write_in_explain(self, validator):
        result = validator.validate("EXPLAIN DELETE FROM orders")
        assert not result.is_valid
